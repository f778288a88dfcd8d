"""Uniform client for storage, DNS and compute providers.

Every provider request runs through one RequestExecutor bound to either a
real HTTP backend or an in-memory mock backend with the same semantics.
"""

from cloudlink.errors import (
    CloudError,
    DecodeError,
    MockNotImplemented,
    NotFound,
    NotModified,
    PreconditionFailed,
    ProviderError,
    RequestError,
    StatusError,
    TransportError,
)
from cloudlink.models import BackendKind, ProviderConfig, RequestDescriptor, ResponseEnvelope
from cloudlink.services import build_service
from cloudlink.store import MockStore

__version__ = "0.1.0"

__all__ = [
    "BackendKind",
    "CloudError",
    "DecodeError",
    "MockNotImplemented",
    "MockStore",
    "NotFound",
    "NotModified",
    "PreconditionFailed",
    "ProviderConfig",
    "ProviderError",
    "RequestDescriptor",
    "RequestError",
    "ResponseEnvelope",
    "StatusError",
    "TransportError",
    "build_service",
]
