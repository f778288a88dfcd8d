"""Provider services: object storage, DNS and compute."""

from .compute import ComputeMock, ComputeService
from .dns import DnsMock, DnsService
from .storage import StorageMock, StorageService

__all__ = [
    "ComputeMock",
    "ComputeService",
    "DnsMock",
    "DnsService",
    "StorageMock",
    "StorageService",
]
