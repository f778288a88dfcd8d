"""Data models shared by the request layer, the backends and the providers."""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

import httpx

from cloudlink.httpdate import normalize_timestamp


class Method(Enum):
    """HTTP methods a request descriptor may carry."""

    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


class BackendKind(Enum):
    """Which backend a service dispatches through."""

    REAL = "real"
    MOCK = "mock"


@dataclass(frozen=True)
class RequestDescriptor:
    """A fully built request, ready for a backend.

    Header names are unique regardless of case; build_request enforces this
    when it merges caller headers and options. The path is unquoted, the
    real backend quotes it when it builds the URL.
    """

    method: Method
    host: str
    path: str
    header_items: tuple[tuple[str, str], ...] = ()
    query: tuple[tuple[str, str], ...] = ()
    body: Optional[bytes] = None
    expects: frozenset[int] = frozenset({200})

    @property
    def headers(self) -> httpx.Headers:
        """Case-insensitive view of the request headers."""
        return httpx.Headers(list(self.header_items))

    @property
    def params(self) -> dict[str, str]:
        return dict(self.query)

    def replace(self, **changes: Any) -> "RequestDescriptor":
        """Return a copy with some fields changed."""
        return dataclasses.replace(self, **changes)


@dataclass
class ResponseEnvelope:
    """Normalized response from either backend.

    body holds raw bytes as received, or the decoded structure once a
    service decoder or request parser has run. It is None for HEAD.
    """

    status: int
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: Any = None


@dataclass
class ResourceRecord:
    """Metadata and content of one simulated resource.

    children holds nested containers, e.g. a bucket record's "objects".
    """

    etag: Optional[str] = None
    last_modified: Optional[datetime] = None
    size: int = 0
    content_type: Optional[str] = None
    body: Optional[bytes] = None
    fields: dict[str, Any] = field(default_factory=dict)
    children: dict[str, dict[Any, "ResourceRecord"]] = field(default_factory=dict)

    def __post_init__(self):
        if self.last_modified is not None:
            self.last_modified = normalize_timestamp(self.last_modified)


@dataclass
class ProviderConfig:
    """Configuration for one configured provider account."""

    key: str
    provider_name: str
    kind: str
    endpoint_url: str
    account: str
    secret: Optional[str] = None
    region_name: str = "us-east-1"
    backend: BackendKind = BackendKind.REAL
    addressing_style: str = "path"
    persistent: bool = False
    timeout: float = 60.0
    enabled: bool = True
