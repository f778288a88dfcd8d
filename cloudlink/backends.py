"""Backends a RequestExecutor can dispatch through.

RealBackend sends the descriptor over the network with httpx. MockBackend
answers it in-process from a MockStore. Providers subclass MockBackend and
declare routes; each route handler receives the descriptor plus the named
groups of its path pattern and returns a ResponseEnvelope.
"""

import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Hashable, Mapping, Optional, Sequence
from urllib.parse import quote

import httpx
from h11 import LocalProtocolError as H11LocalProtocolError

from cloudlink.errors import MockNotImplemented, TransportError
from cloudlink.httpdate import normalize_timestamp, utcnow
from cloudlink.models import Method, RequestDescriptor, ResponseEnvelope
from cloudlink.store import MockStore

logger = logging.getLogger(__name__)

# Signs a descriptor for the final URL and returns headers to add
Signer = Callable[[RequestDescriptor, str], Mapping[str, str]]


class Backend(ABC):
    """Anything that can turn a descriptor into a response envelope."""

    @abstractmethod
    def dispatch(self, descriptor: RequestDescriptor, read_body: bool = True) -> ResponseEnvelope:
        """Perform the request.

        Args:
            descriptor: The request to perform.
            read_body: If False the body is neither read nor returned.

        Returns:
            The response, whatever its status. Status checking is the
            executor's job.
        """
        pass

    def close(self) -> None:
        """Release any resources held by the backend."""
        pass


class RealBackend(Backend):
    """Network backend built on httpx.

    Args:
        scheme: URL scheme for every request.
        port: Port, or None for the scheme default.
        persistent: Reuse one connection pool across requests.
        timeout: Transport timeout in seconds.
        signer: Optional callable adding authentication headers.
        auth: Optional httpx auth (e.g. a (user, password) tuple).
        transport: Optional httpx transport, mainly for tests.
    """

    def __init__(
        self,
        scheme: str = "https",
        port: Optional[int] = None,
        persistent: bool = False,
        timeout: float = 60.0,
        signer: Optional[Signer] = None,
        auth: Any = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.scheme = scheme
        self.port = port
        self.persistent = persistent
        self.timeout = timeout
        self.signer = signer
        self.auth = auth
        self.transport = transport
        self._client: Optional[httpx.Client] = None

    def _new_client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, auth=self.auth, transport=self.transport)

    def _get_client(self) -> httpx.Client:
        if not self.persistent:
            return self._new_client()
        if self._client is None:
            self._client = self._new_client()
        return self._client

    def build_url(self, descriptor: RequestDescriptor) -> httpx.URL:
        """Absolute URL for a descriptor, with the path quoted."""
        url = httpx.URL(
            scheme=self.scheme,
            host=descriptor.host,
            port=self.port,
            path=quote(descriptor.path or "/", safe="/~"),
        )
        if descriptor.query:
            url = url.copy_merge_params(list(descriptor.query))
        return url

    def dispatch(self, descriptor: RequestDescriptor, read_body: bool = True) -> ResponseEnvelope:
        url = self.build_url(descriptor)
        headers = descriptor.headers
        if self.signer is not None:
            headers.update(self.signer(descriptor, str(url)))

        client = self._get_client()
        try:
            request = client.build_request(
                descriptor.method.value,
                url,
                headers=headers,
                content=descriptor.body,
            )
            response = client.send(request, stream=not read_body)
            try:
                body = response.content if read_body else None
            finally:
                response.close()
        except (httpx.LocalProtocolError, H11LocalProtocolError, httpx.HTTPError) as e:
            logger.warning("%s %s failed: %s", descriptor.method.value, url, e)
            raise TransportError(f"{descriptor.method.value} {url} failed: {e}") from e
        finally:
            if not self.persistent:
                client.close()

        return ResponseEnvelope(
            status=response.status_code,
            headers=httpx.Headers(response.headers),
            body=body,
        )

    def reload(self) -> None:
        """Drop the persistent connection pool; the next request opens a new one."""
        self.close()

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


class MockBackend(Backend):
    """In-process backend answering from a MockStore partition.

    Subclasses list routes as (method, path pattern, handler name). Patterns
    must match the whole routed path; the first match wins.

    Args:
        account: Partition key, usually the credential identifying the account.
        store: Shared store; a private one is created if omitted.
        clock: Callable returning the current time, for timestamps.
    """

    routes: Sequence[tuple[str, str, str]] = ()

    def __init__(
        self,
        account: Hashable,
        store: Optional[MockStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.account = account
        self.store = store if store is not None else MockStore()
        self.clock = clock or utcnow
        self._routes = [
            (Method(method), re.compile(pattern), getattr(self, handler))
            for method, pattern, handler in self.routes
        ]

    def route_path(self, descriptor: RequestDescriptor) -> str:
        """The path routes are matched against."""
        return descriptor.path or "/"

    def dispatch(self, descriptor: RequestDescriptor, read_body: bool = True) -> ResponseEnvelope:
        path = self.route_path(descriptor)
        for method, pattern, handler in self._routes:
            if method is not descriptor.method:
                continue
            match = pattern.fullmatch(path)
            if match is None:
                continue
            response = handler(descriptor, **match.groupdict())
            if not read_body:
                response.body = None
            return response

        raise MockNotImplemented(
            f"{type(self).__name__} has no route for {descriptor.method.value} {path}"
        )

    def now(self) -> datetime:
        return normalize_timestamp(self.clock())

    def respond(
        self,
        status: int,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> ResponseEnvelope:
        """Build a response envelope."""
        return ResponseEnvelope(status=status, headers=httpx.Headers(dict(headers or {})), body=body)

    def reset_data(self) -> None:
        """Forget everything stored for this backend's account."""
        self.store.reset(self.account)
