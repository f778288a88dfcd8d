"""Base class for provider services.

A service owns a RequestExecutor bound to one backend. Provider modules
subclass it, add request methods that call self.request(...), and expose
their collections as properties.
"""

from typing import Any, Iterable, Mapping, Optional, Union

from cloudlink.backends import Backend, MockBackend
from cloudlink.errors import ErrorMapper
from cloudlink.executor import Decoder, RequestExecutor, build_request
from cloudlink.models import Method, ResponseEnvelope


class Service:
    """A provider API bound to a Real or Mock backend.

    Args:
        backend: The backend every request is dispatched through.
        host: Default host for requests.
    """

    error_mapper: ErrorMapper = ErrorMapper()
    decoder: Optional[Decoder] = None

    def __init__(self, backend: Backend, host: str):
        self.backend = backend
        self.host = host
        self.executor = RequestExecutor(backend, self.error_mapper, type(self).decoder)

    @property
    def mocking(self) -> bool:
        """True when requests are answered by the in-memory backend."""
        return isinstance(self.backend, MockBackend)

    def request(
        self,
        method: Union[str, Method],
        path: str,
        host: Optional[str] = None,
        headers: Optional[Mapping[str, Any]] = None,
        options: Optional[Mapping[str, Any]] = None,
        query: Optional[Mapping[str, Any]] = None,
        body: Optional[bytes] = None,
        expects: Union[int, Iterable[int]] = 200,
        parser: Optional[Decoder] = None,
    ) -> ResponseEnvelope:
        """Build a descriptor and execute it. See build_request."""
        descriptor = build_request(
            method,
            host or self.host,
            path,
            headers=headers,
            options=options,
            query=query,
            body=body,
            expects=expects,
        )
        return self.executor.execute(descriptor, parser=parser)

    def reset_data(self) -> None:
        """Clear this account's simulated state.

        Raises:
            RuntimeError: If the service talks to a real provider.
        """
        if not isinstance(self.backend, MockBackend):
            raise RuntimeError("reset_data is only available on the mock backend")
        self.backend.reset_data()

    def close(self) -> None:
        self.backend.close()

    def __enter__(self) -> "Service":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False
