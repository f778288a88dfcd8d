"""Request building and execution.

build_request turns provider call parameters into an immutable
RequestDescriptor. RequestExecutor sends it through the configured backend
and either returns a ResponseEnvelope or raises the typed error chosen by
the ErrorMapper.
"""

import json
import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from cloudlink.backends import Backend
from cloudlink.errors import DecodeError, ErrorMapper
from cloudlink.httpdate import format_http_date
from cloudlink.models import Method, RequestDescriptor, ResponseEnvelope

logger = logging.getLogger(__name__)

# Options a request method accepts, mapped to the header each one sets.
# Keys are normalized: lower case, dashes replaced by underscores, so both
# if_match=... and {"If-Match": ...} are recognized.
OPTION_HEADERS = {
    "if_match": "If-Match",
    "if_none_match": "If-None-Match",
    "if_modified_since": "If-Modified-Since",
    "if_unmodified_since": "If-Unmodified-Since",
    "range": "Range",
}

Decoder = Callable[[Any], Any]


def decode_json(body: Any) -> Any:
    """Decoder for JSON APIs; already decoded bodies pass through."""
    if isinstance(body, (bytes, str)):
        return json.loads(body)
    return body


def option_header(option: str) -> Optional[str]:
    """Header name for a request option, or None if unrecognized."""
    return OPTION_HEADERS.get(option.lower().replace("-", "_"))


def _header_value(value: Any) -> str:
    if isinstance(value, datetime):
        return format_http_date(value)
    return str(value)


def build_request(
    method: Union[str, Method],
    host: str,
    path: str,
    headers: Optional[Mapping[str, Any]] = None,
    options: Optional[Mapping[str, Any]] = None,
    query: Optional[Mapping[str, Any]] = None,
    body: Optional[bytes] = None,
    expects: Union[int, Iterable[int]] = 200,
) -> RequestDescriptor:
    """Build an immutable request descriptor.

    Args:
        method: HTTP method.
        host: Host the request goes to.
        path: Unquoted request path.
        headers: Fixed headers set by the provider method.
        options: Caller options; each must be a recognized option and sets
            exactly one header. datetime values are formatted in the wire
            date format. None values are skipped.
        query: Query parameters; None values are skipped.
        body: Request body.
        expects: Acceptable status code(s).

    Returns:
        The descriptor.

    Raises:
        ValueError: If an option is not recognized.
    """
    merged: dict[str, tuple[str, str]] = {}
    for name, value in (headers or {}).items():
        if value is not None:
            merged[name.lower()] = (name, _header_value(value))

    for option, value in (options or {}).items():
        header = option_header(option)
        if header is None:
            raise ValueError(f"Unrecognized request option: {option}")
        if value is None:
            continue
        merged[header.lower()] = (header, _header_value(value))

    if isinstance(expects, int):
        expects = (expects,)
    if not isinstance(method, Method):
        method = Method(method.upper())

    return RequestDescriptor(
        method=method,
        host=host,
        path=path,
        header_items=tuple(merged.values()),
        query=tuple((key, str(value)) for key, value in (query or {}).items() if value is not None),
        body=body,
        expects=frozenset(expects),
    )


class RequestExecutor:
    """Dispatches descriptors and validates the responses.

    Args:
        backend: RealBackend or MockBackend.
        error_mapper: Maps unacceptable responses to typed errors.
        decoder: Applied to every non-empty body before status checking,
            for providers whose error payloads are structured.
    """

    def __init__(
        self,
        backend: Backend,
        error_mapper: Optional[ErrorMapper] = None,
        decoder: Optional[Decoder] = None,
    ):
        self.backend = backend
        self.error_mapper = error_mapper or ErrorMapper()
        self.decoder = decoder

    def execute(
        self,
        descriptor: RequestDescriptor,
        parser: Optional[Decoder] = None,
    ) -> ResponseEnvelope:
        """Perform a request.

        Args:
            descriptor: The request.
            parser: Applied to a non-empty body of a successful response.

        Returns:
            The response envelope; its status is in descriptor.expects.

        Raises:
            RequestError: A typed error from the ErrorMapper.
            TransportError: The real backend failed to complete the exchange.
        """
        if descriptor.method is Method.HEAD:
            return self.head(descriptor)
        return self._perform(descriptor, read_body=True, parser=parser)

    def head(self, descriptor: RequestDescriptor) -> ResponseEnvelope:
        """HEAD is a GET whose body is discarded.

        Status, conditional evaluation and headers are exactly those of the
        GET for the same descriptor. Providers that report errors inside the
        body have it read and classified before it is dropped.
        """
        response = self._perform(
            descriptor.replace(method=Method.GET),
            read_body=self.error_mapper.errors_on_success,
            parser=None,
        )
        response.body = None
        return response

    def _perform(
        self,
        descriptor: RequestDescriptor,
        read_body: bool,
        parser: Optional[Decoder],
    ) -> ResponseEnvelope:
        logger.debug(
            "%s %s%s via %s",
            descriptor.method.value,
            descriptor.host,
            descriptor.path,
            type(self.backend).__name__,
        )
        response = self.backend.dispatch(descriptor, read_body=read_body)

        decode_failure = None
        if self.decoder is not None and response.body:
            try:
                response.body = self.decoder(response.body)
            except ValueError as e:
                # Raw body is kept, e.g. an HTML error page from a proxy
                decode_failure = e

        error = self.error_mapper.classify(descriptor.expects, response)
        if error is None and decode_failure is not None:
            error = DecodeError(f"{response.status} undecodable body: {decode_failure}", response)
        if error is not None:
            logger.info("%s %s%s: %s", descriptor.method.value, descriptor.host, descriptor.path, error)
            raise error

        if parser is not None and response.body:
            response.body = parser(response.body)
        return response
