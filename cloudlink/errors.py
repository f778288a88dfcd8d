"""Error taxonomy and the status-to-error mapping.

Every error raised by cloudlink derives from CloudError. Errors produced by
a response (RequestError and its subclasses) carry the full
ResponseEnvelope so callers can inspect status, headers and body.
"""

from dataclasses import dataclass
from typing import Any, Callable, Collection, Iterable, Optional

from cloudlink.models import ResponseEnvelope


class CloudError(Exception):
    """Base class for all cloudlink errors."""

    pass


class TransportError(CloudError):
    """The real backend could not complete the exchange."""

    pass


class MockNotImplemented(CloudError):
    """The mock backend has no route for a request."""

    pass


class RequestError(CloudError):
    """A request completed with a response the caller did not expect."""

    def __init__(self, message: str, response: ResponseEnvelope):
        super().__init__(message)
        self.response = response

    @property
    def status(self) -> int:
        return self.response.status


class NotFound(RequestError):
    """404, or a provider error code meaning "no such resource"."""

    pass


class PreconditionFailed(RequestError):
    """412: an If-Match or If-Unmodified-Since condition did not hold."""

    pass


class NotModified(RequestError):
    """304: the caller's cached copy is current."""

    pass


class StatusError(RequestError):
    """Any other mismatch between expected and actual status."""

    def __init__(
        self,
        expected: Collection[int],
        actual: int,
        response: ResponseEnvelope,
        code: Any = None,
        provider_message: Optional[str] = None,
    ):
        expected_text = ", ".join(str(status) for status in sorted(expected))
        message = f"Expected({expected_text}) <=> Actual({actual})"
        if code is not None:
            message = f"{message}: {code} {provider_message or ''}".rstrip()
        super().__init__(message, response)
        self.expected = frozenset(expected)
        self.actual = actual
        self.code = code
        self.provider_message = provider_message


class ProviderError(StatusError):
    """A provider-declared error code and message."""

    pass


class DecodeError(RequestError):
    """An acceptable status whose body the provider decoder could not read."""

    pass


@dataclass(frozen=True)
class ErrorEntry:
    """One error entry from a structured provider error payload."""

    code: Any
    message: Optional[str] = None


ErrorExtractor = Callable[[ResponseEnvelope], Iterable[ErrorEntry]]


class ErrorMapper:
    """Turns a response into a typed error, or None when it is acceptable.

    Args:
        not_found_codes: Provider error codes that mean "no such resource".
        error_entries: Callable pulling error entries out of a response
            payload. Only the first entry takes part in classification.
        errors_on_success: The provider may report errors in the body of a
            response whose status is acceptable, so every body must be read.
    """

    def __init__(
        self,
        not_found_codes: Iterable[Any] = (),
        error_entries: Optional[ErrorExtractor] = None,
        errors_on_success: bool = False,
    ):
        self.not_found_codes = frozenset(not_found_codes)
        self.error_entries = error_entries
        self.errors_on_success = errors_on_success

    def first_error(self, response: ResponseEnvelope) -> Optional[ErrorEntry]:
        """The first error entry in the response payload, if any."""
        if self.error_entries is None:
            return None
        for entry in self.error_entries(response):
            return entry
        return None

    def classify(
        self,
        expects: Collection[int],
        response: ResponseEnvelope,
    ) -> Optional[RequestError]:
        """Map a response to an error.

        Args:
            expects: Acceptable status codes for the request.
            response: The normalized response.

        Returns:
            None if the response is acceptable, otherwise the typed error.
        """
        entry = self.first_error(response)
        status = response.status

        if entry is None and status in expects:
            return None

        if status == 404:
            return NotFound(_describe(status, entry, "Not Found"), response)
        if entry is not None and entry.code in self.not_found_codes:
            return NotFound(_describe(status, entry, "Not Found"), response)
        if status == 412:
            return PreconditionFailed(_describe(status, entry, "Precondition Failed"), response)
        if status == 304:
            return NotModified(_describe(status, entry, "Not Modified"), response)
        if entry is not None:
            return ProviderError(expects, status, response, entry.code, entry.message)
        return StatusError(expects, status, response)

    def check(self, expects: Collection[int], response: ResponseEnvelope) -> ResponseEnvelope:
        """Raise the mapped error, or return the response unchanged."""
        error = self.classify(expects, response)
        if error is not None:
            raise error
        return response


def _describe(status: int, entry: Optional[ErrorEntry], default: str) -> str:
    if entry is not None and entry.message:
        return f"{status} {entry.message}"
    return f"{status} {default}"
