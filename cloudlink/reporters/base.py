"""Base reporter interface."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from cloudlink.models import ResponseEnvelope


class Reporter(ABC):
    """Abstract base class for CLI result reporters."""

    @abstractmethod
    def on_response(self, title: str, response: "ResponseEnvelope") -> None:
        """Called with the response of a single-resource request."""
        pass

    @abstractmethod
    def on_listing(self, title: str, columns: Sequence[str], rows: Sequence[Sequence[str]]) -> None:
        """Called with the rows of a collection listing."""
        pass

    @abstractmethod
    def on_note(self, message: str) -> None:
        """Called with an informational message, e.g. a 304 short-circuit."""
        pass

    @abstractmethod
    def on_error(self, message: str) -> None:
        """Called when the command fails."""
        pass

    @abstractmethod
    def on_complete(self) -> None:
        """Called once when the command is finished."""
        pass
