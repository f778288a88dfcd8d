"""Collections and models over a provider service.

A Collection enumerates resources (all) and fetches one by identity (get).
get is the single place a NotFound is recovered: it yields None. Every
other error propagates to the caller untouched.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Generic, Iterable, Optional, TypeVar

from cloudlink.errors import NotFound

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound="Model")


@dataclass
class Model(ABC):
    """A typed record loaded by a collection.

    Subclasses are dataclasses; identity names the field holding the
    resource identifier.
    """

    identity: ClassVar[str] = "id"

    collection: Optional["Collection"] = field(default=None, repr=False, compare=False, kw_only=True)

    @classmethod
    @abstractmethod
    def from_payload(cls, data: Any, collection: Optional["Collection"] = None) -> "Model":
        """Build a model from one raw backend entry."""
        pass

    @property
    def service(self) -> Any:
        if self.collection is None:
            raise RuntimeError(f"{type(self).__name__} is not attached to a collection")
        return self.collection.service

    @property
    def id_value(self) -> Any:
        return getattr(self, self.identity)

    def reload(self) -> Optional["Model"]:
        """Fetch a fresh copy; None if the resource is gone."""
        if self.collection is None:
            raise RuntimeError(f"{type(self).__name__} is not attached to a collection")
        return self.collection.get(self.id_value)


def absent_on_not_found(fetch: Callable[[], T]) -> Optional[T]:
    """Run fetch, turning NotFound into None."""
    try:
        return fetch()
    except NotFound as e:
        logger.debug("Resource not found: %s", e)
        return None


class Collection(ABC, Generic[M]):
    """Enumerable resources of one kind.

    Args:
        service: The provider service requests go through.
    """

    model: ClassVar[type]

    def __init__(self, service: Any):
        self.service = service

    @abstractmethod
    def fetch_all(self) -> Iterable[Any]:
        """Raw entries for every resource, in backend order."""
        pass

    @abstractmethod
    def fetch(self, identity: Any) -> Any:
        """Raw entry for one resource; raises NotFound if it is missing."""
        pass

    def all(self) -> list[M]:
        """Every resource, in the order the backend listed them."""
        return self.load(self.fetch_all())

    def get(self, identity: Any) -> Optional[M]:
        """One resource, or None if the backend reports it not found."""
        data = absent_on_not_found(lambda: self.fetch(identity))
        if data is None:
            return None
        return self.new(data)

    def load(self, entries: Iterable[Any]) -> list[M]:
        return [self.new(entry) for entry in entries]

    def new(self, data: Any) -> M:
        return self.model.from_payload(data, collection=self)
