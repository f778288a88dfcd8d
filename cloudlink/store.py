"""Account-partitioned in-memory state for the mock backend.

A partition is created the first time an account key is touched and lives
until reset. Within a partition, resources are addressed by a path that
alternates container names and identities:

    ("buckets", "photos")                      -> a bucket record
    ("buckets", "photos", "objects", "a.jpg")  -> an object in that bucket

Lookups never create anything: if the parent record is missing the result
is None. Each partition has its own re-entrant lock; callers that need a
check-then-write to be atomic hold lock(account) around both steps.
"""

import threading
from typing import Any, Hashable, Optional, Sequence

from cloudlink.models import ResourceRecord

Path = Sequence[Hashable]


class MockStore:
    """Shared simulated provider state, one partition per account key."""

    def __init__(self):
        self._partitions: dict[Hashable, dict[str, dict[Any, ResourceRecord]]] = {}
        self._sequences: dict[Hashable, dict[str, int]] = {}
        self._locks: dict[Hashable, threading.RLock] = {}
        self._guard = threading.Lock()

    def lock(self, account: Hashable) -> threading.RLock:
        """The lock guarding one account's partition."""
        with self._guard:
            lock = self._locks.get(account)
            if lock is None:
                lock = self._locks[account] = threading.RLock()
            return lock

    def partition(self, account: Hashable) -> dict[str, dict[Any, ResourceRecord]]:
        """The raw top-level containers for an account, created lazily."""
        with self._guard:
            return self._partitions.setdefault(account, {})

    def accounts(self) -> list[Hashable]:
        with self._guard:
            return list(self._partitions)

    def _container(
        self,
        account: Hashable,
        container_path: Path,
        create: bool = False,
    ) -> Optional[dict[Any, ResourceRecord]]:
        if len(container_path) % 2 != 1:
            raise ValueError(f"Not a container path: {tuple(container_path)!r}")

        containers = self.partition(account)
        for depth in range(0, len(container_path) - 1, 2):
            name, identity = container_path[depth], container_path[depth + 1]
            parent = containers.get(name, {}).get(identity)
            if parent is None:
                return None
            containers = parent.children

        name = container_path[-1]
        if create:
            return containers.setdefault(name, {})
        return containers.get(name)

    def get(self, account: Hashable, path: Path) -> Optional[ResourceRecord]:
        """Look up a record; None if it or any parent is missing."""
        if len(path) % 2 != 0:
            raise ValueError(f"Not a record path: {tuple(path)!r}")
        with self.lock(account):
            container = self._container(account, path[:-1])
            if container is None:
                return None
            return container.get(path[-1])

    def list(self, account: Hashable, container_path: Path) -> list[tuple[Any, ResourceRecord]]:
        """Entries of a container in insertion order; empty if it is missing."""
        with self.lock(account):
            container = self._container(account, container_path)
            if container is None:
                return []
            return list(container.items())

    def put(self, account: Hashable, path: Path, record: ResourceRecord) -> ResourceRecord:
        """Store a record, replacing any existing one.

        Raises:
            KeyError: If a parent record along the path does not exist.
        """
        if len(path) % 2 != 0:
            raise ValueError(f"Not a record path: {tuple(path)!r}")
        with self.lock(account):
            container = self._container(account, path[:-1], create=True)
            if container is None:
                raise KeyError(f"Parent of {tuple(path)!r} does not exist")
            container[path[-1]] = record
            return record

    def delete(self, account: Hashable, path: Path) -> Optional[ResourceRecord]:
        """Remove a record and its children; returns what was removed."""
        if len(path) % 2 != 0:
            raise ValueError(f"Not a record path: {tuple(path)!r}")
        with self.lock(account):
            container = self._container(account, path[:-1])
            if container is None:
                return None
            return container.pop(path[-1], None)

    def next_id(self, account: Hashable, sequence: str) -> int:
        """Next value of a per-account counter, starting at 1."""
        with self.lock(account):
            with self._guard:
                counters = self._sequences.setdefault(account, {})
                counters[sequence] = counters.get(sequence, 0) + 1
                return counters[sequence]

    def reset(self, account: Optional[Hashable] = None) -> None:
        """Clear one account's partition, or every partition."""
        if account is None:
            with self._guard:
                self._partitions.clear()
                self._sequences.clear()
                self._locks.clear()
            return

        with self.lock(account):
            with self._guard:
                self._partitions.pop(account, None)
                self._sequences.pop(account, None)
