"""Per-resource serialization for check-then-write scheduling operations."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from contextlib import ExitStack, contextmanager


class ResourceLockRegistry:
    """One lock per resource id, created on first use.

    Owned and injected by whoever builds the scheduling service, so its
    lifetime matches that service. Locks are never evicted: the registry
    holds one entry per person or piece of equipment ever scheduled, which
    is bounded by the repository's resource registry.
    """

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, resource_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(resource_id)
            if lock is None:
                lock = self._locks[resource_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, resource_ids: Iterable[str]) -> Iterator[None]:
        """Hold the locks of every id in *resource_ids* for the block.

        Locks are taken in sorted order so two callers with overlapping
        scopes cannot deadlock.
        """
        with ExitStack() as stack:
            for resource_id in sorted(set(resource_ids)):
                stack.enter_context(self._lock_for(resource_id))
            yield

    def __len__(self) -> int:
        return len(self._locks)
