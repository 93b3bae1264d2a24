from __future__ import annotations

import heapq
import itertools
import logging
from typing import Dict, Iterator, List, Optional, Tuple

from .types import NotificationFragment, PendingGroup

LOGGER = logging.getLogger(__name__)


class CoalescingTableFull(RuntimeError):
    """Raised when a new key arrives while the table is at capacity under the reject policy."""


class CoalescingTable:
    """Pending groups keyed by coalescing key, with a min-heap of flush deadlines.

    The debounce window slides: every arrival for a key pushes its deadline out
    by a full window. A key that keeps receiving events faster than the window
    never becomes ready unless ``max_age`` is set, in which case a group is also
    ready once ``max_age`` seconds have passed since its first item.

    Not thread-safe. The scheduler loop is the only writer.
    """

    def __init__(
        self,
        window: float,
        *,
        max_groups: int = 500,
        overflow_policy: str = "flush_oldest",
        max_age: Optional[float] = None,
    ) -> None:
        if window < 0:
            raise ValueError("window must be greater than or equal to 0")
        if max_groups < 1:
            raise ValueError("max_groups must be at least 1")
        if overflow_policy not in ("flush_oldest", "reject"):
            raise ValueError(f"Unknown overflow policy '{overflow_policy}'")
        self.window = window
        self.max_groups = max_groups
        self.overflow_policy = overflow_policy
        self.max_age = max_age
        self._groups: Dict[str, PendingGroup] = {}
        # (deadline, revision, key); entries whose revision no longer matches
        # the live group are stale and skipped.
        self._heap: List[Tuple[float, int, str]] = []
        self._counter = itertools.count()

    def __len__(self) -> int:
        return len(self._groups)

    def __contains__(self, key: object) -> bool:
        return key in self._groups

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._groups))

    def get(self, key: str) -> Optional[PendingGroup]:
        return self._groups.get(key)

    def deadline_for(self, group: PendingGroup) -> float:
        deadline = group.last_update + self.window
        if self.max_age is not None:
            deadline = min(deadline, group.created_at + self.max_age)
        return deadline

    def upsert(self, key: str, fragment: NotificationFragment, now: float) -> List[PendingGroup]:
        """Add ``fragment`` under ``key``.

        Returns groups evicted to make room for a new key (``flush_oldest``
        policy); the caller must flush them. Raises ``CoalescingTableFull``
        under the ``reject`` policy.
        """
        if not key:
            raise ValueError("Empty coalescing keys bypass the table")

        group = self._groups.get(key)
        if group is not None:
            group.add(fragment, now)
            self._push(group)
            return []

        evicted: List[PendingGroup] = []
        if len(self._groups) >= self.max_groups:
            if self.overflow_policy == "reject":
                raise CoalescingTableFull(
                    f"Coalescing table is full ({self.max_groups} pending groups); rejecting key {key!r}"
                )
            oldest = self._pop_earliest()
            if oldest is not None:
                LOGGER.warning(
                    "Coalescing table full (%d groups); force-flushing oldest key %r",
                    self.max_groups,
                    oldest.key,
                )
                evicted.append(oldest)

        group = PendingGroup(key=key, items=[fragment], last_update=now, created_at=now)
        self._groups[key] = group
        self._push(group)
        return evicted

    def take_ready(self, now: float) -> List[PendingGroup]:
        """Remove and return every group whose deadline has passed, earliest first."""
        ready: List[PendingGroup] = []
        while True:
            top = self._peek()
            if top is None or top[0] > now:
                break
            _, _, key = heapq.heappop(self._heap)
            ready.append(self._groups.pop(key))
        return ready

    def earliest_deadline(self) -> Optional[float]:
        top = self._peek()
        return top[0] if top is not None else None

    def drain(self) -> List[PendingGroup]:
        """Remove and return all groups, earliest deadline first."""
        groups = sorted(self._groups.values(), key=self.deadline_for)
        self._groups.clear()
        self._heap.clear()
        return groups

    def _push(self, group: PendingGroup) -> None:
        group.revision = next(self._counter)
        heapq.heappush(self._heap, (self.deadline_for(group), group.revision, group.key))

    def _peek(self) -> Optional[Tuple[float, int, str]]:
        while self._heap:
            entry = self._heap[0]
            _, revision, key = entry
            group = self._groups.get(key)
            if group is not None and group.revision == revision:
                return entry
            heapq.heappop(self._heap)
        return None

    def _pop_earliest(self) -> Optional[PendingGroup]:
        top = self._peek()
        if top is None:
            return None
        heapq.heappop(self._heap)
        return self._groups.pop(top[2])
