"""Request cache with single-flight deduplication.

Results are memoized per ingredient-set fingerprint with a TTL, and
concurrent requests for the same fingerprint share one upstream call.

Entry lifecycle:
    (absent) → pending → resolved   (kept for ttl_seconds)
                       → failed     (error replayed for failure_ttl_seconds)

All state changes happen between awaits on a single event loop, so looking
up a fingerprint and registering its pending entry cannot interleave with
another request for the same fingerprint. Pending entries are never evicted or
dropped: invalidate() and clear() only mark them, so joiners keep sharing the
running call and its result is thrown away when it settles.
"""

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from pantry_chef.models.models import Recipe
from pantry_chef.utils.logger import logger


class EntryState(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass
class CacheEntry:
    fingerprint: str
    task: "asyncio.Task[tuple[Recipe, ...]]"
    state: EntryState = EntryState.PENDING
    value: tuple[Recipe, ...] = ()
    error: Optional[BaseException] = None
    expires_at: float = float("inf")
    # Set by invalidate/clear while pending; the result is not stored
    discard: bool = False

    def expired(self, now: float) -> bool:
        return self.state is not EntryState.PENDING and now >= self.expires_at


class RequestCache:
    """TTL + LRU memo of recipe results with single-flight computation."""

    def __init__(
        self,
        ttl_seconds: float = 600.0,
        failure_ttl_seconds: float = 30.0,
        capacity: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.failure_ttl_seconds = failure_ttl_seconds
        self.capacity = capacity
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.coalesced = 0

    async def get_or_compute(
        self,
        fingerprint: str,
        compute_fn: Callable[[], Awaitable[Any]],
    ) -> tuple[Recipe, ...]:
        """Return the cached result for ``fingerprint`` or compute it once.

        Args:
            fingerprint: Canonical ingredient-set key.
            compute_fn: Zero-argument coroutine function producing the recipes.
                Called at most once per pending entry.

        Returns:
            Tuple of recipes, identical for every caller sharing the entry.

        Raises:
            Whatever ``compute_fn`` raised, to every waiter, and again to later
            callers until the failure cooldown expires.
        """
        now = self._clock()
        entry = self._entries.get(fingerprint)

        if entry is not None and entry.expired(now):
            logger.debug("Cache entry expired", extra={"fingerprint": fingerprint})
            del self._entries[fingerprint]
            entry = None

        if entry is None:
            self.misses += 1
            entry = self._start(fingerprint, compute_fn)
        else:
            self._entries.move_to_end(fingerprint)
            if entry.state is EntryState.RESOLVED:
                self.hits += 1
                logger.debug("Cache hit", extra={"fingerprint": fingerprint})
                return entry.value
            if entry.state is EntryState.FAILED:
                logger.debug("Replaying cached failure", extra={"fingerprint": fingerprint})
                raise entry.error.with_traceback(None)
            self.coalesced += 1
            logger.debug("Joining in-flight request", extra={"fingerprint": fingerprint})

        # Shielded: cancelling one caller leaves the shared call running for the others
        return await asyncio.shield(entry.task)

    def _start(self, fingerprint: str, compute_fn: Callable[[], Awaitable[Any]]) -> CacheEntry:
        async def _run() -> tuple[Recipe, ...]:
            return tuple(await compute_fn())

        task = asyncio.ensure_future(_run())
        entry = CacheEntry(fingerprint=fingerprint, task=task)
        self._entries[fingerprint] = entry
        task.add_done_callback(lambda t: self._settle(entry, t))
        self._evict()
        return entry

    def _settle(self, entry: CacheEntry, task: "asyncio.Task[tuple[Recipe, ...]]") -> None:
        if not task.cancelled():
            task.exception()  # mark retrieved
        if self._entries.get(entry.fingerprint) is not entry:
            return

        if task.cancelled() or entry.discard:
            del self._entries[entry.fingerprint]
            return

        now = self._clock()
        error = task.exception()
        if error is None:
            entry.state = EntryState.RESOLVED
            entry.value = task.result()
            entry.expires_at = now + self.ttl_seconds
            logger.debug(
                f"Cached {len(entry.value)} recipes for {self.ttl_seconds:g}s",
                extra={"fingerprint": entry.fingerprint},
            )
        else:
            entry.state = EntryState.FAILED
            entry.error = error
            entry.expires_at = now + self.failure_ttl_seconds
            logger.info(
                f"Request failed, cooling down for {self.failure_ttl_seconds:g}s: {error}",
                extra={"fingerprint": entry.fingerprint},
            )
        self._evict()

    def _evict(self) -> None:
        now = self._clock()
        for key in [key for key, entry in self._entries.items() if entry.expired(now)]:
            del self._entries[key]

        overflow = len(self._entries) - self.capacity
        if overflow <= 0:
            return
        for key in [key for key, entry in self._entries.items() if entry.state is not EntryState.PENDING]:
            if overflow <= 0:
                break
            del self._entries[key]
            overflow -= 1
            logger.debug("Evicted least recently used entry", extra={"fingerprint": key})

    def invalidate(self, fingerprint: str) -> bool:
        """Drop an entry.

        A pending entry stays in place so new callers still join the running
        call; its result is discarded instead of cached once it settles.
        """
        entry = self._entries.get(fingerprint)
        if entry is None:
            return False
        if entry.state is EntryState.PENDING:
            entry.discard = True
        else:
            del self._entries[fingerprint]
        return True

    def clear(self) -> None:
        """Drop every settled entry and discard the results of pending ones."""
        for fingerprint in list(self._entries):
            self.invalidate(fingerprint)

    def state_of(self, fingerprint: str) -> Optional[EntryState]:
        entry = self._entries.get(fingerprint)
        return entry.state if entry else None

    def stats(self) -> dict[str, Any]:
        return {
            "entries": len(self._entries),
            "pending": sum(1 for e in self._entries.values() if e.state is EntryState.PENDING),
            "capacity": self.capacity,
            "hits": self.hits,
            "misses": self.misses,
            "coalesced": self.coalesced,
            "ttl_seconds": self.ttl_seconds,
            "failure_ttl_seconds": self.failure_ttl_seconds,
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, fingerprint: object) -> bool:
        return fingerprint in self._entries
