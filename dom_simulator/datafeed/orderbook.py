"""
Order book aggregator: turns adapter output into canonical, throttled book state.

HOT PATH: offer() is called for every book push (~10 per second per venue).

Performance strategy:
1. dict[float, float] collapses duplicate prices in O(n)
2. One sort per side per applied update, truncated to max_depth
3. Throttle: at most one applied update per update_interval_ms per venue;
   pushes arriving inside the window replace a single pending mutation
4. A pending mutation is flushed by a timer when the window opens, so the
   freshest state is never lost

Ordering: mutations for a venue are applied in arrival order. Throttling may
coalesce them but never reorders them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from itertools import accumulate
from operator import itemgetter
from typing import Any, Callable, Iterable, Optional

from ..config import MAX_DEPTH, UPDATE_INTERVAL_MS
from ..types import BookSnapshot, CanonicalMutation, PriceLevel, Venue
from .store import BookStore

LOG = logging.getLogger(__name__)

# scheduler(delay_sec, callback, *args) -> handle with cancel(), e.g. loop.call_later
Scheduler = Callable[..., Any]


def build_side(
    rows: Iterable[tuple[float, float]],
    descending: bool,
    depth: int = MAX_DEPTH,
) -> tuple[PriceLevel, ...]:
    """
    Sort one side, truncate to depth and attach cumulative totals.

    Duplicate prices collapse to the last occurrence; non-positive sizes are dropped.
    """
    levels: dict[float, float] = {}
    for price, size in rows:
        levels[price] = size

    ordered = sorted(
        ((p, s) for p, s in levels.items() if s > 0),
        key=itemgetter(0),
        reverse=descending,
    )[:depth]

    totals = accumulate(size for _, size in ordered)
    return tuple(
        PriceLevel(price, size, total)
        for (price, size), total in zip(ordered, totals)
    )


class OrderBookAggregator:
    """
    Applies CanonicalMutations to the BookStore under a per-venue throttle.

    Thread-safety: NOT thread-safe. Designed for single-threaded async use.
    """

    __slots__ = (
        'store', 'update_interval_ms', 'max_depth', 'snapshots',
        '_clock', '_scheduler', '_last_applied_ms', '_pending', '_flush_handles',
        '_update_count', '_update_start_time',
    )

    def __init__(
        self,
        store: BookStore,
        update_interval_ms: int = UPDATE_INTERVAL_MS,
        max_depth: int = MAX_DEPTH,
        clock: Callable[[], float] = time.monotonic,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self.store = store
        self.update_interval_ms = update_interval_ms
        self.max_depth = max_depth

        # Last applied snapshot per venue
        self.snapshots: dict[Venue, BookSnapshot] = {}

        self._clock = clock
        self._scheduler = scheduler
        self._last_applied_ms: dict[Venue, float] = {}
        self._pending: dict[Venue, CanonicalMutation] = {}
        self._flush_handles: dict[Venue, Any] = {}

        # Performance tracking
        self._update_count: int = 0
        self._update_start_time: float = time.perf_counter()

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def offer(self, venue: Venue, mutation: CanonicalMutation) -> Optional[BookSnapshot]:
        """
        Apply now or buffer, depending on the throttle window.

        HOT PATH - called for every book push.

        Returns the applied snapshot, or None if the mutation was buffered or ignored.
        """
        if venue is not self.store.venue:
            LOG.debug("dropping %s mutation, active venue is %s", venue.value, self.store.venue.value)
            return None
        if not mutation.bids and not mutation.asks:
            return None

        now = self._now_ms()
        last = self._last_applied_ms.get(venue)

        # Bootstrap: an empty book always takes the first update
        if self.store.is_empty or last is None or now - last >= self.update_interval_ms:
            self._pending.pop(venue, None)
            self._cancel_flush(venue)
            return self._apply(venue, mutation, now)

        self._pending[venue] = mutation
        if venue not in self._flush_handles:
            delay_sec = max(0.0, (last + self.update_interval_ms - now) / 1000.0)
            handle = self._schedule(delay_sec, self.flush, venue)
            if handle is not None:
                self._flush_handles[venue] = handle
        return None

    def flush(self, venue: Venue) -> Optional[BookSnapshot]:
        """Apply the pending mutation for a venue, if any. Timer callback."""
        self._flush_handles.pop(venue, None)
        mutation = self._pending.pop(venue, None)
        if mutation is None or venue is not self.store.venue:
            return None
        return self._apply(venue, mutation, self._now_ms())

    def has_pending(self, venue: Venue) -> bool:
        return venue in self._pending

    def reset(self, venue: Optional[Venue] = None) -> None:
        """Forget throttle state and pending data for one venue, or all of them."""
        venues = [venue] if venue is not None else list(
            set(self._pending) | set(self._last_applied_ms) | set(self._flush_handles)
            | set(self.snapshots)
        )
        for v in venues:
            self._cancel_flush(v)
            self._pending.pop(v, None)
            self._last_applied_ms.pop(v, None)
            self.snapshots.pop(v, None)

    def _apply(self, venue: Venue, mutation: CanonicalMutation, now: float) -> BookSnapshot:
        bids = build_side(mutation.bids, descending=True, depth=self.max_depth)
        asks = build_side(mutation.asks, descending=False, depth=self.max_depth)

        snapshot = BookSnapshot(venue, self.store.symbol, bids, asks, mutation.last_update_id)
        self.snapshots[venue] = snapshot
        self._last_applied_ms[venue] = now
        self._update_count += 1

        if bids == self.store.bids and asks == self.store.asks:
            # Nothing visible changed; valid data still proves the feed is alive
            if self.store.error is not None:
                self.store.set_error(None)
            return snapshot

        self.store.update_order_book(bids, asks, mutation.last_update_id)
        return snapshot

    def _schedule(self, delay_sec: float, callback: Callable[..., Any], *args: Any) -> Any:
        if self._scheduler is not None:
            return self._scheduler(delay_sec, callback, *args)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the pending mutation goes out with the next push instead
            return None
        return loop.call_later(delay_sec, callback, *args)

    def _cancel_flush(self, venue: Venue) -> None:
        handle = self._flush_handles.pop(venue, None)
        if handle is not None:
            handle.cancel()

    def get_updates_per_sec(self) -> float:
        """Return applied update rate for performance monitoring."""
        elapsed = time.perf_counter() - self._update_start_time
        if elapsed < 0.001:
            return 0.0
        return self._update_count / elapsed

    def reset_perf_counters(self) -> None:
        """Reset performance counters."""
        self._update_count = 0
        self._update_start_time = time.perf_counter()
