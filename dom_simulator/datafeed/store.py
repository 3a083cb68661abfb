"""
Book store: the single source of truth the UI and the simulator read.

The aggregator is the only writer of book state. Every action rebuilds the
affected fields and notifies listeners with an immutable BookView, so readers
never see a half-applied update.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Callable, Optional

from ..config import DEFAULT_SYMBOL, DEFAULT_VENUE, PRICE_HISTORY_CAPACITY
from ..types import BookView, PriceLevel, PricePoint, QuoteSide, SimulatedOrder, Venue

LOG = logging.getLogger(__name__)

Listener = Callable[[BookView], None]


class BookStore:
    """
    Holds the active venue/symbol book plus simulation state.

    Thread-safety: NOT thread-safe. Designed for single-threaded async use.
    """

    def __init__(
        self,
        venue: Venue = DEFAULT_VENUE,
        symbol: str = DEFAULT_SYMBOL,
        price_history_capacity: int = PRICE_HISTORY_CAPACITY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.venue = venue
        self.symbol = symbol
        self.bids: tuple[PriceLevel, ...] = ()
        self.asks: tuple[PriceLevel, ...] = ()
        self.last_update_id: int = 0
        self.loading: bool = False
        self.error: Optional[str] = None
        self.simulated_order: Optional[SimulatedOrder] = None
        self.order_history: list[SimulatedOrder] = []
        # FIFO ring buffer, oldest evicted first
        self.price_history: deque[PricePoint] = deque(maxlen=price_history_capacity)

        self._clock = clock
        self._listeners: list[Listener] = []

    # -- read side --------------------------------------------------------

    @property
    def is_empty(self) -> bool:
        return not self.bids and not self.asks

    def view(self) -> BookView:
        return BookView(
            venue=self.venue,
            symbol=self.symbol,
            bids=self.bids,
            asks=self.asks,
            last_update_id=self.last_update_id,
            loading=self.loading,
            error=self.error,
            simulated_order=self.simulated_order,
            order_history=tuple(self.order_history),
            price_history=tuple(self.price_history),
        )

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def _notify(self) -> None:
        if not self._listeners:
            return
        view = self.view()
        for listener in list(self._listeners):
            listener(view)

    # -- actions ----------------------------------------------------------

    def update_order_book(
        self,
        bids: tuple[PriceLevel, ...],
        asks: tuple[PriceLevel, ...],
        last_update_id: int,
    ) -> None:
        """Replace both sides, clear loading/error and sample top of book."""
        self.bids = bids
        self.asks = asks
        self.last_update_id = last_update_id
        self.loading = False
        self.error = None

        if bids and asks:
            ts = int(self._clock() * 1000)
            self.price_history.append(PricePoint(ts, bids[0].price, QuoteSide.BID))
            self.price_history.append(PricePoint(ts, asks[0].price, QuoteSide.ASK))

        self._notify()

    def set_error(self, message: Optional[str]) -> None:
        if message == self.error and not self.loading:
            return
        self.error = message
        self.loading = False
        self._notify()

    def set_loading(self, loading: bool) -> None:
        self.loading = loading
        self._notify()

    def set_venue(self, venue: Venue) -> None:
        self.venue = venue
        self._reset()

    def set_symbol(self, symbol: str) -> None:
        self.symbol = symbol
        self._reset()

    def _reset(self) -> None:
        """Full reset on venue/symbol change. Order history survives."""
        self.bids = ()
        self.asks = ()
        self.last_update_id = 0
        self.error = None
        self.simulated_order = None
        self.price_history.clear()
        self.loading = True
        LOG.debug("store reset for %s %s", self.venue.value, self.symbol)
        self._notify()

    def set_simulated_order(self, order: Optional[SimulatedOrder]) -> None:
        self.simulated_order = order
        if order is not None:
            self.order_history.insert(0, order)
        self._notify()

    def clear_order_history(self) -> None:
        self.order_history.clear()
        self._notify()

    def clear_price_history(self) -> None:
        self.price_history.clear()
        self._notify()
