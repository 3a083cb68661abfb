"""
Multi-venue feed with async orchestration.

Wires together:
1. BookStore - canonical book, errors, simulation and price history
2. OrderBookAggregator - throttled apply of adapter output
3. ConnectionManager - sockets, heartbeats, reconnects
4. OrderSimulator - what-if orders against the live book

and pushes a BookView to a bounded queue for the UI after every store change.
"""

from __future__ import annotations

import logging
import queue
from typing import Callable, Optional

from ..config import DEFAULT_SYMBOL, DEFAULT_VENUE, FeedSettings
from ..engine.orders import OrderSimulator
from ..types import BookView, ImpactResult, OrderKind, Side, Venue
from .connection import ConnectionManager
from .orderbook import OrderBookAggregator
from .store import BookStore
from .transport import AiohttpTransport, Transport

LOG = logging.getLogger(__name__)


class MarketFeed:
    """
    Read-only market data + order simulation for one active venue/symbol.

    Usage:
        feed = MarketFeed(Venue.DERIBIT, "BTC-PERPETUAL")
        feed.start()            # inside a running event loop
        view = feed.snapshot_queue.get()
        feed.simulate("market", "buy", 1.0)
        await feed.aclose()
    """

    def __init__(
        self,
        venue: Venue | str = DEFAULT_VENUE,
        symbol: str = DEFAULT_SYMBOL,
        settings: Optional[FeedSettings] = None,
        transport_factory: Callable[[], Transport] = AiohttpTransport,
        queue_size: int = 5,
    ) -> None:
        self.settings = settings or FeedSettings()

        self.store = BookStore(
            Venue.parse(venue), symbol,
            price_history_capacity=self.settings.price_history_capacity,
        )
        self.aggregator = OrderBookAggregator(
            self.store,
            update_interval_ms=self.settings.update_interval_ms,
            max_depth=self.settings.max_depth,
        )
        self.connections = ConnectionManager(
            self.aggregator.offer,
            self.store.set_error,
            settings=self.settings,
            transport_factory=transport_factory,
        )
        self.orders = OrderSimulator(self.store)

        # Output queue for UI - thread-safe queue for cross-thread access
        self.snapshot_queue: queue.Queue[BookView] = queue.Queue(maxsize=queue_size)
        self.store.subscribe(self._push_view)

    @property
    def venue(self) -> Venue:
        return self.store.venue

    @property
    def symbol(self) -> str:
        return self.store.symbol

    def view(self) -> BookView:
        return self.store.view()

    def start(self) -> None:
        """Connect the active venue/symbol. Must run inside the event loop."""
        self.store.set_loading(True)
        self.connections.connect(self.venue, self.symbol)

    def set_venue(self, venue: Venue | str) -> None:
        """Switch venue: disconnect the old feed, reset all book state, reconnect."""
        venue = Venue.parse(venue)
        if venue is self.venue:
            return
        LOG.info("switching venue %s -> %s", self.venue.value, venue.value)
        self.connections.disconnect(self.venue)
        self._reset()
        self.store.set_venue(venue)
        self.connections.connect(venue, self.symbol)

    def set_symbol(self, symbol: str) -> None:
        """Switch symbol on the active venue with the same full reset."""
        if symbol == self.symbol:
            return
        LOG.info("switching symbol %s -> %s", self.symbol, symbol)
        self.connections.disconnect(self.venue)
        self._reset()
        self.store.set_symbol(symbol)
        self.connections.connect(self.venue, symbol)

    def _reset(self) -> None:
        self.aggregator.reset()
        self.orders.cancel_expiry()

    def simulate(
        self,
        kind: OrderKind | str,
        side: Side | str,
        quantity: float,
        price: Optional[float] = None,
        delay_ms: int = 0,
    ) -> Optional[ImpactResult]:
        return self.orders.simulate(kind, side, quantity, price, delay_ms)

    def clear_order_history(self) -> None:
        self.orders.clear_history()

    def connect(self, venue: Venue | str, symbol: str) -> None:
        self.connections.connect(venue, symbol)

    def disconnect(self, venue: Venue | str) -> None:
        self.connections.disconnect(venue)

    def disconnect_all(self) -> None:
        self.connections.disconnect_all()

    async def aclose(self) -> None:
        self._reset()
        await self.connections.aclose()

    def _push_view(self, view: BookView) -> None:
        """Non-blocking put, drop oldest if the UI is behind."""
        try:
            self.snapshot_queue.put_nowait(view)
        except queue.Full:
            try:
                self.snapshot_queue.get_nowait()
            except queue.Empty:
                pass
            self.snapshot_queue.put_nowait(view)
