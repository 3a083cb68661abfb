"""
Simulation session: runs what-if orders against the store's current book.

Each simulation produces a new immutable SimulatedOrder that replaces the
previous one. A delayed order owns one cancellable expiry timer; superseding
or resetting cancels it so it can never clear a newer order.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Optional

from ..datafeed.store import BookStore
from ..types import ImpactResult, OrderKind, SimulatedOrder, Side
from .impact import simulate

LOG = logging.getLogger(__name__)


class OrderSimulator:
    """Thread-safety: NOT thread-safe. Designed for single-threaded async use."""

    def __init__(
        self,
        store: BookStore,
        scheduler: Optional[Callable[..., Any]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self._scheduler = scheduler
        self._clock = clock
        self._expiry: Any = None

    def simulate(
        self,
        kind: OrderKind | str,
        side: Side | str,
        quantity: float,
        price: Optional[float] = None,
        delay_ms: int = 0,
    ) -> Optional[ImpactResult]:
        """
        Evaluate an order and record it as the current simulated order.

        Returns None (and records nothing) when the order cannot be evaluated.
        """
        kind = OrderKind(kind)
        side = Side(side)
        view = self.store.view()

        order = SimulatedOrder(
            kind=kind,
            side=side,
            price=price if kind is OrderKind.LIMIT else None,
            quantity=quantity,
            delay_ms=delay_ms,
            created_at_ms=int(self._clock() * 1000),
        )
        impact = simulate(order, view)
        if impact is None:
            LOG.debug("simulation rejected: %s %s qty=%s price=%s", kind.value, side.value, quantity, price)
            return None

        if kind is OrderKind.MARKET:
            ref_price = view.best_ask if side is Side.BUY else view.best_bid
            order = order._replace(price=ref_price, impact=impact)
        else:
            order = order._replace(impact=impact)

        self.cancel_expiry()
        self.store.set_simulated_order(order)
        if delay_ms > 0:
            self._expiry = self._schedule(delay_ms / 1000.0, self._expire, order)
        return impact

    def _expire(self, order: SimulatedOrder) -> None:
        if self.store.simulated_order is not order:
            return
        self._expiry = None
        self.store.set_simulated_order(None)

    def cancel_expiry(self) -> None:
        if self._expiry is not None:
            self._expiry.cancel()
            self._expiry = None

    def clear_history(self) -> None:
        self.store.clear_order_history()

    def _schedule(self, delay_sec: float, callback: Callable[..., Any], *args: Any) -> Any:
        if self._scheduler is not None:
            return self._scheduler(delay_sec, callback, *args)
        return asyncio.get_running_loop().call_later(delay_sec, callback, *args)
