"""
Data types for the DOM Simulator.

Performance notes:
- Using NamedTuple for immutable, memory-efficient structures
- A BookSnapshot is replaced wholesale on every applied update, never patched,
  so any reference a reader holds stays internally consistent
"""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple, Optional

from .errors import UnsupportedVenueError


class Venue(str, Enum):
    """Supported venues. OKX sends full snapshots, Deribit sends tagged batches."""
    OKX = "okx"
    DERIBIT = "deribit"

    @classmethod
    def parse(cls, value: str | Venue) -> Venue:
        """Case-insensitive lookup, e.g. 'Deribit' -> Venue.DERIBIT."""
        if isinstance(value, Venue):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise UnsupportedVenueError(f"Unsupported venue: {value}") from None

    @property
    def label(self) -> str:
        return "OKX" if self is Venue.OKX else "Deribit"


class OrderKind(str, Enum):
    MARKET = "market"
    LIMIT = "limit"


class Side(str, Enum):
    BUY = "buy"
    SELL = "sell"


class QuoteSide(str, Enum):
    BID = "bid"
    ASK = "ask"


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"


class PriceLevel(NamedTuple):
    """Single price level. cumulative_total is the running size sum from the top of book."""
    price: float
    size: float
    cumulative_total: float


class CanonicalMutation(NamedTuple):
    """
    Venue-independent book update produced by a protocol adapter.

    Rows are (price, size) pairs, deduplicated, positive size only, in no
    particular order. Sorting and truncation belong to the aggregator.
    """
    bids: list[tuple[float, float]]
    asks: list[tuple[float, float]]
    last_update_id: int


class BookSnapshot(NamedTuple):
    """Canonical book for one venue/symbol as built by the aggregator."""
    venue: Venue
    symbol: str
    bids: tuple[PriceLevel, ...]  # Descending (best bid first)
    asks: tuple[PriceLevel, ...]  # Ascending (best ask first)
    last_update_id: int

    @property
    def best_bid(self) -> float:
        """Best bid price. Returns 0.0 if no bids."""
        return self.bids[0].price if self.bids else 0.0

    @property
    def best_ask(self) -> float:
        """Best ask price. Returns 0.0 if no asks."""
        return self.asks[0].price if self.asks else 0.0


class PricePoint(NamedTuple):
    """Top-of-book sample for the price history series."""
    timestamp_ms: int
    price: float
    side: QuoteSide


class ImpactResult(NamedTuple):
    """
    Outcome of walking the book with a hypothetical order.

    estimated_minutes_to_fill is a coarse heuristic for resting limit orders,
    not a queueing model. It is None for market orders and complete fills.
    """
    fill_percentage: float
    filled_quantity: float
    average_price: float
    slippage_percent: float
    estimated_cost: float
    worst_price: float
    depth_levels_consumed: int
    impact_bps: float
    price_movement: float
    mid_price: float
    immediate_execution: bool
    estimated_minutes_to_fill: Optional[float] = None


class SimulatedOrder(NamedTuple):
    """A what-if order. price is the resolved reference price for market orders."""
    kind: OrderKind
    side: Side
    price: Optional[float]
    quantity: float
    delay_ms: int = 0
    created_at_ms: int = 0
    impact: Optional[ImpactResult] = None


class BookView(NamedTuple):
    """
    Complete read model for the presentation layer.

    Pushed to the UI queue after every store action.
    """
    venue: Venue
    symbol: str
    bids: tuple[PriceLevel, ...]
    asks: tuple[PriceLevel, ...]
    last_update_id: int
    loading: bool
    error: Optional[str]
    simulated_order: Optional[SimulatedOrder]
    order_history: tuple[SimulatedOrder, ...]  # Most recent first
    price_history: tuple[PricePoint, ...]      # Oldest first

    @property
    def best_bid(self) -> float:
        return self.bids[0].price if self.bids else 0.0

    @property
    def best_ask(self) -> float:
        return self.asks[0].price if self.asks else 0.0

    @property
    def mid_price(self) -> float:
        """Mid price. Falls back to whichever side exists, 0.0 if no book."""
        bb, ba = self.best_bid, self.best_ask
        if bb > 0 and ba > 0:
            return (bb + ba) / 2.0
        return bb or ba
