"""
Order impact simulator.

simulate() walks the opposite side of the book with a hypothetical order and
reports what it would have cost. It never touches book state.

Rules:
- Buy orders consume asks, sell orders consume bids, best level first
- Market orders take the best opposite level as their reference price and
  only stop when filled or out of depth
- Limit orders stop before the first level that is worse than their price
- Invalid input (non-positive quantity or limit price, no reference price)
  yields None instead of raising
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence

from ..types import ImpactResult, OrderKind, PriceLevel, SimulatedOrder, Side


class BookLike(Protocol):
    bids: Sequence[PriceLevel]
    asks: Sequence[PriceLevel]


def mid_price(book: BookLike) -> float:
    """Mid of best bid/ask. Falls back to whichever side exists, 0.0 if no book."""
    bb = book.bids[0].price if book.bids else 0.0
    ba = book.asks[0].price if book.asks else 0.0
    if bb > 0 and ba > 0:
        return (bb + ba) / 2.0
    return bb or ba


def _crosses(side: Side, level_price: float, limit_price: float) -> bool:
    if side is Side.BUY:
        return level_price > limit_price
    return level_price < limit_price


def simulate(order: SimulatedOrder, book: BookLike) -> Optional[ImpactResult]:
    """
    Price a hypothetical order against the current book.

    Args:
        order: Kind, side, quantity and (for limit orders) price
        book: Anything with sorted bids/asks, e.g. BookSnapshot or BookView

    Returns ImpactResult, or None when the order cannot be evaluated.
    """
    quantity = order.quantity
    if not quantity > 0:
        return None

    levels = book.asks if order.side is Side.BUY else book.bids
    is_limit = order.kind is OrderKind.LIMIT

    if is_limit:
        if order.price is None or not order.price > 0:
            return None
        target_price = order.price
    else:
        if not levels:
            return None
        target_price = levels[0].price

    mid = mid_price(book)
    if mid <= 0:
        return None

    remaining = quantity
    filled = 0.0
    cost = 0.0
    last_price = target_price
    depth_levels = 0

    for level in levels:
        if remaining <= 0:
            break
        depth_levels += 1
        if is_limit and _crosses(order.side, level.price, target_price):
            break
        fill_qty = min(remaining, level.size)
        cost += fill_qty * level.price
        filled += fill_qty
        remaining -= fill_qty
        last_price = level.price

    fill_pct = filled / quantity * 100.0
    avg_price = cost / filled if filled > 0 else target_price

    if is_limit:
        if order.side is Side.BUY:
            slippage_pct = (avg_price - target_price) / target_price * 100.0
        else:
            slippage_pct = (target_price - avg_price) / target_price * 100.0
    else:
        slippage_pct = (avg_price - mid) / mid * 100.0

    filled_completely = remaining <= 0

    # Rough: one to five minutes per level for the unfilled remainder
    minutes_to_fill = None
    if is_limit and not filled_completely:
        minutes_to_fill = max(1.0, depth_levels / 2) * (100.0 - fill_pct) / 20.0

    return ImpactResult(
        fill_percentage=fill_pct,
        filled_quantity=filled,
        average_price=avg_price,
        slippage_percent=slippage_pct,
        estimated_cost=cost,
        worst_price=last_price,
        depth_levels_consumed=depth_levels,
        impact_bps=abs(last_price - mid) / mid * 10000.0,
        price_movement=abs(last_price - mid),
        mid_price=mid,
        immediate_execution=filled_completely,
        estimated_minutes_to_fill=minutes_to_fill,
    )
