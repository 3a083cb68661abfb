"""
Market depth curve for charting.

Vectorised with numpy: both sides are cumulated from the top of book outward,
then merged into one price-ascending series (bid volume is zero on ask rows
and vice versa).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, NamedTuple, Sequence

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray

from ..types import PriceLevel


class DepthCurve(NamedTuple):
    prices: NDArray[np.float64]       # Ascending
    bid_volume: NDArray[np.float64]   # Cumulative from best bid, 0 on ask rows
    ask_volume: NDArray[np.float64]   # Cumulative from best ask, 0 on bid rows


def _side_arrays(levels: Sequence[PriceLevel], descending: bool) -> tuple[NDArray, NDArray]:
    if not levels:
        empty = np.empty(0, dtype=np.float64)
        return empty, empty
    prices = np.fromiter((l.price for l in levels), dtype=np.float64, count=len(levels))
    sizes = np.fromiter((l.size for l in levels), dtype=np.float64, count=len(levels))
    order = np.argsort(-prices if descending else prices, kind="stable")
    return prices[order], np.cumsum(sizes[order])


def depth_curve(bids: Sequence[PriceLevel], asks: Sequence[PriceLevel]) -> DepthCurve:
    """Build the combined depth series. Input sides need not be sorted."""
    bid_prices, bid_cum = _side_arrays(bids, descending=True)
    ask_prices, ask_cum = _side_arrays(asks, descending=False)

    prices = np.concatenate([bid_prices, ask_prices])
    bid_volume = np.concatenate([bid_cum, np.zeros(len(ask_prices))])
    ask_volume = np.concatenate([np.zeros(len(bid_prices)), ask_cum])

    order = np.argsort(prices, kind="stable")
    return DepthCurve(prices[order], bid_volume[order], ask_volume[order])


def spread(bids: Sequence[PriceLevel], asks: Sequence[PriceLevel]) -> float:
    """Best ask minus best bid. 0.0 unless both sides exist."""
    if not bids or not asks:
        return 0.0
    return asks[0].price - bids[0].price


def spread_bps(bids: Sequence[PriceLevel], asks: Sequence[PriceLevel]) -> float:
    if not bids or not asks:
        return 0.0
    mid = (bids[0].price + asks[0].price) / 2.0
    return spread(bids, asks) / mid * 10000 if mid > 0 else 0.0
