"""
Tests for the order impact simulator.

All scenarios use small hand-built books with hand-calculated expected values.
"""

import pytest

from dom_simulator.engine.impact import mid_price, simulate
from dom_simulator.types import OrderKind, SimulatedOrder, Side

from conftest import make_book


def order(kind, side, quantity, price=None):
    return SimulatedOrder(kind=kind, side=side, price=price, quantity=quantity)


@pytest.fixture
def book():
    return make_book(bids=[(99, 1), (98, 2)], asks=[(100, 2), (101, 3)])


class TestMarketOrders:

    def test_buy_walks_two_levels(self, book):
        result = simulate(order(OrderKind.MARKET, Side.BUY, 4), book)

        assert result.filled_quantity == 4
        assert result.fill_percentage == 100
        assert result.average_price == pytest.approx(100.5)
        assert result.depth_levels_consumed == 2
        assert result.estimated_cost == pytest.approx(402)
        assert result.worst_price == 101
        assert result.immediate_execution
        assert result.estimated_minutes_to_fill is None

    def test_slippage_and_impact_relative_to_mid(self, book):
        result = simulate(order(OrderKind.MARKET, Side.BUY, 4), book)

        assert result.mid_price == pytest.approx(99.5)
        assert result.slippage_percent == pytest.approx((100.5 - 99.5) / 99.5 * 100)
        assert result.impact_bps == pytest.approx(1.5 / 99.5 * 10000)
        assert result.price_movement == pytest.approx(1.5)

    def test_sell_consumes_bids(self, book):
        result = simulate(order(OrderKind.MARKET, Side.SELL, 2), book)

        assert result.filled_quantity == 2
        assert result.average_price == pytest.approx((99 * 1 + 98 * 1) / 2)
        assert result.depth_levels_consumed == 2
        assert result.slippage_percent < 0

    def test_exhausted_depth_partial_fill(self, book):
        result = simulate(order(OrderKind.MARKET, Side.BUY, 10), book)

        assert result.filled_quantity == 5
        assert result.fill_percentage == pytest.approx(50)
        assert not result.immediate_execution
        assert result.estimated_minutes_to_fill is None

    def test_market_order_ignores_price_field(self, book):
        result = simulate(order(OrderKind.MARKET, Side.BUY, 1, price=-5), book)
        assert result.average_price == 100

    def test_empty_relevant_side_returns_none(self):
        book = make_book(bids=[(99, 1)], asks=[])
        assert simulate(order(OrderKind.MARKET, Side.BUY, 1), book) is None


class TestLimitOrders:

    def test_buy_stops_before_crossing_level(self, book):
        result = simulate(order(OrderKind.LIMIT, Side.BUY, 4, price=100), book)

        assert result.filled_quantity == 2
        assert result.fill_percentage == pytest.approx(50)
        assert result.average_price == 100
        assert result.depth_levels_consumed == 2
        assert result.slippage_percent == 0
        # The crossing ask at 101 is visited and counted
        # max(1, 2/2) * (100 - 50) / 20
        assert result.estimated_minutes_to_fill == pytest.approx(2.5)

    def test_sell_stops_below_limit(self, book):
        result = simulate(order(OrderKind.LIMIT, Side.SELL, 3, price=98.5), book)

        assert result.filled_quantity == 1
        assert result.worst_price == 99
        assert result.depth_levels_consumed == 2

    def test_favorable_fill_has_non_positive_slippage(self, book):
        buy = simulate(order(OrderKind.LIMIT, Side.BUY, 2, price=105), book)
        sell = simulate(order(OrderKind.LIMIT, Side.SELL, 1, price=90), book)

        assert buy.slippage_percent == pytest.approx((100 - 105) / 105 * 100)
        assert buy.slippage_percent <= 0
        assert sell.slippage_percent == pytest.approx((90 - 99) / 90 * 100)
        assert sell.slippage_percent <= 0

    def test_nothing_fills_uses_target_price(self, book):
        result = simulate(order(OrderKind.LIMIT, Side.BUY, 1, price=95), book)

        assert result.filled_quantity == 0
        assert result.fill_percentage == 0
        assert result.average_price == 95
        assert result.worst_price == 95
        assert result.depth_levels_consumed == 1
        assert result.estimated_cost == 0
        # max(1, 1/2) * 100 / 20
        assert result.estimated_minutes_to_fill == pytest.approx(5.0)

    def test_complete_fill_has_no_time_estimate(self, book):
        result = simulate(order(OrderKind.LIMIT, Side.BUY, 5, price=101), book)

        assert result.immediate_execution
        assert result.estimated_minutes_to_fill is None

    def test_limit_against_empty_side_still_evaluates(self):
        book = make_book(bids=[(99, 1)], asks=[])
        result = simulate(order(OrderKind.LIMIT, Side.BUY, 1, price=98), book)

        assert result.filled_quantity == 0
        assert result.mid_price == 99


@pytest.mark.parametrize("bad", [
    order(OrderKind.MARKET, Side.BUY, 0),
    order(OrderKind.MARKET, Side.BUY, -1),
    order(OrderKind.LIMIT, Side.BUY, 1, price=0),
    order(OrderKind.LIMIT, Side.SELL, 1, price=-10),
    order(OrderKind.LIMIT, Side.SELL, 1, price=None),
])
def test_invalid_input_returns_none(book, bad):
    assert simulate(bad, book) is None


def test_empty_book_returns_none():
    assert simulate(order(OrderKind.LIMIT, Side.BUY, 1, price=100), make_book()) is None


def test_simulate_does_not_touch_book(book):
    before = (book.bids, book.asks)
    simulate(order(OrderKind.MARKET, Side.BUY, 100), book)
    assert (book.bids, book.asks) == before


def test_mid_price_fallbacks():
    assert mid_price(make_book(bids=[(99, 1)], asks=[(101, 1)])) == 100
    assert mid_price(make_book(bids=[(99, 1)])) == 99
    assert mid_price(make_book(asks=[(101, 1)])) == 101
    assert mid_price(make_book()) == 0
