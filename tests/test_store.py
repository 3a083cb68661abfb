"""
Tests for BookStore actions and the views it hands to readers.
"""

from dom_simulator.datafeed.orderbook import build_side
from dom_simulator.datafeed.store import BookStore
from dom_simulator.types import OrderKind, SimulatedOrder, Side, Venue


def loaded_store(clock):
    store = BookStore(Venue.DERIBIT, "BTC-PERPETUAL", clock=clock)
    store.update_order_book(
        build_side([(99, 1)], descending=True),
        build_side([(100, 1)], descending=False),
        7,
    )
    return store


def test_initial_state():
    store = BookStore()
    view = store.view()

    assert view.venue is Venue.DERIBIT
    assert view.symbol == "BTC-PERPETUAL"
    assert view.bids == () and view.asks == ()
    assert view.error is None
    assert view.simulated_order is None
    assert view.order_history == ()


def test_update_samples_top_of_book(clock):
    store = loaded_store(clock)

    assert [p.price for p in store.price_history] == [99, 100]
    assert all(p.timestamp_ms == 1_000_000 for p in store.price_history)


def test_venue_switch_is_full_reset(clock):
    store = loaded_store(clock)
    order = SimulatedOrder(OrderKind.MARKET, Side.BUY, 100.0, 1.0)
    store.set_simulated_order(order)
    store.set_error("Deribit error: boom")

    store.set_venue(Venue.OKX)
    view = store.view()

    assert view.venue is Venue.OKX
    assert view.bids == () and view.asks == ()
    assert view.last_update_id == 0
    assert view.error is None
    assert view.simulated_order is None
    assert view.price_history == ()
    assert view.loading is True
    # History of simulated orders is kept across venues
    assert view.order_history == (order,)


def test_symbol_switch_is_full_reset(clock):
    store = loaded_store(clock)
    store.set_symbol("ETH-PERPETUAL")

    assert store.symbol == "ETH-PERPETUAL"
    assert store.is_empty
    assert len(store.price_history) == 0


def test_error_replaces_loading(clock):
    store = BookStore(clock=clock)
    store.set_loading(True)
    store.set_error("OKX error: bad instId")

    assert store.loading is False
    assert store.view().error == "OKX error: bad instId"


def test_listeners_receive_views(clock):
    store = BookStore(clock=clock)
    seen = []
    store.subscribe(seen.append)

    store.set_error("x")
    store.set_error(None)
    store.unsubscribe(seen.append)
    store.set_error("y")

    assert [v.error for v in seen] == ["x", None]


def test_view_is_a_stable_copy(clock):
    store = loaded_store(clock)
    view = store.view()
    store.set_symbol("ETH-PERPETUAL")

    assert view.bids[0].price == 99
    assert len(view.price_history) == 2


def test_clear_histories(clock):
    store = loaded_store(clock)
    store.set_simulated_order(SimulatedOrder(OrderKind.LIMIT, Side.SELL, 101.0, 2.0))

    store.clear_order_history()
    store.clear_price_history()

    assert store.order_history == []
    assert len(store.price_history) == 0
    assert store.simulated_order is not None
