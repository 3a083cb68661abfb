"""
End-to-end tests for MarketFeed with in-memory transports: raw frames in,
canonical book and simulation results out, venue switching as a full reset.
"""

import pytest

from dom_simulator.config import FeedSettings
from dom_simulator.datafeed.feed import MarketFeed
from dom_simulator.types import Venue

from conftest import deribit_book, okx_book, settle

pytestmark = pytest.mark.asyncio


@pytest.fixture
def feed(transports):
    return MarketFeed(Venue.DERIBIT, "BTC-PERPETUAL", settings=FeedSettings(), transport_factory=transports)


async def test_first_push_bootstraps_the_book(feed, transports):
    feed.start()
    assert feed.view().loading

    await settle()
    transports.last.push(deribit_book(
        [("new", 100.0, 1.0), ("new", 99.5, 2.0)],
        [("new", 100.5, 3.0), ("delete", 101.0, 0.0)],
        change_id=11,
    ))
    await settle()

    view = feed.view()
    assert not view.loading
    assert [(l.price, l.cumulative_total) for l in view.bids] == [(100.0, 1.0), (99.5, 3.0)]
    assert [l.price for l in view.asks] == [100.5]
    assert view.last_update_id == 11
    assert len(view.price_history) == 2
    await feed.aclose()


async def test_views_are_queued_for_the_ui(feed, transports):
    feed.start()
    await settle()
    transports.last.push(deribit_book([("new", 100.0, 1.0)], [("new", 101.0, 1.0)]))
    await settle()

    views = []
    while not feed.snapshot_queue.empty():
        views.append(feed.snapshot_queue.get_nowait())

    assert views
    assert views[-1].bids[0].price == 100.0
    assert len(views) <= 5
    await feed.aclose()


async def test_simulate_against_live_book(feed, transports):
    feed.start()
    await settle()
    transports.last.push(deribit_book([("new", 99.0, 1.0)], [("new", 100.0, 2.0), ("new", 101.0, 3.0)]))
    await settle()

    impact = feed.simulate("market", "buy", 4)

    assert impact.filled_quantity == 4
    assert impact.average_price == pytest.approx(100.5)
    assert feed.view().order_history[0].impact == impact
    await feed.aclose()


async def test_venue_error_then_data_clears_it(feed, transports):
    feed.start()
    await settle()
    transports.last.push({"jsonrpc": "2.0", "id": 2, "error": {"message": "Invalid params", "code": 10001}})
    await settle()
    assert feed.view().error == "Deribit error: Invalid params (code 10001)"

    transports.last.push(deribit_book([("new", 99.0, 1.0)], [("new", 100.0, 1.0)]))
    await settle()
    assert feed.view().error is None
    await feed.aclose()


async def test_venue_switch_resets_everything(feed, transports):
    feed.start()
    await settle()
    deribit = transports.last
    record = feed.connections.get(Venue.DERIBIT, "BTC-PERPETUAL")
    heartbeats = list(record.heartbeats)

    deribit.push(deribit_book([("new", 99.0, 1.0)], [("new", 100.0, 1.0)]))
    await settle()
    feed.simulate("market", "buy", 1, delay_ms=5000)
    feed.store.set_error("Deribit error: stale")

    feed.set_venue("okx")

    view = feed.view()
    assert view.venue is Venue.OKX
    assert view.bids == () and view.asks == ()
    assert view.error is None
    assert view.simulated_order is None
    assert view.price_history == ()
    assert record.heartbeats == []
    assert feed.connections.get(Venue.DERIBIT, "BTC-PERPETUAL") is None

    await settle()
    assert all(task.cancelled() for task in heartbeats)
    assert deribit.close_args == (1000, "Disconnecting")

    okx = transports.last
    assert okx is not deribit
    assert okx.url == "wss://ws.okx.com:8443/ws/v5/public"

    # Late frames from the old socket can no longer touch the book
    deribit.push(deribit_book([("new", 1.0, 1.0)], [("new", 2.0, 1.0)]))
    okx.push(okx_book([(100, 1)], [(101, 1)]))
    await settle()
    assert feed.view().bids[0].price == 100
    await feed.aclose()


async def test_symbol_switch_reconnects_same_venue(feed, transports):
    feed.start()
    await settle()
    old = transports.last

    feed.set_symbol("ETH-PERPETUAL")
    await settle()

    assert old.close_args == (1000, "Disconnecting")
    assert feed.view().symbol == "ETH-PERPETUAL"
    subscribe = transports.last.sent_json[1]
    assert subscribe["params"]["channels"] == ["book.ETH-PERPETUAL.100ms"]
    await feed.aclose()
