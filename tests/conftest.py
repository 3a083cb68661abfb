"""
Pytest configuration and shared fakes.

Ensures the repo root is on sys.path so that 'import dom_simulator' works
without an install, and provides a manual clock, a manual scheduler and an
in-memory WebSocket transport.
"""
import asyncio
import json
import sys
from pathlib import Path

import pytest

# Add the repo root to sys.path
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from dom_simulator.datafeed.orderbook import build_side  # noqa: E402
from dom_simulator.datafeed.transport import WSEvent, WSEventKind  # noqa: E402
from dom_simulator.errors import TransportError  # noqa: E402
from dom_simulator.types import BookSnapshot, Venue  # noqa: E402


class FakeClock:
    """Monotonic clock in seconds, advanced by hand."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000.0


class FakeHandle:
    def __init__(self, delay, callback, args):
        self.delay = delay
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if self.cancelled or self.fired:
            return None
        self.fired = True
        return self.callback(*self.args)


class FakeScheduler:
    """Stands in for loop.call_later; timers fire only when the test says so."""

    def __init__(self):
        self.handles = []

    def __call__(self, delay, callback, *args):
        handle = FakeHandle(delay, callback, args)
        self.handles.append(handle)
        return handle

    @property
    def delays(self):
        return [h.delay for h in self.handles]

    @property
    def pending(self):
        return [h for h in self.handles if not h.cancelled and not h.fired]


class FakeTransport:
    """In-memory socket: tests push inbound frames, sent frames are recorded."""

    def __init__(self, fail_open: bool = False):
        self.fail_open = fail_open
        self.url = None
        self.sent = []
        self.close_args = None
        self._events = asyncio.Queue()

    async def open(self, url):
        self.url = url
        if self.fail_open:
            raise TransportError(f"connect to {url} failed: connection refused")

    async def send(self, text):
        self.sent.append(text)

    async def close(self, code, reason):
        self.close_args = (code, reason)
        self._events.put_nowait(WSEvent(WSEventKind.CLOSE, code=code))

    def push(self, payload):
        data = payload if isinstance(payload, str) else json.dumps(payload)
        self._events.put_nowait(WSEvent(WSEventKind.TEXT, data))

    def drop(self, code=1006):
        self._events.put_nowait(WSEvent(WSEventKind.CLOSE, code=code))

    @property
    def sent_json(self):
        return [json.loads(s) for s in self.sent if s != "ping"]

    async def __aiter__(self):
        while True:
            event = await self._events.get()
            yield event
            if event.kind is WSEventKind.CLOSE:
                return


class TransportFactory:
    """Creates FakeTransports; the first `failures` of them refuse to open."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.created = []

    def __call__(self):
        transport = FakeTransport(fail_open=self.failures > 0)
        if self.failures > 0:
            self.failures -= 1
        self.created.append(transport)
        return transport

    @property
    def last(self):
        return self.created[-1]


async def settle(rounds: int = 10) -> None:
    """Let pending tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_book(bids=(), asks=(), venue=Venue.DERIBIT, symbol="BTC-PERPETUAL", last_update_id=1):
    return BookSnapshot(
        venue,
        symbol,
        build_side(bids, descending=True),
        build_side(asks, descending=False),
        last_update_id,
    )


def okx_book(bids, asks, ts="1700000000000"):
    return {
        "arg": {"channel": "books", "instId": "BTC-USD-SWAP"},
        "action": "snapshot",
        "data": [{
            "bids": [[str(p), str(s), "0", "1"] for p, s in bids],
            "asks": [[str(p), str(s), "0", "1"] for p, s in asks],
            "ts": ts,
        }],
    }


def deribit_book(bids, asks, change_id=1):
    return {
        "jsonrpc": "2.0",
        "method": "subscription",
        "params": {
            "channel": "book.BTC-PERPETUAL.100ms",
            "data": {
                "type": "change",
                "bids": [list(row) for row in bids],
                "asks": [list(row) for row in asks],
                "change_id": change_id,
            },
        },
    }


@pytest.fixture
def clock():
    return FakeClock(start=1000.0)


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def transports():
    return TransportFactory()
