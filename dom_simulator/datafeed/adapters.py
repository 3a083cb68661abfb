"""
Protocol adapters: one raw venue message in, at most one CanonicalMutation out.

Two wire families are supported:
- OKX (snapshot-style): every "books" push carries the full level list per side
  as [priceStr, sizeStr, ...] rows.
- Deribit (delta-style JSON-RPC): "subscription" pushes carry rows tagged
  [action, price, size]; "delete" rows and non-positive sizes are dropped.

Adapters are pure. They also classify control traffic (acks, errors,
heartbeats) so the connection manager can route it without knowing the wire
format. Rows within one message are deduplicated by price, the later
occurrence in wire order wins. Malformed numeric fields raise ValueError,
which the connection manager treats as an undecodable frame.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Iterable, Optional

from ..config import okx_instrument
from ..types import CanonicalMutation, Venue


# Raised by parse() on rows of the wrong shape or type
PARSE_ERRORS = (ValueError, TypeError, IndexError, KeyError)


class MessageKind(Enum):
    BOOK = "book"
    ACK = "ack"
    ERROR = "error"
    HEARTBEAT = "heartbeat"
    OTHER = "other"


def _dedupe(rows: Iterable[tuple[float, float]]) -> list[tuple[float, float]]:
    """Collapse repeated prices, the later row wins. Non-positive sizes delete."""
    levels: dict[float, float] = {}
    for price, size in rows:
        if size > 0:
            levels[price] = size
        else:
            levels.pop(price, None)
    return list(levels.items())


class OKXAdapter:
    """OKX v5 public "books" channel."""

    venue = Venue.OKX

    @staticmethod
    def subscription(symbol: str, request_id: int = 0) -> dict:
        return {
            "op": "subscribe",
            "args": [{
                "channel": "books",
                "instId": okx_instrument(symbol),
                "updateInterval": "100ms",
            }],
        }

    @staticmethod
    def classify(message: dict) -> MessageKind:
        event = message.get("event")
        if event == "error":
            return MessageKind.ERROR
        if event in ("subscribe", "unsubscribe"):
            return MessageKind.ACK
        if "data" in message:
            return MessageKind.BOOK
        return MessageKind.OTHER

    @staticmethod
    def error_text(message: dict) -> str:
        code = message.get("code")
        text = message.get("msg") or "unknown error"
        return f"{text} (code {code})" if code else str(text)

    @staticmethod
    def parse(message: dict) -> Optional[CanonicalMutation]:
        """
        Expected format: {arg: {channel: "books", instId}, data: [{bids, asks, ts}]}

        Returns None for anything that is not a book push.
        """
        arg = message.get("arg")
        if isinstance(arg, dict) and arg.get("channel", "books") != "books":
            return None

        data = message.get("data")
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            return None
        book = data[0]
        if "bids" not in book and "asks" not in book:
            return None

        bids = _dedupe((float(row[0]), float(row[1])) for row in book.get("bids") or ())
        asks = _dedupe((float(row[0]), float(row[1])) for row in book.get("asks") or ())

        ts = book.get("ts")
        last_update_id = int(ts) if ts not in (None, "") else int(time.time() * 1000)
        return CanonicalMutation(bids, asks, last_update_id)


class DeribitAdapter:
    """Deribit v2 JSON-RPC "book.<instrument>.100ms" channel."""

    venue = Venue.DERIBIT

    @staticmethod
    def subscription(symbol: str, request_id: int = 0) -> dict:
        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": "public/subscribe",
            "params": {"channels": [f"book.{symbol}.100ms"]},
        }

    @staticmethod
    def set_heartbeat(interval: int, request_id: int = 0) -> dict:
        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": "public/set_heartbeat",
            "params": {"interval": interval},
        }

    @staticmethod
    def test_request(request_id: Any) -> dict:
        """public/test keepalive, also the mandatory reply to a test_request probe."""
        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": "public/test",
            "params": {},
        }

    @staticmethod
    def classify(message: dict) -> MessageKind:
        if message.get("error"):
            return MessageKind.ERROR
        method = message.get("method")
        if method == "heartbeat":
            return MessageKind.HEARTBEAT
        if method == "subscription":
            return MessageKind.BOOK
        if "result" in message:
            return MessageKind.ACK
        return MessageKind.OTHER

    @staticmethod
    def error_text(message: dict) -> str:
        error = message.get("error")
        if isinstance(error, dict):
            text = error.get("message") or "unknown error"
            code = error.get("code")
            return f"{text} (code {code})" if code is not None else str(text)
        return str(error)

    @staticmethod
    def is_test_request(message: dict) -> bool:
        params = message.get("params")
        return isinstance(params, dict) and params.get("type") == "test_request"

    @staticmethod
    def parse(message: dict) -> Optional[CanonicalMutation]:
        """
        Expected format: {method: "subscription", params: {data: {bids, asks, change_id}}}

        Each batch is authoritative for the levels it mentions; no merge
        against earlier batches happens here.
        """
        if message.get("method") != "subscription":
            return None
        params = message.get("params")
        if not isinstance(params, dict):
            return None
        data = params.get("data")
        if not isinstance(data, dict):
            return None

        def rows(entries: Iterable) -> list[tuple[float, float]]:
            out = []
            for action, price, size in entries:
                # delete rows carry size 0, treat them the same way
                out.append((float(price), 0.0 if action == "delete" else float(size)))
            return _dedupe(out)

        bids = rows(data.get("bids") or ())
        asks = rows(data.get("asks") or ())
        return CanonicalMutation(bids, asks, int(data.get("change_id") or 0))


ADAPTERS: dict[Venue, type[OKXAdapter] | type[DeribitAdapter]] = {
    Venue.OKX: OKXAdapter,
    Venue.DERIBIT: DeribitAdapter,
}


def adapter_for(venue: Venue) -> type[OKXAdapter] | type[DeribitAdapter]:
    return ADAPTERS[venue]
