"""
Per-venue WebSocket lifecycle: connect, heartbeat, reconnect with backoff.

Handles:
1. At most one live or pending connection per (venue, symbol)
2. Venue heartbeats as tasks bound to the socket's lifetime
   - OKX: text "ping" every 20s
   - Deribit: public/set_heartbeat(30) on open, public/test every 15s, and an
     immediate public/test reply (same id) to every test_request probe
3. Exponential backoff on abnormal close: delay * 2^attempt, 5 attempts max,
   then a terminal error until the caller connects again
4. Routing decoded frames: book pushes to the aggregator, venue errors to the
   store, control traffic dropped

Performance notes:
- Uses orjson for JSON encode/decode
- Minimal logging in hot path
- All I/O is non-blocking (pure asyncio)
"""

from __future__ import annotations

import asyncio
import functools
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import orjson

from ..config import ABNORMAL_CLOSURE, NORMAL_CLOSURE, WS_URLS, FeedSettings
from ..errors import TransportError, UnsupportedVenueError
from ..types import CanonicalMutation, ConnectionStatus, Venue
from .adapters import PARSE_ERRORS, DeribitAdapter, MessageKind, adapter_for
from .transport import AiohttpTransport, Transport, WSEventKind

LOG = logging.getLogger(__name__)

ConnectionKey = tuple[Venue, str]
MutationSink = Callable[[Venue, CanonicalMutation], Any]
ErrorSink = Callable[[Optional[str]], Any]


@dataclass
class ConnectionRecord:
    """Bookkeeping for one (venue, symbol) connection."""
    venue: Venue
    symbol: str
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    attempt_count: int = 0
    exhausted: bool = False
    last_raw_payload: Optional[str] = None
    last_raw_payload_time: Optional[float] = None
    transport: Optional[Transport] = None
    task: Optional[asyncio.Task] = None
    heartbeats: list[asyncio.Task] = field(default_factory=list)
    reconnect_handle: Any = None

    @property
    def key(self) -> ConnectionKey:
        return (self.venue, self.symbol)

    @property
    def pending(self) -> bool:
        """Connecting, open, or waiting on a scheduled reconnect."""
        return (
            self.status in (ConnectionStatus.CONNECTING, ConnectionStatus.OPEN)
            or self.reconnect_handle is not None
        )


class ConnectionManager:
    """
    Owns one logical connection per (venue, symbol).

    Usage:
        manager = ConnectionManager(aggregator.offer, store.set_error)
        manager.connect(Venue.DERIBIT, "BTC-PERPETUAL")
        ...
        await manager.aclose()

    connect() and disconnect() must be called from inside the running event loop.
    """

    def __init__(
        self,
        on_mutation: MutationSink,
        on_error: ErrorSink,
        settings: Optional[FeedSettings] = None,
        transport_factory: Callable[[], Transport] = AiohttpTransport,
        urls: Optional[dict[Venue, str]] = None,
        scheduler: Optional[Callable[..., Any]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or FeedSettings()
        self._on_mutation = on_mutation
        self._on_error = on_error
        self._transport_factory = transport_factory
        self._urls = dict(WS_URLS if urls is None else urls)
        self._scheduler = scheduler
        self._clock = clock

        self._records: dict[ConnectionKey, ConnectionRecord] = {}
        self._closing: set[asyncio.Task] = set()
        self._request_ids = itertools.count(1)

    # -- public API -------------------------------------------------------

    def connect(self, venue: Venue | str, symbol: str) -> ConnectionRecord:
        """
        Ensure a connection for (venue, symbol) exists.

        No-op if one is already pending or open. Any connection to the same
        venue for a different symbol is torn down first. A fresh call after
        exhausted retries starts over with a zero attempt count.
        """
        venue = Venue.parse(venue)
        key = (venue, symbol)

        record = self._records.get(key)
        if record is not None and record.pending:
            return record

        for other in [k for k in self._records if k[0] is venue and k != key]:
            self._teardown(other)

        record = ConnectionRecord(venue, symbol)
        self._records[key] = record
        self._start(record)
        return record

    def disconnect(self, venue: Venue | str) -> None:
        """Close every connection for a venue. Unknown venues are ignored."""
        try:
            venue = Venue.parse(venue)
        except UnsupportedVenueError:
            LOG.debug("disconnect: unknown venue %r", venue)
            return
        for key in [k for k in self._records if k[0] is venue]:
            self._teardown(key)

    def disconnect_all(self) -> None:
        for key in list(self._records):
            self._teardown(key)

    async def aclose(self) -> None:
        """Disconnect everything and wait for sockets to finish closing."""
        self.disconnect_all()
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)

    def get(self, venue: Venue, symbol: str) -> Optional[ConnectionRecord]:
        return self._records.get((venue, symbol))

    def status(self, venue: Venue, symbol: str) -> ConnectionStatus:
        record = self._records.get((venue, symbol))
        return record.status if record is not None else ConnectionStatus.DISCONNECTED

    @property
    def records(self) -> list[ConnectionRecord]:
        return list(self._records.values())

    # -- lifecycle --------------------------------------------------------

    def _start(self, record: ConnectionRecord) -> None:
        record.status = ConnectionStatus.CONNECTING
        record.transport = self._transport_factory()
        record.task = asyncio.get_running_loop().create_task(self._run(record))
        record.task.add_done_callback(functools.partial(self._on_reader_done, record))

    def _on_reader_done(self, record: ConnectionRecord, task: asyncio.Task) -> None:
        """Treat a reader that died with an exception as an abnormal close."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        LOG.error("%s %s reader failed", record.venue.label, record.symbol, exc_info=exc)
        if record.task is not task:
            return

        transport = record.transport
        if transport is not None:
            self._close_in_background(record, transport, final=False)
        self._on_closed(record, ABNORMAL_CLOSURE)

    async def _run(self, record: ConnectionRecord) -> None:
        """Reader loop for one socket. Cancelled by disconnect."""
        transport = record.transport
        assert transport is not None
        url = self._urls[record.venue]
        code = ABNORMAL_CLOSURE

        try:
            await transport.open(url)
        except TransportError as e:
            LOG.warning("%s %s: %s", record.venue.label, record.symbol, e)
            self._on_closed(record, ABNORMAL_CLOSURE)
            return

        record.status = ConnectionStatus.OPEN
        record.attempt_count = 0
        record.exhausted = False
        LOG.info("connected to %s for %s", record.venue.label, record.symbol)

        try:
            await self._on_open(record)
            async for event in transport:
                if event.kind is WSEventKind.TEXT:
                    await self._handle_message(record, event.data or "")
                elif event.kind is WSEventKind.CLOSE:
                    code = event.code if event.code is not None else ABNORMAL_CLOSURE
                    break
                else:
                    LOG.warning("%s socket error: %s", record.venue.label, event.data)
        except TransportError as e:
            LOG.warning("%s %s: %s", record.venue.label, record.symbol, e)

        self._on_closed(record, code)

    async def _on_open(self, record: ConnectionRecord) -> None:
        """Subscribe and start the venue's heartbeat tasks."""
        loop = asyncio.get_running_loop()
        adapter = adapter_for(record.venue)

        if record.venue is Venue.DERIBIT:
            await self._send(record, DeribitAdapter.set_heartbeat(
                self.settings.deribit_heartbeat_interval, next(self._request_ids)))
            await self._send(record, adapter.subscription(record.symbol, next(self._request_ids)))
            record.heartbeats.append(loop.create_task(self._heartbeat(
                record, self.settings.deribit_keepalive_interval,
                lambda: DeribitAdapter.test_request(next(self._request_ids)),
            )))
        else:
            await self._send(record, adapter.subscription(record.symbol))
            record.heartbeats.append(loop.create_task(self._heartbeat(
                record, self.settings.okx_ping_interval, lambda: "ping",
            )))

    async def _heartbeat(
        self,
        record: ConnectionRecord,
        interval: float,
        make_frame: Callable[[], dict | str],
    ) -> None:
        while True:
            await asyncio.sleep(interval)
            if record.status is not ConnectionStatus.OPEN:
                return
            await self._send(record, make_frame())

    def _on_closed(self, record: ConnectionRecord, code: int) -> None:
        """Socket ended on its own: schedule a retry or give up."""
        self._cancel_heartbeats(record)
        if self._records.get(record.key) is not record:
            return  # disconnected or superseded meanwhile

        record.status = ConnectionStatus.DISCONNECTED
        record.transport = None
        record.task = None

        if code == NORMAL_CLOSURE:
            LOG.info("%s %s closed normally", record.venue.label, record.symbol)
            return

        attempts = record.attempt_count
        max_attempts = self.settings.max_reconnect_attempts
        if attempts >= max_attempts:
            record.exhausted = True
            message = f"Failed to connect to {record.venue.label} after {max_attempts} attempts"
            LOG.error(message)
            self._on_error(message)
            return

        delay_sec = self.settings.reconnect_delay_ms * (2 ** attempts) / 1000.0
        record.attempt_count = attempts + 1
        LOG.warning(
            "%s %s closed with code %s, reconnecting in %.1fs (attempt %d/%d)",
            record.venue.label, record.symbol, code, delay_sec, attempts + 1, max_attempts,
        )
        record.reconnect_handle = self._schedule(delay_sec, self._reconnect, record)

    def _reconnect(self, record: ConnectionRecord) -> None:
        record.reconnect_handle = None
        if self._records.get(record.key) is not record:
            return
        self._start(record)

    def _teardown(self, key: ConnectionKey) -> None:
        """Cancel timers synchronously, then close the socket in the background."""
        record = self._records.pop(key, None)
        if record is None:
            return

        self._cancel_heartbeats(record)
        if record.reconnect_handle is not None:
            record.reconnect_handle.cancel()
            record.reconnect_handle = None

        record.status = ConnectionStatus.CLOSING
        if record.task is not None and not record.task.done():
            record.task.cancel()
        record.task = None

        transport, record.transport = record.transport, None
        if transport is not None:
            self._close_in_background(record, transport)
        else:
            record.status = ConnectionStatus.DISCONNECTED
        LOG.info("disconnected from %s %s", record.venue.label, record.symbol)

    def _close_in_background(self, record: ConnectionRecord, transport: Transport, final: bool = True) -> None:
        task = asyncio.get_running_loop().create_task(self._close_transport(record, transport, final))
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def _close_transport(self, record: ConnectionRecord, transport: Transport, final: bool = True) -> None:
        # final=False leaves status alone; a reconnect may already own the record
        try:
            await transport.close(NORMAL_CLOSURE, "Disconnecting")
        except TransportError as e:
            LOG.warning("%s close failed: %s", record.venue.label, e)
        finally:
            if final:
                record.status = ConnectionStatus.DISCONNECTED

    def _cancel_heartbeats(self, record: ConnectionRecord) -> None:
        for task in record.heartbeats:
            task.cancel()
        record.heartbeats.clear()

    def _schedule(self, delay_sec: float, callback: Callable[..., Any], *args: Any) -> Any:
        if self._scheduler is not None:
            return self._scheduler(delay_sec, callback, *args)
        return asyncio.get_running_loop().call_later(delay_sec, callback, *args)

    # -- inbound ----------------------------------------------------------

    async def _send(self, record: ConnectionRecord, payload: dict | str) -> None:
        transport = record.transport
        if transport is None:
            return
        text = payload if isinstance(payload, str) else orjson.dumps(payload).decode()
        try:
            await transport.send(text)
        except TransportError as e:
            LOG.warning("%s send failed: %s", record.venue.label, e)

    async def _handle_message(self, record: ConnectionRecord, raw: str) -> None:
        """
        Route one inbound frame.

        HOT PATH - called for every message.
        """
        record.last_raw_payload = raw
        record.last_raw_payload_time = self._clock()
        if raw == "pong":
            return

        try:
            message = orjson.loads(raw)
        except orjson.JSONDecodeError:
            LOG.warning("%s: dropping undecodable frame %.80r", record.venue.label, raw)
            return
        if not isinstance(message, dict):
            return

        adapter = adapter_for(record.venue)
        kind = adapter.classify(message)

        if kind is MessageKind.ERROR:
            text = f"{record.venue.label} error: {adapter.error_text(message)}"
            LOG.error(text)
            self._on_error(text)
            return

        if kind is MessageKind.HEARTBEAT:
            if DeribitAdapter.is_test_request(message):
                await self._send(record, DeribitAdapter.test_request(message.get("id")))
            return

        if kind is not MessageKind.BOOK:
            return

        try:
            mutation = adapter.parse(message)
        except PARSE_ERRORS as e:
            LOG.warning("%s: dropping malformed book message: %s", record.venue.label, e)
            return
        if mutation is not None:
            self._on_mutation(record.venue, mutation)
