"""
WebSocket transport used by the connection manager.

The manager only needs open/send/close and an async stream of events, so the
socket library stays behind this seam (and tests can swap in a fake).
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import AsyncIterator, NamedTuple, Optional, Protocol

import aiohttp

from ..config import ABNORMAL_CLOSURE
from ..errors import TransportError

LOG = logging.getLogger(__name__)


class WSEventKind(Enum):
    TEXT = "text"
    CLOSE = "close"
    ERROR = "error"


class WSEvent(NamedTuple):
    kind: WSEventKind
    data: Optional[str] = None
    code: Optional[int] = None


class Transport(Protocol):
    async def open(self, url: str) -> None: ...

    async def send(self, text: str) -> None: ...

    async def close(self, code: int, reason: str) -> None: ...

    def __aiter__(self) -> AsyncIterator[WSEvent]: ...


class AiohttpTransport:
    """
    aiohttp-backed WebSocket.

    Usage:
        transport = AiohttpTransport()
        await transport.open("wss://www.deribit.com/ws/api/v2")
        async for event in transport:
            ...

    The event stream always ends with one CLOSE event.
    """

    def __init__(self, session: Optional[aiohttp.ClientSession] = None) -> None:
        self._session = session
        self._owns_session = session is None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None

    async def open(self, url: str) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        try:
            # autoping answers server pings at the transport level
            self._ws = await self._session.ws_connect(url, autoping=True)
        except (aiohttp.ClientError, OSError) as e:
            await self._release_session()
            raise TransportError(f"connect to {url} failed: {e}") from e

    async def send(self, text: str) -> None:
        if self._ws is None or self._ws.closed:
            raise TransportError("send on closed socket")
        try:
            await self._ws.send_str(text)
        except (aiohttp.ClientError, ConnectionResetError) as e:
            raise TransportError(f"send failed: {e}") from e

    async def close(self, code: int, reason: str) -> None:
        try:
            if self._ws is not None and not self._ws.closed:
                await self._ws.close(code=code, message=reason.encode())
        finally:
            await self._release_session()

    async def _release_session(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def __aiter__(self) -> AsyncIterator[WSEvent]:
        ws = self._ws
        if ws is None:
            raise TransportError("iterating a transport that was never opened")

        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                yield WSEvent(WSEventKind.TEXT, msg.data)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                LOG.warning("websocket error: %s", ws.exception())
                yield WSEvent(WSEventKind.ERROR, str(ws.exception()))
                break

        code = ws.close_code if ws.close_code is not None else ABNORMAL_CLOSURE
        await self._release_session()
        yield WSEvent(WSEventKind.CLOSE, code=code)
