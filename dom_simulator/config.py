"""
Venue endpoints, protocol constants and runtime tunables.

FeedSettings collects everything a deployment may want to change. Defaults
match what the venues expect; override via DOM_SIM_* environment variables
or the CLI flags in main.py.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields

from .errors import InvalidSettingsError
from .types import Venue

# WebSocket endpoints
WS_URLS: dict[Venue, str] = {
    Venue.OKX: "wss://ws.okx.com:8443/ws/v5/public",
    Venue.DERIBIT: "wss://www.deribit.com/ws/api/v2",
}

# Connection policy
NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006
MAX_RECONNECT_ATTEMPTS = 5
RECONNECT_DELAY_MS = 2000

# Heartbeats (seconds)
OKX_PING_INTERVAL = 20.0
DERIBIT_HEARTBEAT_INTERVAL = 30      # negotiated with the server
DERIBIT_KEEPALIVE_INTERVAL = 15.0    # our own public/test cadence

# Book policy
UPDATE_INTERVAL_MS = 2000
MAX_DEPTH = 15
PRICE_HISTORY_CAPACITY = 100

# Simulation form options
DELAY_OPTIONS: tuple[tuple[int, str], ...] = (
    (0, "Immediate"),
    (5000, "5s delay"),
    (10000, "10s delay"),
    (30000, "30s delay"),
)

TRADING_SYMBOLS: tuple[tuple[str, str], ...] = (
    ("BTC-PERPETUAL", "BTC/USD Perpetual"),
    ("ETH-PERPETUAL", "ETH/USD Perpetual"),
)

DEFAULT_VENUE = Venue.DERIBIT
DEFAULT_SYMBOL = "BTC-PERPETUAL"

# Deribit instrument names -> OKX instrument ids
OKX_INSTRUMENTS = {
    "BTC-PERPETUAL": "BTC-USD-SWAP",
    "ETH-PERPETUAL": "ETH-USD-SWAP",
}


def okx_instrument(symbol: str) -> str:
    """Map a perpetual symbol to its OKX swap id. Unknown symbols pass through."""
    return OKX_INSTRUMENTS.get(symbol, symbol)


@dataclass(frozen=True)
class FeedSettings:
    """
    Runtime tunables for the feed, aggregator and connection manager.

    Attributes:
        update_interval_ms: Minimum spacing between applied book updates per venue.
        max_depth: Levels kept per side after sorting.
        price_history_capacity: Ring buffer size for top-of-book samples.
        max_reconnect_attempts: Automatic retries before giving up.
        reconnect_delay_ms: Base delay, doubled on every failed attempt.
        okx_ping_interval: Seconds between OKX "ping" frames.
        deribit_heartbeat_interval: Interval requested via public/set_heartbeat.
        deribit_keepalive_interval: Seconds between our public/test calls.
    """
    update_interval_ms: int = UPDATE_INTERVAL_MS
    max_depth: int = MAX_DEPTH
    price_history_capacity: int = PRICE_HISTORY_CAPACITY
    max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS
    reconnect_delay_ms: int = RECONNECT_DELAY_MS
    okx_ping_interval: float = OKX_PING_INTERVAL
    deribit_heartbeat_interval: int = DERIBIT_HEARTBEAT_INTERVAL
    deribit_keepalive_interval: float = DERIBIT_KEEPALIVE_INTERVAL

    def __post_init__(self) -> None:
        if self.update_interval_ms < 0:
            raise InvalidSettingsError("update_interval_ms must be >= 0")
        if self.max_reconnect_attempts < 0:
            raise InvalidSettingsError("max_reconnect_attempts must be >= 0")
        for name in ("max_depth", "price_history_capacity", "reconnect_delay_ms",
                     "okx_ping_interval", "deribit_heartbeat_interval",
                     "deribit_keepalive_interval"):
            if getattr(self, name) <= 0:
                raise InvalidSettingsError(f"{name} must be positive")

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> FeedSettings:
        """
        Build settings from DOM_SIM_<FIELD> variables, e.g. DOM_SIM_MAX_DEPTH=20.

        Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        values: dict[str, int | float] = {}
        for f in fields(cls):
            raw = env.get(f"DOM_SIM_{f.name.upper()}")
            if raw is None or raw == "":
                continue
            convert = float if isinstance(f.default, float) else int
            try:
                values[f.name] = convert(raw)
            except ValueError:
                raise InvalidSettingsError(
                    f"DOM_SIM_{f.name.upper()}={raw!r} is not a valid {convert.__name__}"
                ) from None
        return cls(**values)
