#!/usr/bin/env python3
"""
DOM Simulator - multi-venue order book with order impact simulation.

Usage:
    python -m dom_simulator.main deribit BTC-PERPETUAL
    python -m dom_simulator.main okx ETH-PERPETUAL --quantity 5 --headless

Controls (TUI):
    q - Quit
    v - Toggle venue (Deribit / OKX)
    s - Cycle symbol
    b / n - Simulate market buy / sell of --quantity
    c - Clear order history
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace

from .config import DEFAULT_SYMBOL, DEFAULT_VENUE, DELAY_OPTIONS, FeedSettings
from .errors import DomSimulatorError
from .types import BookView, Venue

LOG = logging.getLogger("dom_simulator")


def setup_logging(level: str, log_file: str | None) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        filename=log_file,
    )


def log_view(view: BookView) -> None:
    """Headless listener: one line per store change."""
    if view.error:
        LOG.error("%s %s: %s", view.venue.label, view.symbol, view.error)
    elif view.bids and view.asks:
        LOG.info(
            "%s %s #%d bid %.2f x %.4f | ask %.2f x %.4f | history %d",
            view.venue.label, view.symbol, view.last_update_id,
            view.bids[0].price, view.bids[0].size,
            view.asks[0].price, view.asks[0].size,
            len(view.price_history),
        )


async def run_headless(feed) -> None:
    feed.store.subscribe(log_view)
    feed.start()
    try:
        await asyncio.Event().wait()
    finally:
        await feed.aclose()


async def main(venue: Venue, symbol: str, settings: FeedSettings, headless: bool,
               quantity: float, delay_ms: int) -> None:
    """Main entry point - runs the feed, with or without the TUI."""

    # Import here to avoid slow startup for --help
    from .datafeed.feed import MarketFeed

    LOG.info("starting DOM Simulator for %s %s", venue.label, symbol)
    feed = MarketFeed(venue, symbol, settings=settings)

    if headless:
        await run_headless(feed)
    else:
        from .ui.dom_view import run_ui
        await run_ui(feed, quantity=quantity, delay_ms=delay_ms)


def cli() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="DOM Simulator - live order books for Deribit/OKX with order impact simulation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m dom_simulator.main deribit BTC-PERPETUAL
    python -m dom_simulator.main okx ETH-PERPETUAL --max-depth 10
    python -m dom_simulator.main deribit BTC-PERPETUAL --headless --log-level DEBUG
        """
    )

    parser.add_argument(
        "venue",
        nargs="?",
        default=DEFAULT_VENUE.value,
        help=f"Venue: deribit or okx (default: {DEFAULT_VENUE.value})"
    )

    parser.add_argument(
        "symbol",
        nargs="?",
        default=DEFAULT_SYMBOL,
        help=f"Instrument (default: {DEFAULT_SYMBOL})"
    )

    parser.add_argument(
        "--update-interval-ms",
        type=int,
        default=None,
        help="Minimum ms between applied book updates (default: 2000)"
    )

    parser.add_argument(
        "--max-depth",
        type=int,
        default=None,
        help="Price levels kept per side (default: 15)"
    )

    parser.add_argument(
        "--quantity",
        type=float,
        default=1.0,
        help="Quantity for b/n simulated market orders (default: 1.0)"
    )

    parser.add_argument(
        "--delay-ms",
        type=int,
        default=0,
        choices=[value for value, _ in DELAY_OPTIONS],
        help="Clear simulated orders after this delay (default: 0 = keep)"
    )

    parser.add_argument(
        "--headless",
        action="store_true",
        help="No TUI, log book updates instead"
    )

    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-file",
        default=None,
        help="Log file (default: stderr when headless, dom_simulator.log with the TUI)"
    )

    args = parser.parse_args()

    log_file = args.log_file
    if log_file is None and not args.headless:
        log_file = "dom_simulator.log"
    setup_logging(args.log_level, log_file)

    try:
        venue = Venue.parse(args.venue)
        settings = FeedSettings.from_env()
        overrides = {}
        if args.update_interval_ms is not None:
            overrides["update_interval_ms"] = args.update_interval_ms
        if args.max_depth is not None:
            overrides["max_depth"] = args.max_depth
        settings = replace(settings, **overrides)
    except DomSimulatorError as e:
        parser.error(str(e))

    # Run
    try:
        asyncio.run(main(venue, args.symbol, settings, args.headless, args.quantity, args.delay_ms))
    except KeyboardInterrupt:
        print("\nShutdown requested.")
        sys.exit(0)


if __name__ == "__main__":
    cli()
