"""
Order book + simulation TUI using Textual.

Displays:
- Top: venue, symbol, best bid/ask, spread, update rate, loading/error state
- Left: asks above bids with cumulative depth bars
- Middle: current simulated order, its impact and recent order history
- Right: cumulative depth curve (order price marked) and top-of-book sparklines

Performance notes:
- Drains the feed queue at ~10 FPS and only renders the newest view
- Minimal widget tree updates
"""

from __future__ import annotations

import queue
from typing import TYPE_CHECKING, Optional, Sequence

import numpy as np
from rich.console import Group, RenderableType
from rich.style import Style
from rich.table import Table
from rich.text import Text

from textual.app import App, ComposeResult
from textual.containers import Horizontal
from textual.widgets import Footer, Static

from ..config import TRADING_SYMBOLS
from ..engine.depth import depth_curve, spread_bps
from ..types import OrderKind, QuoteSide, Side, Venue

if TYPE_CHECKING:
    from ..datafeed.feed import MarketFeed
    from ..types import BookView, PriceLevel, SimulatedOrder

# Color scheme (dark theme)
BID_COLOR = "#22c55e"      # Green
ASK_COLOR = "#ef4444"      # Red
PRICE_COLOR = "#f8fafc"
HEADER_COLOR = "#94a3b8"
ERROR_COLOR = "#f97316"
BAR_BG = "#1e293b"

BAR_WIDTH = 16
HISTORY_ROWS = 5
SPARK_WIDTH = 30
SPARK_CHARS = "▁▂▃▄▅▆▇█"


def format_qty(qty: float) -> str:
    """Format quantity for display."""
    if qty >= 1000:
        return f"{qty/1000:.1f}K"
    elif qty >= 1:
        return f"{qty:.1f}"
    else:
        return f"{qty:.3f}"


def make_bar(value: float, max_value: float, width: int, color: str) -> Text:
    """Create a horizontal bar using block characters."""
    if max_value <= 0:
        return Text(" " * width)

    fill_ratio = min(1.0, value / max_value)
    fill_width = int(fill_ratio * width)

    bar = "█" * fill_width + " " * (width - fill_width)
    return Text(bar, style=Style(color=color, bgcolor=BAR_BG))


def sparkline(values: Sequence[float], width: int = SPARK_WIDTH) -> str:
    """Scale the newest `width` values onto eighth-block characters."""
    values = list(values)[-width:]
    if not values:
        return ""
    lo, hi = min(values), max(values)
    if hi <= lo:
        return SPARK_CHARS[0] * len(values)
    top = len(SPARK_CHARS) - 1
    return "".join(SPARK_CHARS[round((v - lo) / (hi - lo) * top)] for v in values)


class BookTable(Static):
    """Asks (worst to best) above bids (best to worst), scaled by cumulative size."""

    DEFAULT_CSS = """
    BookTable {
        width: 2fr;
        height: 100%;
    }
    """

    def __init__(self) -> None:
        super().__init__()
        self._view: Optional[BookView] = None

    def update_view(self, view: BookView) -> None:
        self._view = view
        self.refresh()

    def render(self) -> RenderableType:
        if self._view is None or self._view.loading:
            return Text("Waiting for data...", style="dim")

        view = self._view
        if view.error and not view.bids and not view.asks:
            return Text(view.error, style=ERROR_COLOR)
        if not view.bids and not view.asks:
            return Text("No levels", style="dim")

        max_total = max(
            view.bids[-1].cumulative_total if view.bids else 0.0,
            view.asks[-1].cumulative_total if view.asks else 0.0,
        )

        table = Table(
            show_header=True,
            header_style=HEADER_COLOR,
            box=None,
            padding=(0, 1),
            collapse_padding=True,
        )
        table.add_column("Price", justify="right", width=12)
        table.add_column("Size", justify="right", width=9)
        table.add_column("Total", justify="right", width=9)
        table.add_column("Depth", justify="left", width=BAR_WIDTH, no_wrap=True)

        def add(level: PriceLevel, color: str) -> None:
            table.add_row(
                Text(f"{level.price:.2f}", style=color),
                Text(format_qty(level.size), style=PRICE_COLOR),
                Text(format_qty(level.cumulative_total), style="dim"),
                make_bar(level.cumulative_total, max_total, BAR_WIDTH, color),
            )

        for level in reversed(view.asks):
            add(level, ASK_COLOR)
        table.add_row(Text("─" * 12, style="dim"), "", "", "")
        for level in view.bids:
            add(level, BID_COLOR)

        return table


class StatusBar(Static):
    """Status bar showing venue, symbol, spread and feed health."""

    DEFAULT_CSS = """
    StatusBar {
        dock: top;
        height: 3;
        padding: 0 2;
        background: #0f172a;
    }
    """

    def __init__(self) -> None:
        super().__init__()
        self._view: Optional[BookView] = None
        self.updates_per_sec: float = 0.0

    def update_view(self, view: BookView, updates_per_sec: float) -> None:
        self._view = view
        self.updates_per_sec = updates_per_sec
        self.refresh()

    def render(self) -> RenderableType:
        if self._view is None:
            return Text("Connecting...", style="dim")

        view = self._view
        result = Text()
        result.append(f" {view.venue.label} {view.symbol} ", style="bold white on #1e40af")
        result.append("  Bid: ", style="dim")
        result.append(f"{view.best_bid:.2f}", style=BID_COLOR)
        result.append("  Ask: ", style="dim")
        result.append(f"{view.best_ask:.2f}", style=ASK_COLOR)
        result.append("  Spread: ", style="dim")
        result.append(f"{spread_bps(view.bids, view.asks):.1f}bps", style="yellow")
        result.append("  │  ", style="dim")
        result.append("Updates/s: ", style="dim")
        result.append(f"{self.updates_per_sec:.1f}", style="cyan")
        if view.loading:
            result.append("  loading...", style="dim")
        if view.error:
            result.append(f"  {view.error}", style=ERROR_COLOR)
        return result


def describe_order(order: SimulatedOrder) -> Text:
    color = BID_COLOR if order.side is Side.BUY else ASK_COLOR
    price = f"{order.price:.2f}" if order.price else "-"
    text = Text()
    text.append(f"{order.side.value.upper()} ", style=color)
    text.append(f"{order.kind.value} {format_qty(order.quantity)} @ {price}")
    if order.impact is not None:
        text.append(f"  fill {order.impact.fill_percentage:.0f}%", style="dim")
    return text


class SimulationPanel(Static):
    """Current simulated order and its impact metrics."""

    DEFAULT_CSS = """
    SimulationPanel {
        width: 1fr;
        height: 100%;
        padding: 0 2;
    }
    """

    def __init__(self) -> None:
        super().__init__()
        self._view: Optional[BookView] = None

    def update_view(self, view: BookView) -> None:
        self._view = view
        self.refresh()

    def render(self) -> RenderableType:
        view = self._view
        if view is None or view.simulated_order is None:
            body: RenderableType = Text("No simulated order (b: buy, n: sell)", style="dim")
        else:
            order = view.simulated_order
            impact = order.impact
            table = Table(show_header=False, box=None, padding=(0, 1))
            table.add_column(style=HEADER_COLOR)
            table.add_column(justify="right")
            table.add_row("Order", describe_order(order))
            if impact is not None:
                table.add_row("Fill", f"{impact.fill_percentage:.2f}%")
                table.add_row("Avg price", f"{impact.average_price:.2f}")
                table.add_row("Slippage", f"{impact.slippage_percent:.4f}%")
                table.add_row("Cost", f"{impact.estimated_cost:,.2f}")
                table.add_row("Worst price", f"{impact.worst_price:.2f}")
                table.add_row("Levels", str(impact.depth_levels_consumed))
                table.add_row("Impact", f"{impact.impact_bps:.2f}bps")
                table.add_row("Mid", f"{impact.mid_price:.2f}")
                if impact.estimated_minutes_to_fill is not None:
                    table.add_row("Est. fill", f"~{round(impact.estimated_minutes_to_fill)} min")
            body = table

        history = Text()
        if view is not None and view.order_history:
            history.append("\nHistory\n", style=HEADER_COLOR)
            for order in view.order_history[:HISTORY_ROWS]:
                history.append_text(describe_order(order))
                history.append("\n")
        return Group(body, history)


class DepthPanel(Static):
    """Cumulative depth by price with the simulated order marked, plus top-of-book history."""

    DEFAULT_CSS = """
    DepthPanel {
        width: 1fr;
        height: 100%;
        padding: 0 1;
    }
    """

    def __init__(self) -> None:
        super().__init__()
        self._view: Optional[BookView] = None

    def update_view(self, view: BookView) -> None:
        self._view = view
        self.refresh()

    def render(self) -> RenderableType:
        view = self._view
        if view is None or (not view.bids and not view.asks):
            return Text("No depth", style="dim")

        curve = depth_curve(view.bids, view.asks)
        max_volume = float(max(curve.bid_volume.max(), curve.ask_volume.max()))

        marked = -1
        order = view.simulated_order
        if order is not None and order.price:
            marked = int(np.abs(curve.prices - order.price).argmin())

        table = Table(
            show_header=True,
            header_style=HEADER_COLOR,
            box=None,
            padding=(0, 1),
            collapse_padding=True,
        )
        table.add_column("Price", justify="right", width=12)
        table.add_column("Depth", justify="left", width=BAR_WIDTH, no_wrap=True)
        table.add_column("", width=1)

        # Highest price first, so asks sit above bids as in the book
        for i in range(len(curve.prices) - 1, -1, -1):
            is_bid = curve.bid_volume[i] > 0
            volume = float(curve.bid_volume[i] if is_bid else curve.ask_volume[i])
            color = BID_COLOR if is_bid else ASK_COLOR
            table.add_row(
                Text(f"{curve.prices[i]:.2f}", style=color),
                make_bar(volume, max_volume, BAR_WIDTH, color),
                Text("◆", style="yellow") if i == marked else "",
            )

        history = Text()
        history.append("\nBid ", style=HEADER_COLOR)
        history.append(sparkline([p.price for p in view.price_history if p.side is QuoteSide.BID]), style=BID_COLOR)
        history.append("\nAsk ", style=HEADER_COLOR)
        history.append(sparkline([p.price for p in view.price_history if p.side is QuoteSide.ASK]), style=ASK_COLOR)
        return Group(table, history)


class DOMApp(App):
    """Main DOM Simulator application."""

    CSS = """
    Screen {
        background: #0f172a;
    }

    #main-container {
        width: 100%;
        height: 100%;
        padding: 1 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("v", "toggle_venue", "Venue"),
        ("s", "cycle_symbol", "Symbol"),
        ("b", "simulate_buy", "Sim buy"),
        ("n", "simulate_sell", "Sim sell"),
        ("c", "clear_history", "Clear history"),
    ]

    def __init__(self, feed: MarketFeed, quantity: float = 1.0, delay_ms: int = 0) -> None:
        super().__init__()
        self.feed = feed
        self.quantity = quantity
        self.delay_ms = delay_ms
        self._status_bar: StatusBar | None = None
        self._book_table: BookTable | None = None
        self._sim_panel: SimulationPanel | None = None
        self._depth_panel: DepthPanel | None = None

    def compose(self) -> ComposeResult:
        self._status_bar = StatusBar()
        self._book_table = BookTable()
        self._sim_panel = SimulationPanel()
        self._depth_panel = DepthPanel()

        yield self._status_bar
        yield Horizontal(self._book_table, self._sim_panel, self._depth_panel, id="main-container")
        yield Footer()

    async def on_mount(self) -> None:
        self.feed.start()
        self.set_interval(0.1, self._drain_views)

    def _drain_views(self) -> None:
        """Render only the newest queued view."""
        latest = None
        while True:
            try:
                latest = self.feed.snapshot_queue.get_nowait()
            except queue.Empty:
                break
        if latest is None:
            return

        if self._status_bar:
            self._status_bar.update_view(latest, self.feed.aggregator.get_updates_per_sec())
        if self._book_table:
            self._book_table.update_view(latest)
        if self._sim_panel:
            self._sim_panel.update_view(latest)
        if self._depth_panel:
            self._depth_panel.update_view(latest)

    def action_toggle_venue(self) -> None:
        venue = Venue.OKX if self.feed.venue is Venue.DERIBIT else Venue.DERIBIT
        self.feed.aggregator.reset_perf_counters()
        self.feed.set_venue(venue)

    def action_cycle_symbol(self) -> None:
        symbols = [s for s, _ in TRADING_SYMBOLS]
        try:
            idx = symbols.index(self.feed.symbol)
        except ValueError:
            idx = -1
        self.feed.aggregator.reset_perf_counters()
        self.feed.set_symbol(symbols[(idx + 1) % len(symbols)])

    def action_simulate_buy(self) -> None:
        self._simulate(Side.BUY)

    def action_simulate_sell(self) -> None:
        self._simulate(Side.SELL)

    def _simulate(self, side: Side) -> None:
        impact = self.feed.simulate(OrderKind.MARKET, side, self.quantity, delay_ms=self.delay_ms)
        if impact is None:
            self.notify("Cannot simulate: book side is empty", severity="warning")

    def action_clear_history(self) -> None:
        self.feed.clear_order_history()

    async def on_unmount(self) -> None:
        await self.feed.aclose()


async def run_ui(feed: MarketFeed, quantity: float = 1.0, delay_ms: int = 0) -> None:
    """Run the TUI application."""
    app = DOMApp(feed, quantity=quantity, delay_ms=delay_ms)
    await app.run_async()
