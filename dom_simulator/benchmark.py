#!/usr/bin/env python3
"""
Micro-benchmark for DOM Simulator performance.

Tests:
1. Adapter parse throughput (OKX and Deribit wire formats)
2. Aggregator apply throughput (sort + cumulate + truncate)
3. Order impact simulation speed
4. Depth curve generation speed

Usage:
    python -m dom_simulator.benchmark
"""

from __future__ import annotations

import random
import time
from statistics import mean, stdev

from .datafeed.adapters import DeribitAdapter, OKXAdapter
from .datafeed.orderbook import OrderBookAggregator
from .datafeed.store import BookStore
from .engine.depth import depth_curve
from .engine.impact import simulate
from .types import OrderKind, SimulatedOrder, Side, Venue


def generate_okx_message(base_price: float = 60000.0, levels: int = 400) -> dict:
    """Generate a mock OKX books push."""
    tick_size = 0.5

    bids = []
    asks = []

    for i in range(levels):
        bid_price = base_price - (i + 1) * tick_size
        ask_price = base_price + (i + 1) * tick_size

        bids.append([str(bid_price), str(random.uniform(0, 100)), "0", "1"])
        asks.append([str(ask_price), str(random.uniform(0, 100)), "0", "1"])

    return {
        "arg": {"channel": "books", "instId": "BTC-USD-SWAP"},
        "data": [{"bids": bids, "asks": asks, "ts": str(int(time.time() * 1000))}],
    }


def generate_deribit_message(base_price: float, change_id: int, changes: int = 50) -> dict:
    """Generate a mock Deribit book batch."""
    tick_size = 0.5

    bids = []
    asks = []

    for _ in range(changes // 2):
        offset = random.randint(1, 200)
        action = random.choice(("new", "change", "delete"))
        size = 0.0 if action == "delete" else random.uniform(1, 100)

        bids.append([action, base_price - offset * tick_size, size])
        asks.append([action, base_price + offset * tick_size, size])

    return {
        "jsonrpc": "2.0",
        "method": "subscription",
        "params": {
            "channel": "book.BTC-PERPETUAL.100ms",
            "data": {"bids": bids, "asks": asks, "change_id": change_id},
        },
    }


def benchmark_adapters(iterations: int = 2000) -> None:
    """Benchmark adapter parse throughput."""
    print("\n=== Adapter Parse Benchmark ===")

    okx = [generate_okx_message() for _ in range(100)]
    deribit = [generate_deribit_message(60000.0, i) for i in range(100)]

    for name, adapter, messages in (("OKX", OKXAdapter, okx), ("Deribit", DeribitAdapter, deribit)):
        start = time.perf_counter()
        for i in range(iterations):
            adapter.parse(messages[i % len(messages)])
        elapsed = time.perf_counter() - start

        print(f"  {name}: {iterations / elapsed:,.0f} msgs/sec ({elapsed / iterations * 1_000_000:.1f}µs each)")


def benchmark_aggregator(iterations: int = 5000) -> None:
    """Benchmark aggregator apply throughput with throttling disabled."""
    print("\n=== Aggregator Apply Benchmark ===")

    store = BookStore(Venue.OKX, "BTC-PERPETUAL")
    agg = OrderBookAggregator(store, update_interval_ms=0)

    mutations = [OKXAdapter.parse(generate_okx_message()) for _ in range(50)]

    start = time.perf_counter()
    for i in range(iterations):
        agg.offer(Venue.OKX, mutations[i % len(mutations)])
    elapsed = time.perf_counter() - start

    rate = iterations / elapsed
    print(f"  Updates applied: {iterations:,}")
    print(f"  Time: {elapsed*1000:.1f}ms")
    print(f"  Rate: {rate:,.0f} updates/sec")
    print(f"  Per update: {elapsed/iterations*1_000_000:.1f}µs")


def _loaded_store() -> BookStore:
    store = BookStore(Venue.OKX, "BTC-PERPETUAL")
    OrderBookAggregator(store).offer(Venue.OKX, OKXAdapter.parse(generate_okx_message()))
    return store


def benchmark_simulation(iterations: int = 20000) -> None:
    """Benchmark order impact simulation."""
    print("\n=== Order Impact Simulation Benchmark ===")

    view = _loaded_store().view()
    orders = [
        SimulatedOrder(
            kind=random.choice((OrderKind.MARKET, OrderKind.LIMIT)),
            side=random.choice((Side.BUY, Side.SELL)),
            price=60000.0 + random.uniform(-5, 5),
            quantity=random.uniform(1, 500),
        )
        for _ in range(1000)
    ]

    times = []
    for i in range(iterations):
        start = time.perf_counter()
        simulate(orders[i % len(orders)], view)
        times.append(time.perf_counter() - start)

    avg_time = mean(times) * 1_000_000
    std_time = stdev(times) * 1_000_000

    print(f"  Iterations: {iterations:,}")
    print(f"  Avg time: {avg_time:.2f}µs")
    print(f"  Std dev: {std_time:.2f}µs")


def benchmark_depth_curve(iterations: int = 2000) -> None:
    """Benchmark depth curve generation."""
    print("\n=== Depth Curve Benchmark ===")

    view = _loaded_store().view()

    # Warm up
    for _ in range(10):
        depth_curve(view.bids, view.asks)

    times = []
    for _ in range(iterations):
        start = time.perf_counter()
        depth_curve(view.bids, view.asks)
        times.append(time.perf_counter() - start)

    avg_time = mean(times) * 1000

    print(f"  Iterations: {iterations}")
    print(f"  Avg time: {avg_time:.3f}ms")
    print(f"  Max FPS possible: {1000/avg_time:,.0f}")


def main() -> None:
    """Run all benchmarks."""
    print("=" * 60)
    print("DOM Simulator Performance Benchmark")
    print("=" * 60)

    benchmark_adapters()
    benchmark_aggregator()
    benchmark_simulation()
    benchmark_depth_curve()

    print("\n" + "=" * 60)
    print("Benchmark complete.")
    print("=" * 60)


if __name__ == "__main__":
    main()
