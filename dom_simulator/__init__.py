"""
DOM Simulator - multi-venue crypto order books with order impact simulation.

Architecture:
- datafeed/: WebSocket connections, venue protocol adapters, throttled book aggregation
- engine/: Order impact simulation and depth computations
- ui/: Order book + simulation panel (Textual TUI)
"""

__version__ = "0.1.0"
