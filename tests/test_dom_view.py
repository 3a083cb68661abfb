"""
Tests for the pure formatting helpers behind the TUI panels.
"""

from dom_simulator.ui.dom_view import SPARK_CHARS, format_qty, make_bar, sparkline


def test_sparkline_scales_between_low_and_high():
    assert sparkline([100.0, 101.0, 102.0], width=10) == SPARK_CHARS[0] + SPARK_CHARS[4] + SPARK_CHARS[-1]


def test_sparkline_keeps_newest_values():
    line = sparkline([float(p) for p in range(50)], width=8)

    assert len(line) == 8
    assert line[0] == SPARK_CHARS[0]
    assert line[-1] == SPARK_CHARS[-1]


def test_sparkline_flat_and_empty():
    assert sparkline([5.0, 5.0, 5.0]) == SPARK_CHARS[0] * 3
    assert sparkline([]) == ""


def test_format_qty():
    assert format_qty(2500) == "2.5K"
    assert format_qty(3) == "3.0"
    assert format_qty(0.25) == "0.250"


def test_make_bar_width():
    assert make_bar(5, 10, 8, "green").plain == "████    "
    assert make_bar(1, 0, 4, "green").plain == "    "
