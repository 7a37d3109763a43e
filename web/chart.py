"""
web/chart.py -- Candlestick geometry for the dashboard's inline SVG chart.

The template only draws what build_candle_chart() returns: one rect (body)
and one line (wick) per bar, plus horizontal grid lines with price labels.
All coordinates are in SVG user units with y growing downwards.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from market.models import PriceBar

_Y_TICKS = 5


@dataclass(frozen=True)
class Candle:
    x: float  # centre of the candle
    body_x: float
    body_y: float
    body_width: float
    body_height: float
    wick_top: float
    wick_bottom: float
    rising: bool
    label: str  # M/D
    bar: PriceBar


@dataclass(frozen=True)
class CandleChart:
    width: int
    height: int
    padding: int
    candles: list[Candle]
    y_ticks: list[tuple[float, int]]  # (y, price in cents)


def build_candle_chart(
    bars: list[PriceBar],
    width: int = 640,
    height: int = 320,
    padding: int = 40,
) -> Optional[CandleChart]:
    """Lay out bars (oldest first) left to right. Returns None when bars is empty."""
    if not bars:
        return None
    low = min(b.low for b in bars)
    high = max(b.high for b in bars)
    span = (high - low) or 1
    plot_height = height - 2 * padding
    slot = (width - 2 * padding) / len(bars)
    body_width = max(slot * 0.6, 1.0)

    def y(price: int) -> float:
        return round(padding + (high - price) * plot_height / span, 1)

    candles = []
    for i, bar in enumerate(bars):
        centre = padding + slot * (i + 0.5)
        top = y(max(bar.open, bar.close))
        bottom = y(min(bar.open, bar.close))
        day = date.fromisoformat(bar.date)
        candles.append(
            Candle(
                x=round(centre, 1),
                body_x=round(centre - body_width / 2, 1),
                body_y=top,
                body_width=round(body_width, 1),
                body_height=max(round(bottom - top, 1), 1.0),
                wick_top=y(bar.high),
                wick_bottom=y(bar.low),
                rising=bar.close >= bar.open,
                label=f"{day.month}/{day.day}",
                bar=bar,
            )
        )

    step = span / (_Y_TICKS - 1)
    ticks = [(y(round(low + step * i)), round(low + step * i)) for i in range(_Y_TICKS)]
    return CandleChart(width=width, height=height, padding=padding, candles=candles, y_ticks=ticks)
