"""
chart_projector.py — Candle window → plot coordinates.

Pure functions, no state. The drawing surface is a fixed 1000×300 viewbox:

    y: price band 40..260, inverted (higher price → smaller y)
    x: 80..920 across the window, first candle at the left edge

Two render modes share the projection: a line through closing prices, or
candles (high-low wick + open-close body, up when close ≥ open).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from hive_models import Candle


# ─── Geometry Constants ───────────────────────────────────────────────────────

VIEW_WIDTH = 1000
VIEW_HEIGHT = 300
MARGIN_BOTTOM = 40
PLOT_HEIGHT = 220
PLOT_LEFT = 80
PLOT_WIDTH = 840
CANDLE_SPAN = 800            # width shared out between candle bodies
BODY_WIDTH_FRACTION = 0.6
MIN_BODY_HEIGHT = 2.0
PRICE_TICKS = (0.0, 0.5, 1.0)
TIME_LABEL_Y = 295


class ChartStyle(str, Enum):
    LINE = "line"
    CANDLE = "candle"


@dataclass(frozen=True)
class ChartMetrics:
    min: float
    max: float
    range: float

    def to_dict(self) -> dict:
        return {"min": self.min, "max": self.max, "range": self.range}


@dataclass(frozen=True)
class CandleShape:
    x:           float
    wick_top:    float          # y of the high
    wick_bottom: float          # y of the low
    body_x:      float
    body_y:      float
    body_width:  float
    body_height: float
    up:          bool

    def to_dict(self) -> dict:
        return {
            "x": self.x,
            "wick": [self.wick_top, self.wick_bottom],
            "body": {"x": self.body_x, "y": self.body_y, "width": self.body_width, "height": self.body_height},
            "direction": "up" if self.up else "down",
        }


@dataclass(frozen=True)
class AxisLabel:
    x:    float
    y:    float
    text: str


@dataclass
class ChartGeometry:
    style:        ChartStyle
    metrics:      Optional[ChartMetrics]
    line_path:    str = ""
    candles:      List[CandleShape] = field(default_factory=list)
    price_labels: List[AxisLabel] = field(default_factory=list)
    time_labels:  List[AxisLabel] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "style": self.style.value,
            "viewbox": [0, 0, VIEW_WIDTH, VIEW_HEIGHT],
            "metrics": self.metrics.to_dict() if self.metrics else None,
            "line_path": self.line_path,
            "candles": [c.to_dict() for c in self.candles],
            "price_labels": [vars(lbl) for lbl in self.price_labels],
            "time_labels": [vars(lbl) for lbl in self.time_labels],
        }


# ─── Projection ───────────────────────────────────────────────────────────────

def metrics(window: Sequence[Candle]) -> Optional[ChartMetrics]:
    """min of lows, max of highs, range floored at 1. None for an empty window."""
    if not window:
        return None
    lo = min(c.low for c in window)
    hi = max(c.high for c in window)
    return ChartMetrics(min=lo, max=hi, range=max(1.0, hi - lo))


def project_y(price: float, m: ChartMetrics) -> float:
    return VIEW_HEIGHT - MARGIN_BOTTOM - ((price - m.min) / m.range) * PLOT_HEIGHT


def project_x(index: int, window_length: int) -> float:
    if window_length <= 1:
        return float(PLOT_LEFT)
    return PLOT_LEFT + (index / (window_length - 1)) * PLOT_WIDTH


def line_path(window: Sequence[Candle], m: Optional[ChartMetrics]) -> str:
    """SVG path data through the closes: "M x y L x y ..."."""
    if not window or m is None:
        return ""
    n = len(window)
    points = [f"{project_x(i, n):.2f} {project_y(c.close, m):.2f}" for i, c in enumerate(window)]
    return "M " + " L ".join(points)


def candle_shapes(window: Sequence[Candle], m: Optional[ChartMetrics]) -> List[CandleShape]:
    if not window or m is None:
        return []
    n = len(window)
    body_width = (CANDLE_SPAN / n) * BODY_WIDTH_FRACTION
    shapes = []
    for i, c in enumerate(window):
        x = project_x(i, n)
        y_open, y_close = project_y(c.open, m), project_y(c.close, m)
        shapes.append(CandleShape(
            x=x,
            wick_top=project_y(c.high, m),
            wick_bottom=project_y(c.low, m),
            body_x=x - body_width / 2,
            body_y=y_close if c.is_up else y_open,
            body_width=body_width,
            body_height=max(MIN_BODY_HEIGHT, abs(y_close - y_open)),
            up=c.is_up,
        ))
    return shapes


def price_labels(m: Optional[ChartMetrics]) -> List[AxisLabel]:
    if m is None:
        return []
    return [
        AxisLabel(
            x=PLOT_LEFT - 5,
            y=VIEW_HEIGHT - MARGIN_BOTTOM - tick * PLOT_HEIGHT,
            text=f"${m.min + tick * m.range:,.0f}",
        )
        for tick in PRICE_TICKS
    ]


def time_labels(window: Sequence[Candle]) -> List[AxisLabel]:
    if not window:
        return []
    n = len(window)
    indices = sorted({0, n // 2, n - 1})
    return [
        AxisLabel(x=project_x(i, n), y=TIME_LABEL_Y, text=window[i].opened_at.strftime("%H:%M"))
        for i in indices
    ]


def project(window: Sequence[Candle], style: ChartStyle = ChartStyle.LINE) -> ChartGeometry:
    m = metrics(window)
    style = ChartStyle(style)
    geometry = ChartGeometry(
        style=style,
        metrics=m,
        price_labels=price_labels(m),
        time_labels=time_labels(window),
    )
    if style is ChartStyle.LINE:
        geometry.line_path = line_path(window, m)
    else:
        geometry.candles = candle_shapes(window, m)
    return geometry
