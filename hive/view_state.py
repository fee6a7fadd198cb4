"""
view_state.py — Process-local dashboard state owned by one engine instance.

Each source (candles, agents, logs) is replaced wholesale when its fetch
succeeds and left untouched when it fails; derived fields are recomputed
from whatever is current.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

import chart_projector
from agent_registry import active_count, average_yield, top_by_yield
from chart_projector import ChartMetrics, ChartStyle
from hive_models import Agent, Candle, Principal, ReasoningLogEntry
from market_feed import Granularity


@dataclass
class ViewState:
    granularity:       Granularity = Granularity.DAILY
    chart_style:       ChartStyle = ChartStyle.LINE
    principal:         Optional[Principal] = None
    candles:           List[Candle] = field(default_factory=list)
    agents:            List[Agent] = field(default_factory=list)
    logs:              List[ReasoningLogEntry] = field(default_factory=list)
    metrics:           Optional[ChartMetrics] = None
    active_agents:     int = 0
    avg_yield:         float = 0.0
    top_yields:        List[Agent] = field(default_factory=list)
    last_refreshed_at: Optional[str] = None
    top_yield_count:   int = 5

    @property
    def authenticated(self) -> bool:
        return self.principal is not None

    @property
    def latest_close(self) -> Optional[float]:
        return self.candles[-1].close if self.candles else None

    @property
    def price_label(self) -> str:
        close = self.latest_close
        return f"${close:,.0f}" if close is not None else "Loading..."

    def replace_candles(self, candles: List[Candle]) -> None:
        self.candles = list(candles)
        self.metrics = chart_projector.metrics(self.candles)

    def replace_agents(self, agents: List[Agent]) -> None:
        self.agents = list(agents)
        self.active_agents = active_count(self.agents)
        self.avg_yield = average_yield(self.agents)
        self.top_yields = top_by_yield(self.agents, self.top_yield_count)

    def replace_logs(self, logs: List[ReasoningLogEntry]) -> None:
        self.logs = list(logs)

    def mark_refreshed(self) -> None:
        self.last_refreshed_at = datetime.now(timezone.utc).isoformat()

    def clear_user_data(self) -> None:
        """Drop everything tied to the signed-out user; keep view selections."""
        self.principal = None
        self.agents = []
        self.logs = []
        self.active_agents = 0
        self.avg_yield = 0.0
        self.top_yields = []

    def find_agent(self, agent_id: str) -> Optional[Agent]:
        return next((a for a in self.agents if a.id == agent_id), None)

    def summary(self) -> dict:
        return {
            "authenticated": self.authenticated,
            "user": self.principal.email if self.principal else None,
            "granularity": self.granularity.value,
            "chart_style": self.chart_style.value,
            "btc_price": self.price_label,
            "active_agents": self.active_agents,
            "average_yield": round(self.avg_yield, 4),
            "top_yields": [{"name": a.name, "yield": round(a.cumulative_yield, 4)} for a in self.top_yields],
            "agents": [a.to_dict() for a in self.agents],
            "reasoning_logs": [e.to_dict() for e in self.logs],
            "candle_count": len(self.candles),
            "last_refreshed_at": self.last_refreshed_at,
        }
