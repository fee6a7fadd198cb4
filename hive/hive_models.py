"""
hive_models.py — Core records and error types for the Hive dashboard engine.

Records mirror the backend collections (`agents`, `reasoning_logs`,
`user_api_keys`) plus the market candles pulled from the price feed.
Row mapping happens here, at the ingestion edge, so consumers only ever see
explicit enums (a null agent status is read as ACTIVE exactly once, in
Agent.from_row).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Sequence


# ─── Errors ───────────────────────────────────────────────────────────────────

class HiveError(Exception):
    """Base class for engine errors."""


class FeedUnavailable(HiveError):
    """Market source unreachable or returned a malformed response."""


class WriteError(HiveError):
    """Record store rejected an insert/update/upsert."""


class StoreReadError(HiveError):
    """Record store read failed."""


class AuthError(HiveError):
    """Sign-in / sign-up rejected, or credentials missing."""


class RegistrationBlocked(HiveError):
    """Agent registration attempted before its preconditions were met."""


# ─── Enums ────────────────────────────────────────────────────────────────────

class Provider(str, Enum):
    GOOGLE = "google"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"

    @classmethod
    def parse(cls, value: Any) -> "Provider":
        if isinstance(value, Provider):
            return value
        return cls(str(value).strip().lower())

    @property
    def label(self) -> str:
        return {"google": "Google", "openai": "OpenAI", "anthropic": "Anthropic"}[self.value]


# Model label written on registration, per provider
DEFAULT_MODELS: dict[Provider, str] = {
    Provider.GOOGLE:    "Gemini-Flash",
    Provider.OPENAI:    "GPT-4o-mini",
    Provider.ANTHROPIC: "Claude-Haiku",
}


class AgentStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"

    @classmethod
    def from_raw(cls, value: Optional[str]) -> "AgentStatus":
        """Coerce a stored status; null/empty predates the column and means ACTIVE."""
        if not value:
            return cls.ACTIVE
        return cls(str(value).lower())

    def opposite(self) -> "AgentStatus":
        return AgentStatus.PAUSED if self is AgentStatus.ACTIVE else AgentStatus.ACTIVE


class Decision(str, Enum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"

    @property
    def yield_delta(self) -> float:
        return YIELD_DELTAS[self]


# Fixed additive yield change per decision
YIELD_DELTAS: dict[Decision, float] = {
    Decision.BUY:  0.2,
    Decision.SELL: -0.1,
    Decision.HOLD: 0.01,
}


# ─── Records ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Candle:
    """One OHLC sample. open_time is epoch milliseconds, as Binance reports it."""
    open_time: int
    open:      float
    high:      float
    low:       float
    close:     float

    @classmethod
    def from_kline(cls, row: Sequence[Any]) -> "Candle":
        """Build from a kline tuple; only the first five fields are read."""
        return cls(
            open_time=int(row[0]),
            open=float(row[1]),
            high=float(row[2]),
            low=float(row[3]),
            close=float(row[4]),
        )

    @property
    def is_up(self) -> bool:
        return self.close >= self.open

    @property
    def opened_at(self) -> datetime:
        return datetime.fromtimestamp(self.open_time / 1000, tz=timezone.utc)


@dataclass(frozen=True)
class Principal:
    """The signed-in user."""
    user_id: str
    email:   str = ""


@dataclass
class Agent:
    id:               str
    name:             str
    persona:          str
    provider:         Provider
    owner_id:         Optional[str]
    status:           AgentStatus = AgentStatus.ACTIVE
    cumulative_yield: float = 0.0
    model:            str = ""

    @property
    def is_active(self) -> bool:
        return self.status is AgentStatus.ACTIVE

    @classmethod
    def from_row(cls, row: dict) -> "Agent":
        return cls(
            id=str(row["id"]),
            name=row.get("name") or "",
            persona=row.get("persona") or "",
            provider=Provider.parse(row.get("provider") or Provider.GOOGLE),
            owner_id=row.get("user_id"),
            status=AgentStatus.from_raw(row.get("status")),
            cumulative_yield=float(row.get("yield") or 0.0),
            model=row.get("model") or "",
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "persona": self.persona,
            "provider": self.provider.value,
            "owner_id": self.owner_id,
            "status": self.status.value,
            "cumulative_yield": round(self.cumulative_yield, 4),
            "model": self.model,
        }


@dataclass
class AgentSpec:
    """What a user submits to register a new agent."""
    name:     str
    persona:  str
    provider: Provider
    api_key:  str

    def __post_init__(self) -> None:
        self.provider = Provider.parse(self.provider)
        for attr in ("name", "persona", "api_key"):
            if not str(getattr(self, attr) or "").strip():
                raise ValueError(f"{attr} must not be empty")

    def to_row(self, owner_id: str) -> dict:
        return {
            "name": self.name,
            "persona": self.persona,
            "provider": self.provider.value,
            "user_id": owner_id,
            "yield": 0.0,
            "status": AgentStatus.ACTIVE.value,
            "model": DEFAULT_MODELS[self.provider],
        }


@dataclass
class ReasoningLogEntry:
    content:    str
    agent_id:   str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_row(cls, row: dict) -> "ReasoningLogEntry":
        created = row.get("created_at")
        if isinstance(created, str):
            created = datetime.fromisoformat(created.replace("Z", "+00:00"))
        elif created is None:
            created = datetime.now(timezone.utc)
        return cls(content=row.get("content") or "", agent_id=str(row.get("agent_id") or ""), created_at=created)

    def to_dict(self) -> dict:
        return {
            "content": self.content,
            "agent_id": self.agent_id,
            "created_at": self.created_at.isoformat(),
        }
