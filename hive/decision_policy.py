"""
decision_policy.py — Pluggable buy/sell/hold selection for simulated agents.

The simulation engine only needs `decide(agent, price) -> Decision`;
anything with that method can stand in for the default random policy.
Rationale text is composed separately so a real policy keeps the same log
format.
"""

from __future__ import annotations

import random
from typing import Optional, Protocol, Sequence

from hive_models import Agent, Decision


class DecisionPolicy(Protocol):
    def decide(self, agent: Agent, price: Optional[float]) -> Decision: ...


class RandomDecisionPolicy:
    """Uniform choice over buy / sell / hold. Seedable for reproducible runs."""

    def __init__(self, seed: Optional[int] = None) -> None:
        self._rng = random.Random(seed)

    def decide(self, agent: Agent, price: Optional[float]) -> Decision:
        return self._rng.choice(list(Decision))


class ScriptedDecisionPolicy:
    """Replays a fixed sequence of decisions, cycling when exhausted."""

    def __init__(self, decisions: Sequence[Decision]) -> None:
        if not decisions:
            raise ValueError("decisions must not be empty")
        self._decisions = list(decisions)
        self._index = 0

    def decide(self, agent: Agent, price: Optional[float]) -> Decision:
        decision = self._decisions[self._index % len(self._decisions)]
        self._index += 1
        return decision


_TEMPLATES = {
    Decision.BUY:  "{name} spotted upward momentum at {price} and is buying.",
    Decision.SELL: "{name} is trimming exposure at {price}; sellers look stronger.",
    Decision.HOLD: "{name} sees no clear edge at {price} and is holding.",
}


def compose_rationale(agent: Agent, decision: Decision, price: Optional[float]) -> str:
    price_text = f"${price:,.0f}" if price is not None else "an unknown price"
    return _TEMPLATES[decision].format(name=agent.name, price=price_text)
