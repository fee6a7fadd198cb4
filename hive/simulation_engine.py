"""
simulation_engine.py — One simulated decision round over the Active agents.

Per pass, strictly in agent order:
  1. policy.decide(agent, price)           → Decision
  2. compose_rationale(...)                → log text
  3. append reasoning log                  → on WriteError skip 4, carry on
  4. cumulative_yield += decision delta    → Buy +0.2 / Sell −0.1 / Hold +0.01

A yield change is never written without its log entry. One agent failing
does not abort the batch. When the pass ends, `on_complete` (the dashboard's
refresh request) runs once.

Only one pass runs at a time: start is a try-acquire with no suspension
point between the check and the set, so a manual trigger racing the timer
gets BUSY back instead of a second concurrent pass. The agent snapshot may
be a loader coroutine; it is awaited after the acquire so every pass starts
from the yields the previous pass wrote.

halt() stops the engine for good (teardown); cancel_pass() stops only the
pass in progress (sign-out). Either way the current agent finishes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence, Union

from loguru import logger

from agent_registry import AgentRegistry
from decision_policy import DecisionPolicy, RandomDecisionPolicy, compose_rationale
from hive_models import Agent, Decision, HiveError
from reasoning_log import ReasoningLogBook


class SimulationOutcome(str, Enum):
    COMPLETED = "completed"
    NO_ACTIVE_AGENTS = "no_active_agents"
    BUSY = "busy"
    HALTED = "halted"


@dataclass
class AgentResult:
    agent_id:     str
    agent_name:   str
    decision:     Decision
    rationale:    str
    logged:       bool = False
    yield_before: float = 0.0
    yield_after:  Optional[float] = None
    error:        Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "agent_id": self.agent_id,
            "agent_name": self.agent_name,
            "decision": self.decision.value,
            "rationale": self.rationale,
            "logged": self.logged,
            "yield_before": round(self.yield_before, 4),
            "yield_after": round(self.yield_after, 4) if self.yield_after is not None else None,
            "error": self.error,
        }


@dataclass
class SimulationReport:
    outcome:     SimulationOutcome
    trigger:     str
    price:       Optional[float] = None
    results:     List[AgentResult] = field(default_factory=list)
    started_at:  str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    finished_at: Optional[str] = None

    @property
    def failures(self) -> List[AgentResult]:
        return [r for r in self.results if r.error is not None]

    @property
    def logged_count(self) -> int:
        return sum(1 for r in self.results if r.logged)

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "trigger": self.trigger,
            "price": self.price,
            "results": [r.to_dict() for r in self.results],
            "failures": len(self.failures),
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


AgentSource = Union[Sequence[Agent], Callable[[], Awaitable[Sequence[Agent]]]]


class SimulationEngine:
    """
    Usage:
        engine = SimulationEngine(registry, log_book, on_complete=scheduler.refresh_now)
        report = await engine.run_pass(load_agents, price, trigger="manual")
    """

    def __init__(
        self,
        registry:    AgentRegistry,
        log_book:    ReasoningLogBook,
        policy:      Optional[DecisionPolicy] = None,
        on_complete: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        self.registry = registry
        self.log_book = log_book
        self.policy = policy or RandomDecisionPolicy()
        self.on_complete = on_complete
        self._running = False
        self._halted = False
        self._pass_cancelled = False
        self.passes_run = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_halted(self) -> bool:
        return self._halted

    def halt(self) -> None:
        """Stop after the agent in progress; no further passes start."""
        self._halted = True

    def cancel_pass(self) -> None:
        """Stop the pass in progress after its current agent; later passes run normally."""
        if self._running:
            self._pass_cancelled = True

    def _try_acquire(self) -> bool:
        if self._running or self._halted:
            return False
        self._running = True
        self._pass_cancelled = False
        return True

    def _should_stop(self) -> bool:
        return self._halted or self._pass_cancelled

    async def run_pass(
        self,
        agents:  AgentSource,
        price:   Optional[float],
        trigger: str = "manual",
    ) -> SimulationReport:
        """
        Run one pass. `agents` is a snapshot or a zero-argument coroutine
        function returning one; a loader's StoreReadError propagates.
        """
        if self._halted:
            return SimulationReport(outcome=SimulationOutcome.HALTED, trigger=trigger, price=price)
        if not self._try_acquire():
            logger.info(f"Simulation ({trigger}) skipped: a pass is already running")
            return SimulationReport(outcome=SimulationOutcome.BUSY, trigger=trigger, price=price)

        try:
            if callable(agents):
                agents = await agents()
            snapshot = [a for a in agents if a.is_active]
            report = SimulationReport(outcome=SimulationOutcome.COMPLETED, trigger=trigger, price=price)
            if not snapshot:
                report.outcome = SimulationOutcome.NO_ACTIVE_AGENTS
                report.finished_at = datetime.now(timezone.utc).isoformat()
                return report

            logger.info(f"Simulation ({trigger}) over {len(snapshot)} active agent(s) at price {price}")
            for agent in snapshot:
                if self._should_stop():
                    report.outcome = SimulationOutcome.HALTED
                    break
                report.results.append(await self._simulate_agent(agent, price))

            self.passes_run += 1
            report.finished_at = datetime.now(timezone.utc).isoformat()
            logger.info(
                f"Simulation ({trigger}) {report.outcome.value}: "
                f"{report.logged_count}/{len(snapshot)} logged, {len(report.failures)} failure(s)"
            )
        finally:
            self._running = False
            self._pass_cancelled = False

        if report.outcome is SimulationOutcome.COMPLETED and self.on_complete is not None:
            await self.on_complete()
        return report

    async def _simulate_agent(self, agent: Agent, price: Optional[float]) -> AgentResult:
        decision = self.policy.decide(agent, price)
        result = AgentResult(
            agent_id=agent.id,
            agent_name=agent.name,
            decision=decision,
            rationale=compose_rationale(agent, decision, price),
            yield_before=agent.cumulative_yield,
        )

        try:
            await self.log_book.append(agent.id, result.rationale)
        except HiveError as exc:
            logger.warning(f"Reasoning log write failed for {agent.name!r}, yield left unchanged: {exc}")
            result.error = f"log: {exc}"
            return result
        result.logged = True

        try:
            result.yield_after = await self.registry.apply_yield_delta(agent, decision.yield_delta)
        except HiveError as exc:
            logger.warning(f"Yield update failed for {agent.name!r}: {exc}")
            result.error = f"yield: {exc}"
        return result
