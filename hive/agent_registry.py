"""
agent_registry.py — Local view over the backend `agents` collection.

Reads come back as Agent records (status already coerced at ingestion);
writes go straight to the store and raise WriteError on rejection. Nothing
here mutates local state speculatively: callers refresh after a write.

Registration writes the user's provider credential to `user_api_keys` first.
If that upsert fails the agent insert never happens, so there is no agent
left behind without its key.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from loguru import logger

from hive_models import Agent, AgentSpec, AgentStatus, Principal, WriteError
from record_store import RecordStore


class AgentRegistry:

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def list_agents(self, owner_scope: Optional[str] = None) -> List[Agent]:
        """All agents, or only those owned by `owner_scope`. Raises StoreReadError."""
        rows = await self._store.select_agents(owner_scope)
        return [Agent.from_row(row) for row in rows]

    async def set_agent_status(self, agent_id: str, status: AgentStatus) -> None:
        await self._store.update_agent(agent_id, {"status": AgentStatus(status).value})
        logger.info(f"Agent {agent_id} status → {AgentStatus(status).value}")

    async def toggle_status(self, agent: Agent) -> AgentStatus:
        """Flip ACTIVE ↔ PAUSED and return the status written."""
        new_status = agent.status.opposite()
        await self.set_agent_status(agent.id, new_status)
        return new_status

    async def register_agent(self, owner: Principal, spec: AgentSpec) -> Agent:
        try:
            await self._store.upsert_api_key({
                "user_id": owner.user_id,
                "provider": spec.provider.value,
                "api_key": spec.api_key,
            })
        except WriteError as exc:
            logger.warning(f"Credential write failed, agent {spec.name!r} not created: {exc}")
            raise

        row = await self._store.insert_agent(spec.to_row(owner.user_id))
        agent = Agent.from_row(row)
        logger.info(f"Registered agent {agent.name!r} ({agent.provider.label}) id={agent.id}")
        return agent

    async def apply_yield_delta(self, agent: Agent, delta: float) -> float:
        """Write agent.cumulative_yield + delta; returns the new total."""
        new_yield = agent.cumulative_yield + delta
        await self._store.update_agent(agent.id, {"yield": new_yield})
        return new_yield


# ─── Summaries ────────────────────────────────────────────────────────────────

def active_count(agents: Sequence[Agent]) -> int:
    return sum(1 for a in agents if a.is_active)


def average_yield(agents: Sequence[Agent]) -> float:
    if not agents:
        return 0.0
    return sum(a.cumulative_yield for a in agents) / len(agents)


def top_by_yield(agents: Sequence[Agent], n: int = 5) -> List[Agent]:
    return sorted(agents, key=lambda a: a.cumulative_yield, reverse=True)[:n]
