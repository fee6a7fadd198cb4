"""
Tests for agent_registry.py and reasoning_log.py against the in-memory store.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from agent_registry import AgentRegistry, active_count, average_yield, top_by_yield
from hive_models import Agent, AgentSpec, AgentStatus, Principal, Provider, StoreReadError, WriteError
from reasoning_log import ReasoningLogBook
from record_store import InMemoryRecordStore


OWNER = Principal(user_id="owner-1", email="bee@hive.test")


@pytest.fixture
def store():
    s = InMemoryRecordStore()
    s.seed_agent(id="a1", name="Alpha", user_id="owner-1", status="active", **{"yield": 1.0})
    s.seed_agent(id="a2", name="Beta", user_id="owner-1", status=None, **{"yield": 3.0})
    s.seed_agent(id="a3", name="Gamma", user_id="someone-else", status="paused", **{"yield": -1.0})
    return s


@pytest.fixture
def registry(store):
    return AgentRegistry(store)


def spec(**overrides):
    values = {"name": "Honey Hunter", "persona": "buy dips", "provider": Provider.GOOGLE, "api_key": "key-123"}
    values.update(overrides)
    return AgentSpec(**values)


# ─── list_agents ──────────────────────────────────────────────────────────────

class TestListAgents:

    @pytest.mark.asyncio
    async def test_owner_scope(self, registry):
        agents = await registry.list_agents("owner-1")
        assert {a.id for a in agents} == {"a1", "a2"}

    @pytest.mark.asyncio
    async def test_all(self, registry):
        agents = await registry.list_agents(None)
        assert len(agents) == 3

    @pytest.mark.asyncio
    async def test_null_status_coerced(self, registry):
        agents = {a.id: a for a in await registry.list_agents(None)}
        assert agents["a2"].status is AgentStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_read_failure_raises(self, registry, store):
        store.fail_on("select_agents")
        with pytest.raises(StoreReadError):
            await registry.list_agents("owner-1")


# ─── status ───────────────────────────────────────────────────────────────────

class TestStatus:

    @pytest.mark.asyncio
    async def test_toggle_from_unset_goes_to_paused(self, registry, store):
        agent = Agent.from_row(store.agents["a2"])
        assert await registry.toggle_status(agent) is AgentStatus.PAUSED
        assert store.agents["a2"]["status"] == "paused"

    @pytest.mark.asyncio
    async def test_toggle_twice_restores(self, registry, store):
        agent = Agent.from_row(store.agents["a3"])
        original = agent.status
        await registry.toggle_status(agent)
        await registry.toggle_status(Agent.from_row(store.agents["a3"]))
        assert Agent.from_row(store.agents["a3"]).status is original

    @pytest.mark.asyncio
    async def test_write_error_propagates(self, registry, store):
        store.fail_on("update_agent")
        with pytest.raises(WriteError):
            await registry.set_agent_status("a1", AgentStatus.PAUSED)
        assert store.agents["a1"]["status"] == "active"


# ─── registration ─────────────────────────────────────────────────────────────

class TestRegister:

    @pytest.mark.asyncio
    async def test_creates_agent_and_key(self, registry, store):
        agent = await registry.register_agent(OWNER, spec())
        assert agent.name == "Honey Hunter"
        assert agent.status is AgentStatus.ACTIVE
        assert agent.cumulative_yield == 0.0
        assert agent.owner_id == "owner-1"
        assert agent.model == "Gemini-Flash"
        assert store.api_keys[("owner-1", "google")]["api_key"] == "key-123"

    @pytest.mark.asyncio
    async def test_key_written_before_agent(self, registry, store):
        await registry.register_agent(OWNER, spec())
        ops = [op for op, _ in store.writes()]
        assert ops == ["upsert_api_key", "insert_agent"]

    @pytest.mark.asyncio
    async def test_failed_key_write_creates_no_agent(self, registry, store):
        store.fail_on("upsert_api_key")
        before = dict(store.agents)
        with pytest.raises(WriteError):
            await registry.register_agent(OWNER, spec())
        assert store.agents == before
        assert not any(op == "insert_agent" for op, _ in store.calls)

    @pytest.mark.asyncio
    async def test_key_upsert_replaces_per_provider(self, registry, store):
        await registry.register_agent(OWNER, spec(api_key="first"))
        await registry.register_agent(OWNER, spec(name="Second", api_key="second"))
        assert len(store.api_keys) == 1
        assert store.api_keys[("owner-1", "google")]["api_key"] == "second"

    @pytest.mark.asyncio
    async def test_agent_insert_failure(self, registry, store):
        store.fail_on("insert_agent")
        with pytest.raises(WriteError):
            await registry.register_agent(OWNER, spec())


# ─── yield ────────────────────────────────────────────────────────────────────

class TestYield:

    @pytest.mark.asyncio
    async def test_additive(self, registry, store):
        agent = Agent.from_row(store.agents["a1"])
        new_yield = await registry.apply_yield_delta(agent, 0.2)
        assert new_yield == pytest.approx(1.2)
        assert store.agents["a1"]["yield"] == pytest.approx(1.2)


# ─── summaries ────────────────────────────────────────────────────────────────

class TestSummaries:

    def _agents(self, store):
        return [Agent.from_row(r) for r in store.agents.values()]

    def test_active_count(self, store):
        assert active_count(self._agents(store)) == 2

    def test_average_yield(self, store):
        assert average_yield(self._agents(store)) == pytest.approx(1.0)

    def test_average_yield_empty(self):
        assert average_yield([]) == 0.0

    def test_top_by_yield(self, store):
        assert [a.name for a in top_by_yield(self._agents(store), 2)] == ["Beta", "Alpha"]


# ─── reasoning log ────────────────────────────────────────────────────────────

class TestReasoningLogBook:

    @pytest.mark.asyncio
    async def test_recent_newest_first_and_limited(self, store):
        book = ReasoningLogBook(store)
        for i in range(7):
            await book.append("a1", f"thought {i}")
        recent = await book.recent(5)
        assert [e.content for e in recent] == [f"thought {i}" for i in (6, 5, 4, 3, 2)]

    @pytest.mark.asyncio
    async def test_append_failure(self, store):
        store.fail_on("insert_reasoning_log")
        with pytest.raises(WriteError):
            await ReasoningLogBook(store).append("a1", "x")
        assert store.reasoning_logs == []
