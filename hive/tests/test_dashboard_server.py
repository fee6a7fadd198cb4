"""
Tests for dashboard_server.py — FastAPI endpoints over a DashboardEngine.

Uses fastapi.testclient.TestClient; entering the client runs the app
lifespan, which mounts the engine and closes it on exit.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from fastapi.testclient import TestClient

from connectivity_check import ConnectivityResult
from dashboard_engine import DashboardEngine
from dashboard_server import create_app
from decision_policy import ScriptedDecisionPolicy
from hive_models import Candle, Decision, Provider
from hive_settings import HiveSettings
from record_store import InMemoryRecordStore
from session_state import LocalSessionProvider, SessionState

CREDS = {"email": "bee@hive.test", "password": "honey"}


class StubFeed:

    async def fetch_candles(self, granularity, limit=None):
        return [Candle(i, 100.0 + i, 110.0 + i, 90.0 + i, 105.0 + i) for i in range(granularity.window_length)]

    async def fetch_candles_with_retry(self, granularity):
        return await self.fetch_candles(granularity)


class StubChecker:

    async def check(self, provider, api_key):
        return ConnectivityResult(Provider.parse(provider), api_key == "good-key")


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def engine(store):
    settings = HiveSettings(data_refresh_seconds=3600, simulation_seconds=3600)
    return DashboardEngine(
        SessionState(LocalSessionProvider()),
        StubFeed(),
        store,
        settings,
        policy=ScriptedDecisionPolicy([Decision.HOLD]),
        checker=StubChecker(),
    )


@pytest.fixture
def client(engine):
    with TestClient(create_app(engine)) as c:
        yield c


@pytest.fixture
def signed_in(client):
    resp = client.post("/auth/sign-up", json=CREDS)
    assert resp.status_code == 200
    return client


# ─── Health & State ───────────────────────────────────────────────────────────

class TestHealth:

    def test_health_ok(self, client):
        data = client.get("/health").json()
        assert data["status"] == "ok"
        assert data["mounted"] is True
        assert data["scheduler_running"] is False
        assert "timestamp" in data

    def test_lifespan_closes_engine(self, engine):
        with TestClient(create_app(engine)) as c:
            assert c.get("/health").json()["mounted"] is True
        assert not engine.is_mounted


class TestState:

    def test_signed_out_state(self, client):
        data = client.get("/state").json()
        assert data["authenticated"] is False
        assert data["btc_price"] == "Loading..."
        assert data["agents"] == []
        assert data["granularity"] == "1d"

    def test_signed_in_state(self, signed_in):
        data = signed_in.get("/state").json()
        assert data["authenticated"] is True
        assert data["user"] == "bee@hive.test"
        assert signed_in.get("/health").json()["scheduler_running"] is True

    def test_chart_empty_before_data(self, client):
        data = client.get("/chart").json()
        assert data["metrics"] is None


# ─── View Selection ───────────────────────────────────────────────────────────

class TestView:

    def test_set_granularity(self, client):
        resp = client.post("/view/granularity", json={"granularity": "1w"})
        assert resp.json() == {"ok": True, "granularity": "1w"}
        assert client.get("/state").json()["granularity"] == "1w"

    def test_bad_granularity(self, client):
        assert client.post("/view/granularity", json={"granularity": "5m"}).status_code == 422

    def test_set_chart_style(self, client):
        resp = client.post("/view/chart-style", json={"style": "candle"})
        assert resp.json()["style"] == "candle"

    def test_bad_chart_style(self, client):
        assert client.post("/view/chart-style", json={"style": "pie"}).status_code == 422


# ─── Auth ─────────────────────────────────────────────────────────────────────

class TestAuth:

    def test_sign_up_signs_in(self, client):
        data = client.post("/auth/sign-up", json=CREDS).json()
        assert data["ok"] is True
        assert data["signed_in"] is True
        assert data["user_id"]

    def test_sign_in_wrong_password(self, client):
        client.post("/auth/sign-up", json=CREDS)
        client.post("/auth/sign-out")
        resp = client.post("/auth/sign-in", json={**CREDS, "password": "wrong"})
        assert resp.status_code == 401

    def test_empty_credentials(self, client):
        resp = client.post("/auth/sign-in", json={"email": "", "password": ""})
        assert resp.status_code == 401
        assert "required" in resp.json()["detail"]

    def test_sign_out_stops_scheduler(self, signed_in):
        assert signed_in.post("/auth/sign-out").json() == {"ok": True}
        assert signed_in.get("/health").json()["scheduler_running"] is False
        assert signed_in.get("/state").json()["authenticated"] is False


# ─── Agents ───────────────────────────────────────────────────────────────────

AGENT = {"name": "Honey Hunter", "persona": "buy dips", "provider": "google", "api_key": "good-key"}


class TestAgents:

    def test_register_requires_sign_in(self, client):
        assert client.post("/agents", json=AGENT).status_code == 401

    def test_register_blocked_without_check(self, signed_in):
        resp = signed_in.post("/agents", json=AGENT)
        assert resp.status_code == 409

    def test_connection_check_result(self, signed_in):
        ok = signed_in.post("/agents/test-connection", json={"provider": "google", "api_key": "good-key"}).json()
        assert ok["ok"] is True and ok["registration_enabled"] is True
        bad = signed_in.post("/agents/test-connection", json={"provider": "openai", "api_key": "nope"}).json()
        assert bad["ok"] is False and bad["registration_enabled"] is False

    def test_unknown_provider(self, signed_in):
        resp = signed_in.post("/agents/test-connection", json={"provider": "mistral", "api_key": "k"})
        assert resp.status_code == 422

    def test_register_after_check(self, signed_in):
        signed_in.post("/agents/test-connection", json={"provider": "google", "api_key": "good-key"})
        data = signed_in.post("/agents", json=AGENT).json()
        assert data["ok"] is True
        assert data["agent"]["name"] == "Honey Hunter"
        assert data["agent"]["status"] == "active"
        assert data["agent"]["cumulative_yield"] == 0.0

    def test_register_invalid_spec(self, signed_in):
        resp = signed_in.post("/agents", json={**AGENT, "name": ""})
        assert resp.status_code == 422

    def test_register_store_failure(self, signed_in, store):
        store.fail_on("upsert_api_key")
        signed_in.post("/agents/test-connection", json={"provider": "google", "api_key": "good-key"})
        resp = signed_in.post("/agents", json=AGENT)
        assert resp.status_code == 502
        assert store.agents == {}

    def test_toggle_unknown_agent(self, signed_in):
        assert signed_in.post("/agents/nope/toggle").status_code == 404

    def test_toggle_flips_and_restores(self, client, store):
        user_id = client.post("/auth/sign-up", json=CREDS).json()["user_id"]
        store.seed_agent(id="a1", name="Alpha", user_id=user_id, status="active")

        first = client.post("/agents/a1/toggle").json()
        assert first == {"ok": True, "agent_id": "a1", "status": "paused"}
        second = client.post("/agents/a1/toggle").json()
        assert second["status"] == "active"
        assert store.agents["a1"]["status"] == "active"


# ─── Simulation ───────────────────────────────────────────────────────────────

class TestSimulate:

    def test_requires_sign_in(self, client):
        assert client.post("/simulate").status_code == 401

    def test_no_active_agents(self, signed_in):
        data = signed_in.post("/simulate").json()
        assert data["outcome"] == "no_active_agents"
        assert data["results"] == []

    def test_completed_pass(self, client, store):
        user_id = client.post("/auth/sign-up", json=CREDS).json()["user_id"]
        store.seed_agent(id="a1", name="Alpha", user_id=user_id, status="active", **{"yield": 1.0})

        data = client.post("/simulate").json()
        assert data["outcome"] == "completed"
        assert data["failures"] == 0
        assert len(data["results"]) == 1
        result = data["results"][0]
        assert result["decision"] == "hold"
        assert result["logged"] is True
        assert result["yield_after"] == pytest.approx(1.01)
        assert store.agents["a1"]["yield"] == pytest.approx(1.01)
        assert len(store.reasoning_logs) == 1
