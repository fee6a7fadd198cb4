"""
dashboard_server.py — FastAPI JSON surface over a DashboardEngine.

Serves data only (state summary, chart geometry, action results); drawing
is left to whatever front end consumes it.

HTTP Endpoints:
  GET  /health                   — liveness + scheduler state
  GET  /state                    — view summary (price, agents, yields, logs)
  GET  /chart                    — projected chart geometry for the current view
  POST /view/granularity         — {"granularity": "1h" | "1d" | "1w"}
  POST /view/chart-style         — {"style": "line" | "candle"}
  POST /auth/sign-in             — {"email", "password"}
  POST /auth/sign-up             — {"email", "password"}
  POST /auth/sign-out
  POST /agents/test-connection   — {"provider", "api_key"}
  POST /agents                   — {"name", "persona", "provider", "api_key"}
  POST /agents/{agent_id}/toggle — flip active/paused
  POST /simulate                 — run one manual simulation pass

Run:
    python main.py --serve --port 8001
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from loguru import logger

from dashboard_engine import DashboardEngine
from hive_models import AgentSpec, AuthError, HiveError, RegistrationBlocked, WriteError


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_app(engine: DashboardEngine, manage_lifecycle: bool = True) -> FastAPI:
    """
    Build the API for one engine. With manage_lifecycle the app's lifespan
    mounts the engine on startup and closes it on shutdown.
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        if not manage_lifecycle:
            yield
            return
        async with engine:
            yield

    app = FastAPI(
        title="Hive Dashboard",
        description="Market, agent registry and simulation state for the Hive dashboard",
        version="0.1.0",
        lifespan=lifespan,
    )

    # ─── Error Handlers ───────────────────────────────────────────────────────

    @app.exception_handler(AuthError)
    async def auth_error_handler(_request: Any, exc: AuthError) -> JSONResponse:
        return JSONResponse(status_code=401, content={"detail": str(exc)})

    @app.exception_handler(RegistrationBlocked)
    async def blocked_handler(_request: Any, exc: RegistrationBlocked) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(WriteError)
    async def write_error_handler(_request: Any, exc: WriteError) -> JSONResponse:
        logger.warning(f"Store write rejected: {exc}")
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    @app.exception_handler(HiveError)
    async def hive_error_handler(_request: Any, exc: HiveError) -> JSONResponse:
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    # ─── Read Routes ──────────────────────────────────────────────────────────

    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "ok",
            "timestamp": _now(),
            "mounted": engine.is_mounted,
            "scheduler_running": engine.scheduler.is_running,
            "simulation_running": engine.simulation.is_running,
        }

    @app.get("/state")
    async def state() -> dict:
        return {**engine.view.summary(), "timestamp": _now()}

    @app.get("/chart")
    async def chart() -> dict:
        return engine.chart().to_dict()

    # ─── View Selection ───────────────────────────────────────────────────────

    @app.post("/view/granularity")
    async def set_granularity(payload: dict) -> dict:
        try:
            selected = await engine.set_granularity(payload.get("granularity", ""))
        except ValueError:
            raise HTTPException(status_code=422, detail="granularity must be one of 1h, 1d, 1w")
        return {"ok": True, "granularity": selected.value}

    @app.post("/view/chart-style")
    async def set_chart_style(payload: dict) -> dict:
        try:
            style = engine.set_chart_style(payload.get("style", ""))
        except ValueError:
            raise HTTPException(status_code=422, detail="style must be line or candle")
        return {"ok": True, "style": style.value}

    # ─── Auth ─────────────────────────────────────────────────────────────────

    @app.post("/auth/sign-in")
    async def sign_in(payload: dict) -> dict:
        principal = await engine.sign_in(payload.get("email", ""), payload.get("password", ""))
        return {"ok": True, "user_id": principal.user_id, "email": principal.email}

    @app.post("/auth/sign-up")
    async def sign_up(payload: dict) -> dict:
        principal = await engine.sign_up(payload.get("email", ""), payload.get("password", ""))
        return {
            "ok": True,
            "signed_in": principal is not None,
            "user_id": principal.user_id if principal else None,
        }

    @app.post("/auth/sign-out")
    async def sign_out() -> dict:
        await engine.sign_out()
        return {"ok": True}

    # ─── Agents ───────────────────────────────────────────────────────────────

    @app.post("/agents/test-connection")
    async def test_connection(payload: dict) -> dict:
        try:
            result = await engine.test_connection(payload.get("provider", ""), payload.get("api_key", ""))
        except ValueError:
            raise HTTPException(status_code=422, detail="unknown provider")
        return {**result.to_dict(), "registration_enabled": result.ok}

    @app.post("/agents")
    async def register_agent(payload: dict) -> dict:
        try:
            spec = AgentSpec(
                name=payload.get("name", ""),
                persona=payload.get("persona", ""),
                provider=payload.get("provider", ""),
                api_key=payload.get("api_key", ""),
            )
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc))
        agent = await engine.register_agent(spec)
        return {"ok": True, "agent": agent.to_dict()}

    @app.post("/agents/{agent_id}/toggle")
    async def toggle_agent(agent_id: str) -> dict:
        try:
            status = await engine.toggle_agent(agent_id)
        except KeyError:
            raise HTTPException(status_code=404, detail=f"unknown agent {agent_id}")
        return {"ok": True, "agent_id": agent_id, "status": status.value}

    @app.post("/simulate")
    async def simulate() -> dict:
        report = await engine.simulate_now()
        return report.to_dict()

    return app
