"""
dashboard_engine.py — Synchronization & simulation engine behind the dashboard.

One DashboardEngine owns:
  - a ViewState (no process-wide singletons)
  - exactly one session-change subscription while mounted
  - a RefreshScheduler (data refresh + auto-simulation timers)
  - a SimulationEngine

Lifecycle:
    async with DashboardEngine(session, feed, store, settings) as engine:
        ...   # signed in → timers running; signed out → nothing scheduled

Session transitions are applied in arrival order (each waits for the one
before), so a quick sign-out/sign-in pair can never leave the timers stopped
while a user is signed in.

Error policy:
  automatic refresh / auto-simulation → log and keep the last good state
  user actions (register, toggle, manual simulation, auth) → raise to caller
"""

from __future__ import annotations

import asyncio
from typing import List, Optional, Set, Tuple

from loguru import logger

import chart_projector
from agent_registry import AgentRegistry
from chart_projector import ChartGeometry, ChartStyle
from connectivity_check import ConnectivityChecker, ConnectivityResult
from decision_policy import DecisionPolicy
from hive_models import (
    Agent,
    AgentSpec,
    AgentStatus,
    AuthError,
    FeedUnavailable,
    Principal,
    Provider,
    RegistrationBlocked,
    StoreReadError,
)
from hive_settings import HiveSettings
from market_feed import Granularity, MarketFeed
from reasoning_log import ReasoningLogBook
from record_store import InMemoryRecordStore, RecordStore
from refresh_scheduler import RefreshScheduler
from session_state import LocalSessionProvider, SessionState, Subscription
from simulation_engine import SimulationEngine, SimulationReport
from view_state import ViewState


class DashboardEngine:

    def __init__(
        self,
        session:  SessionState,
        feed:     MarketFeed,
        store:    RecordStore,
        settings: Optional[HiveSettings] = None,
        policy:   Optional[DecisionPolicy] = None,
        checker:  Optional[ConnectivityChecker] = None,
    ) -> None:
        self.settings = settings or HiveSettings()
        self.session = session
        self.feed = feed
        self.store = store
        self.checker = checker or ConnectivityChecker(timeout=self.settings.connectivity_timeout)

        self.view = ViewState(
            granularity=Granularity.parse(self.settings.default_granularity),
            top_yield_count=self.settings.top_yield_count,
        )
        self.registry = AgentRegistry(store)
        self.log_book = ReasoningLogBook(store)
        self.scheduler = RefreshScheduler(
            refresh_job=self.refresh,
            simulation_job=self.auto_simulate if self.settings.auto_simulate else None,
            data_interval=self.settings.data_refresh_seconds,
            simulation_interval=self.settings.simulation_seconds,
        )
        self.simulation = SimulationEngine(
            self.registry, self.log_book, policy, on_complete=self.scheduler.refresh_now,
        )

        self._subscription: Optional[Subscription] = None
        self._transition: Optional[asyncio.Task] = None
        self._verified: Set[Tuple[Provider, str]] = set()
        self._mounted = False
        self._closed = False

    # ─── Lifecycle ────────────────────────────────────────────────────────────

    async def __aenter__(self) -> "DashboardEngine":
        await self.mount()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def is_mounted(self) -> bool:
        return self._mounted

    async def mount(self) -> None:
        if self._closed:
            raise RuntimeError("DashboardEngine cannot be remounted after close()")
        if self._mounted:
            return
        self._mounted = True
        self._subscription = self.session.on_session_change(self._on_session_change)
        principal = await self.session.get_current_session()
        if principal is None:
            logger.info("No active session; dashboard waiting for sign-in")
            return
        await self._apply_session(principal, None)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.simulation.halt()
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        await self.settle()
        await self.scheduler.stop()
        self._mounted = False
        logger.info("DashboardEngine closed")

    async def settle(self) -> None:
        """Wait until every delivered session transition has been applied."""
        while self._transition is not None and not self._transition.done():
            await asyncio.wait({self._transition})

    # ─── Session Transitions ──────────────────────────────────────────────────

    def _on_session_change(self, principal: Optional[Principal]) -> None:
        if self._closed:
            return
        previous = self._transition
        self._transition = asyncio.create_task(self._apply_session(principal, previous))

    async def _apply_session(self, principal: Optional[Principal], previous: Optional[asyncio.Task]) -> None:
        if previous is not None and not previous.done():
            await asyncio.wait({previous})
        if self._closed:
            return
        if principal is None:
            await self._deactivate()
        else:
            self._activate(principal)

    def _activate(self, principal: Principal) -> None:
        current = self.view.principal
        if current is not None and current.user_id != principal.user_id:
            self.view.clear_user_data()
        self.view.principal = principal
        if self.scheduler.is_running:
            self.scheduler.data_task.trigger()
            return
        logger.info(f"Session active for {principal.email or principal.user_id}; starting refresh timers")
        self.scheduler.start()

    async def _deactivate(self) -> None:
        self.simulation.cancel_pass()
        await self.scheduler.stop()
        if self.view.principal is not None:
            logger.info("Session ended; dashboard reverted to sign-in view")
        self.view.clear_user_data()
        self._verified.clear()

    # ─── Timed Jobs ───────────────────────────────────────────────────────────

    async def refresh(self) -> None:
        """Data-refresh firing: candles, agents, recent logs. Failures keep prior state."""
        granularity = self.view.granularity
        try:
            candles = await self.feed.fetch_candles_with_retry(granularity)
        except FeedUnavailable as exc:
            logger.warning(f"Market feed unavailable, keeping previous window: {exc}")
        else:
            if granularity is self.view.granularity:
                self.view.replace_candles(candles)

        principal = self.view.principal
        if principal is None:
            return

        try:
            agents = await self.registry.list_agents(self._owner_scope(principal))
        except StoreReadError as exc:
            logger.warning(f"Agent list unavailable, keeping previous set: {exc}")
        else:
            self.view.replace_agents(agents)

        try:
            logs = await self.log_book.recent(self.settings.reasoning_log_limit)
        except StoreReadError as exc:
            logger.warning(f"Reasoning logs unavailable, keeping previous entries: {exc}")
        else:
            self.view.replace_logs(logs)

        self.view.mark_refreshed()
        logger.debug(
            f"Refreshed: {len(self.view.candles)} candles, {self.view.active_agents}/"
            f"{len(self.view.agents)} active, avg yield {self.view.avg_yield:.3f}"
        )

    async def auto_simulate(self) -> None:
        """Simulation firing: silent unless there is an Active agent and no pass running."""
        if self._closed or self.simulation.is_running or self.view.principal is None:
            return
        price = await self._snapshot_price()
        try:
            await self.simulation.run_pass(self._load_agents, price, trigger="auto")
        except StoreReadError as exc:
            logger.warning(f"Agent list unavailable, simulation skipped: {exc}")
        except AuthError:
            logger.debug("Signed out before the simulation pass started")

    def _owner_scope(self, principal: Principal) -> Optional[str]:
        return principal.user_id if self.settings.scope_to_owner else None

    async def _load_agents(self) -> List[Agent]:
        """Fresh agent set from the store; also replaces the view's copy."""
        principal = self._require_principal()
        agents = await self.registry.list_agents(self._owner_scope(principal))
        self.view.replace_agents(agents)
        return agents

    async def _snapshot_price(self) -> Optional[float]:
        if self.view.latest_close is None:
            try:
                self.view.replace_candles(await self.feed.fetch_candles(self.view.granularity))
            except FeedUnavailable as exc:
                logger.warning(f"No price for simulation snapshot: {exc}")
        return self.view.latest_close

    # ─── User Actions ─────────────────────────────────────────────────────────

    def _require_principal(self) -> Principal:
        if self.view.principal is None:
            raise AuthError("Sign in first")
        return self.view.principal

    async def sign_in(self, email: str, password: str) -> Principal:
        principal = await self.session.sign_in(email, password)
        await self.settle()
        return principal

    async def sign_up(self, email: str, password: str) -> Optional[Principal]:
        principal = await self.session.sign_up(email, password)
        await self.settle()
        return principal

    async def sign_out(self) -> None:
        await self.session.sign_out()
        await self.settle()

    async def set_granularity(self, granularity) -> Granularity:
        selected = Granularity.parse(granularity)
        if selected is self.view.granularity:
            return selected
        self.view.granularity = selected
        await self.scheduler.change_granularity()
        logger.info(f"Granularity → {selected.value} ({selected.window_length}×{selected.interval})")
        return selected

    def set_chart_style(self, style) -> ChartStyle:
        self.view.chart_style = ChartStyle(style)
        return self.view.chart_style

    def chart(self) -> ChartGeometry:
        return chart_projector.project(self.view.candles, self.view.chart_style)

    async def test_connection(self, provider, api_key: str) -> ConnectivityResult:
        result = await self.checker.check(Provider.parse(provider), api_key)
        key = (result.provider, (api_key or "").strip())
        if result.ok:
            self._verified.add(key)
        else:
            self._verified.discard(key)
        return result

    def registration_enabled(self, provider, api_key: str) -> bool:
        return (Provider.parse(provider), (api_key or "").strip()) in self._verified

    async def register_agent(self, spec: AgentSpec) -> Agent:
        principal = self._require_principal()
        if not self.registration_enabled(spec.provider, spec.api_key):
            raise RegistrationBlocked("Verify the API key before registering an agent")
        agent = await self.registry.register_agent(principal, spec)
        self._verified.discard((spec.provider, spec.api_key.strip()))
        await self.scheduler.refresh_now()
        return agent

    async def toggle_agent(self, agent_id: str) -> AgentStatus:
        """Flip the stored status (not the view's copy, which may lag a write)."""
        agents = await self._load_agents()
        agent = next((a for a in agents if a.id == agent_id), None)
        if agent is None:
            raise KeyError(agent_id)
        new_status = await self.registry.toggle_status(agent)
        await self.scheduler.refresh_now()
        return new_status

    async def simulate_now(self) -> SimulationReport:
        """Manual pass. NO_ACTIVE_AGENTS / BUSY outcomes are reported, not raised."""
        self._require_principal()
        price = await self._snapshot_price()
        return await self.simulation.run_pass(self._load_agents, price, trigger="manual")


# ─── Construction ─────────────────────────────────────────────────────────────

async def build_engine(settings: HiveSettings) -> DashboardEngine:
    """Wire adapters from settings; no Supabase config → in-memory offline mode."""
    feed = MarketFeed(
        base_url=settings.binance_base_url,
        symbol=settings.symbol,
        timeout=settings.feed_timeout,
        retries=settings.feed_retries,
        retry_backoff=settings.feed_retry_backoff,
    )
    if settings.has_supabase:
        from supabase_backend import SupabaseRecordStore, SupabaseSessionProvider, connect_supabase

        client = await connect_supabase(settings.supabase_url, settings.supabase_key)
        store = SupabaseRecordStore(client)
        session = SessionState(SupabaseSessionProvider(client))
    else:
        logger.warning("SUPABASE_URL / SUPABASE_KEY not set; using in-memory store and local auth")
        store = InMemoryRecordStore()
        session = SessionState(LocalSessionProvider())
    return DashboardEngine(session, feed, store, settings)
