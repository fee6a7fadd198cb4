"""
record_store.py — Record store contract plus an in-memory implementation.

The engine talks to three collections:
  agents          — select (optionally by owner) / insert / update by id
  reasoning_logs  — select newest-first with a limit / insert
  user_api_keys   — upsert keyed by (user_id, provider)

SupabaseRecordStore (supabase_backend.py) is the production store.
InMemoryRecordStore backs offline demo mode and the test suite; it can be
told to fail specific operations so error paths are exercisable.
"""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from loguru import logger

from hive_models import StoreReadError, WriteError


class RecordStore(Protocol):
    async def select_agents(self, owner_id: Optional[str] = None) -> List[dict]: ...
    async def insert_agent(self, row: dict) -> dict: ...
    async def update_agent(self, agent_id: str, fields: dict) -> None: ...
    async def insert_reasoning_log(self, row: dict) -> dict: ...
    async def select_reasoning_logs(self, limit: int) -> List[dict]: ...
    async def upsert_api_key(self, row: dict) -> None: ...


FailurePredicate = Callable[[dict], bool]

READ_OPERATIONS = frozenset({"select_agents", "select_reasoning_logs"})


class InMemoryRecordStore:
    """
    Dict-backed store with the same semantics as the Supabase tables.

    Every call is appended to `calls` as (operation, payload) so tests can
    assert exactly which writes happened.
    """

    def __init__(self) -> None:
        self.agents: Dict[str, dict] = {}
        self.reasoning_logs: List[dict] = []
        self.api_keys: Dict[Tuple[str, str], dict] = {}
        self.calls: List[Tuple[str, dict]] = []
        self._failures: Dict[str, FailurePredicate] = {}
        self._ids = itertools.count(1)
        # Monotonic timestamps keep newest-first ordering stable within a test
        self._clock = datetime.now(timezone.utc)

    # ── Failure injection ─────────────────────────────────────────────────────

    def fail_on(self, operation: str, when: Optional[FailurePredicate] = None) -> None:
        """Make `operation` fail for payloads matching `when` (all if None)."""
        self._failures[operation] = when or (lambda _payload: True)

    def clear_failures(self) -> None:
        self._failures.clear()

    def _check(self, operation: str, payload: dict) -> None:
        self.calls.append((operation, dict(payload)))
        predicate = self._failures.get(operation)
        if predicate is not None and predicate(payload):
            logger.debug(f"InMemoryRecordStore: injected failure for {operation}")
            if operation in READ_OPERATIONS:
                raise StoreReadError(f"{operation} failed")
            raise WriteError(f"{operation} rejected")

    def _now(self) -> str:
        self._clock += timedelta(milliseconds=1)
        return self._clock.isoformat()

    # ── agents ────────────────────────────────────────────────────────────────

    def seed_agent(self, **row) -> dict:
        """Insert a row directly, bypassing call tracking (test/demo setup)."""
        row.setdefault("id", f"agent-{next(self._ids)}")
        self.agents[str(row["id"])] = row
        return row

    async def select_agents(self, owner_id: Optional[str] = None) -> List[dict]:
        self._check("select_agents", {"owner_id": owner_id})
        rows = self.agents.values()
        if owner_id is not None:
            rows = [r for r in rows if r.get("user_id") == owner_id]
        return [dict(r) for r in rows]

    async def insert_agent(self, row: dict) -> dict:
        self._check("insert_agent", row)
        stored = dict(row)
        stored.setdefault("id", f"agent-{next(self._ids)}")
        stored.setdefault("created_at", self._now())
        self.agents[str(stored["id"])] = stored
        return dict(stored)

    async def update_agent(self, agent_id: str, fields: dict) -> None:
        self._check("update_agent", {"id": agent_id, **fields})
        if agent_id not in self.agents:
            raise WriteError(f"agent {agent_id} not found")
        self.agents[agent_id].update(fields)

    # ── reasoning_logs ────────────────────────────────────────────────────────

    async def insert_reasoning_log(self, row: dict) -> dict:
        self._check("insert_reasoning_log", row)
        stored = dict(row)
        stored.setdefault("created_at", self._now())
        self.reasoning_logs.append(stored)
        return dict(stored)

    async def select_reasoning_logs(self, limit: int) -> List[dict]:
        self._check("select_reasoning_logs", {"limit": limit})
        newest_first = sorted(self.reasoning_logs, key=lambda r: r["created_at"], reverse=True)
        return [dict(r) for r in newest_first[:limit]]

    # ── user_api_keys ─────────────────────────────────────────────────────────

    async def upsert_api_key(self, row: dict) -> None:
        self._check("upsert_api_key", row)
        self.api_keys[(row["user_id"], row["provider"])] = dict(row)

    # ── Introspection ─────────────────────────────────────────────────────────

    def writes(self) -> List[Tuple[str, dict]]:
        return [c for c in self.calls if c[0] not in READ_OPERATIONS]
