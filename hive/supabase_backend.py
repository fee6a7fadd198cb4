"""
supabase_backend.py — Supabase adapters for the record store and auth.

Both adapters share one async Supabase client:

    client = await connect_supabase(url, key)
    store = SupabaseRecordStore(client)
    sessions = SupabaseSessionProvider(client)

Library errors (postgrest APIError, auth API errors, transport errors) are
translated into WriteError / StoreReadError / AuthError at this boundary.
"""

from __future__ import annotations

from typing import Any, List, Optional

from loguru import logger
from supabase import AsyncClient, acreate_client

from hive_models import AuthError, Principal, StoreReadError, WriteError
from session_state import SessionCallback, Subscription


async def connect_supabase(url: str, key: str) -> AsyncClient:
    client = await acreate_client(url, key)
    logger.info(f"Connected to Supabase at {url}")
    return client


def _principal_from_user(user: Any) -> Optional[Principal]:
    if user is None:
        return None
    return Principal(user_id=str(user.id), email=getattr(user, "email", "") or "")


# ─── Record Store ─────────────────────────────────────────────────────────────

class SupabaseRecordStore:
    """Table access over PostgREST; see record_store.RecordStore."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    async def select_agents(self, owner_id: Optional[str] = None) -> List[dict]:
        try:
            query = self._client.table("agents").select("*")
            if owner_id is not None:
                query = query.eq("user_id", owner_id)
            result = await query.execute()
        except Exception as exc:
            raise StoreReadError(f"agents select failed: {exc}") from exc
        return list(result.data or [])

    async def insert_agent(self, row: dict) -> dict:
        try:
            result = await self._client.table("agents").insert(row).execute()
        except Exception as exc:
            raise WriteError(f"agents insert failed: {exc}") from exc
        if not result.data:
            raise WriteError("agents insert returned no row")
        return result.data[0]

    async def update_agent(self, agent_id: str, fields: dict) -> None:
        try:
            await self._client.table("agents").update(fields).eq("id", agent_id).execute()
        except Exception as exc:
            raise WriteError(f"agents update failed for {agent_id}: {exc}") from exc

    async def insert_reasoning_log(self, row: dict) -> dict:
        try:
            result = await self._client.table("reasoning_logs").insert(row).execute()
        except Exception as exc:
            raise WriteError(f"reasoning_logs insert failed: {exc}") from exc
        return result.data[0] if result.data else dict(row)

    async def select_reasoning_logs(self, limit: int) -> List[dict]:
        try:
            result = await (
                self._client.table("reasoning_logs")
                .select("*")
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as exc:
            raise StoreReadError(f"reasoning_logs select failed: {exc}") from exc
        return list(result.data or [])

    async def upsert_api_key(self, row: dict) -> None:
        try:
            await (
                self._client.table("user_api_keys")
                .upsert(row, on_conflict="user_id,provider")
                .execute()
            )
        except Exception as exc:
            raise WriteError(f"user_api_keys upsert failed: {exc}") from exc


# ─── Session Provider ─────────────────────────────────────────────────────────

class SupabaseSessionProvider:
    """Supabase auth (email + password)."""

    def __init__(self, client: AsyncClient) -> None:
        self._client = client

    async def get_session(self) -> Optional[Principal]:
        session = await self._client.auth.get_session()
        return _principal_from_user(session.user) if session else None

    async def sign_in(self, email: str, password: str) -> Principal:
        try:
            res = await self._client.auth.sign_in_with_password({"email": email, "password": password})
        except Exception as exc:
            raise AuthError(str(exc)) from exc
        principal = _principal_from_user(res.user)
        if principal is None:
            raise AuthError("Sign-in returned no user")
        return principal

    async def sign_up(self, email: str, password: str) -> Optional[Principal]:
        try:
            res = await self._client.auth.sign_up({"email": email, "password": password})
        except Exception as exc:
            raise AuthError(str(exc)) from exc
        # No session until the address is confirmed, when confirmation is on
        return _principal_from_user(res.user) if res.session else None

    async def sign_out(self) -> None:
        await self._client.auth.sign_out()

    def on_change(self, callback: SessionCallback) -> Subscription:
        def _relay(_event: Any, session: Any) -> None:
            callback(_principal_from_user(session.user) if session else None)

        handle = self._client.auth.on_auth_state_change(_relay)
        return Subscription(handle.unsubscribe)
