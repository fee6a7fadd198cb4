"""
session_state.py — Signed-in / signed-out tracking for the Hive engine.

SessionState wraps a session provider (Supabase auth in production,
LocalSessionProvider offline and in tests) and adds the only client-side
credential rule: email and password must be non-empty.

Change notifications are delivered through callbacks registered with
on_session_change(); each registration returns a Subscription that must be
released with unsubscribe() when the listener goes away.
"""

from __future__ import annotations

import uuid
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from loguru import logger

from hive_models import AuthError, Principal

SessionCallback = Callable[[Optional[Principal]], None]


class Subscription:
    """Handle for one change-notification listener."""

    def __init__(self, release: Callable[[], None]) -> None:
        self._release = release
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._release()


class SessionProvider(Protocol):
    async def get_session(self) -> Optional[Principal]: ...
    async def sign_in(self, email: str, password: str) -> Principal: ...
    async def sign_up(self, email: str, password: str) -> Optional[Principal]: ...
    async def sign_out(self) -> None: ...
    def on_change(self, callback: SessionCallback) -> Subscription: ...


class LocalSessionProvider:
    """In-process auth: accounts live in a dict, sessions last until sign-out."""

    def __init__(self) -> None:
        self._accounts: Dict[str, Tuple[str, str]] = {}   # email → (password, user_id)
        self._current: Optional[Principal] = None
        self._listeners: List[SessionCallback] = []

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _emit(self) -> None:
        for callback in list(self._listeners):
            callback(self._current)

    async def get_session(self) -> Optional[Principal]:
        return self._current

    async def sign_up(self, email: str, password: str) -> Optional[Principal]:
        if email in self._accounts:
            raise AuthError("User already registered")
        self._accounts[email] = (password, str(uuid.uuid4()))
        return await self.sign_in(email, password)

    async def sign_in(self, email: str, password: str) -> Principal:
        account = self._accounts.get(email)
        if account is None or account[0] != password:
            raise AuthError("Invalid login credentials")
        self._current = Principal(user_id=account[1], email=email)
        self._emit()
        return self._current

    async def sign_out(self) -> None:
        if self._current is None:
            return
        self._current = None
        self._emit()

    def on_change(self, callback: SessionCallback) -> Subscription:
        self._listeners.append(callback)
        return Subscription(lambda: self._listeners.remove(callback))


class SessionState:
    """Caller-facing session API with credential checks."""

    def __init__(self, provider: SessionProvider) -> None:
        self._provider = provider

    async def get_current_session(self) -> Optional[Principal]:
        return await self._provider.get_session()

    def on_session_change(self, callback: SessionCallback) -> Subscription:
        return self._provider.on_change(callback)

    @staticmethod
    def _require(email: str, password: str) -> None:
        if not (email or "").strip() or not (password or ""):
            raise AuthError("Email and password are required")

    async def sign_in(self, email: str, password: str) -> Principal:
        self._require(email, password)
        principal = await self._provider.sign_in(email.strip(), password)
        logger.info(f"Signed in as {principal.email or principal.user_id}")
        return principal

    async def sign_up(self, email: str, password: str) -> Optional[Principal]:
        self._require(email, password)
        principal = await self._provider.sign_up(email.strip(), password)
        logger.info(f"Signed up {email.strip()}")
        return principal

    async def sign_out(self) -> None:
        await self._provider.sign_out()
        logger.info("Signed out")
