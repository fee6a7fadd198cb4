"""
reasoning_log.py — Append-only access to the `reasoning_logs` collection.
"""

from __future__ import annotations

from typing import List

from hive_models import ReasoningLogEntry
from record_store import RecordStore

DEFAULT_RECENT_LIMIT = 5


class ReasoningLogBook:

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    async def append(self, agent_id: str, content: str) -> ReasoningLogEntry:
        """Insert one entry; raises WriteError if the store rejects it."""
        row = await self._store.insert_reasoning_log({"content": content, "agent_id": agent_id})
        return ReasoningLogEntry.from_row(row)

    async def recent(self, limit: int = DEFAULT_RECENT_LIMIT) -> List[ReasoningLogEntry]:
        """Newest first."""
        rows = await self._store.select_reasoning_logs(limit)
        entries = [ReasoningLogEntry.from_row(r) for r in rows]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[:limit]
