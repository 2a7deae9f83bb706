from __future__ import annotations

from typing import Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from voice_memory.memory.types import InteractionEvent
from voice_memory.repos.dialogue_repo import DialogueRepo

MEMORY_ROLES = ("user", "assistant")


class DialogueHistoryProvider(Protocol):
    """Source of ordered dialogue events for a session."""

    async def get_history(self, session_id: str) -> Optional[list[InteractionEvent]]:
        """Return the events oldest first, or None for an unknown session."""


class SQLDialogueHistory:
    """Reads the ``dialogue_messages`` table and drops system rows."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def get_history(self, session_id: str) -> Optional[list[InteractionEvent]]:
        async with self._sessionmaker() as db:
            repo = DialogueRepo(db)
            rows = await repo.list_messages(session_id)
        if not rows:
            return None
        return [
            InteractionEvent(role=row.role, content=row.content)
            for row in rows
            if row.role in MEMORY_ROLES
        ]


class StaticDialogueHistory:
    """In-memory history keyed by session id, for embedding and tests."""

    def __init__(self, histories: Optional[dict[str, list[InteractionEvent]]] = None) -> None:
        self._histories: dict[str, list[InteractionEvent]] = dict(histories or {})

    def set_history(self, session_id: str, events: list[InteractionEvent]) -> None:
        self._histories[session_id] = list(events)

    async def get_history(self, session_id: str) -> Optional[list[InteractionEvent]]:
        events = self._histories.get(session_id)
        if events is None:
            return None
        return [event for event in events if event.role in MEMORY_ROLES]
