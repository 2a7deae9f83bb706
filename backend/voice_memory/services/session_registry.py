from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from voice_memory.memory.snapshot_store import SnapshotStore
from voice_memory.memory.types import MemorySnapshot

logger = logging.getLogger(__name__)


class MissingSessionContextError(LookupError):
    """Raised when an update is requested for a session with no dialogue state."""

    def __init__(self, session_id: str, reason: str = "session context is not open") -> None:
        super().__init__(f"{reason}: {session_id!r}")
        self.session_id = session_id
        self.reason = reason


@dataclass
class SessionContext:
    """Per-session memory state and the lock serializing its update cycles."""

    session_id: str
    snapshot: MemorySnapshot
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    pending_task: Optional[asyncio.Task] = None
    closed: bool = False


class SessionRegistry:
    """Own one ``SessionContext`` per open session."""

    def __init__(self, store: SnapshotStore) -> None:
        self._store = store
        self._contexts: dict[str, SessionContext] = {}
        self._contexts_lock = asyncio.Lock()

    @property
    def store(self) -> SnapshotStore:
        return self._store

    async def open(self, session_id: str) -> SessionContext:
        """Return the open context, loading the persisted snapshot on first use."""

        if not session_id:
            raise MissingSessionContextError(session_id, "session id is empty")
        async with self._contexts_lock:
            existing = self._contexts.get(session_id)
            if existing is not None and not existing.closed:
                return existing
            snapshot = await asyncio.to_thread(self._store.load_or_create, session_id)
            context = SessionContext(session_id=session_id, snapshot=snapshot)
            self._contexts[session_id] = context
            logger.info(
                "Opened memory context for session %s (flash=%s long_term=%s)",
                session_id,
                len(snapshot.flash_memory),
                len(snapshot.long_term_memory),
            )
            return context

    def get(self, session_id: str) -> SessionContext:
        context = self.find(session_id)
        if context is None:
            raise MissingSessionContextError(session_id)
        return context

    def find(self, session_id: str) -> Optional[SessionContext]:
        context = self._contexts.get(session_id)
        if context is None or context.closed:
            return None
        return context

    def is_open(self, session_id: str) -> bool:
        return self.find(session_id) is not None

    async def close(self, session_id: str) -> bool:
        """Mark the context closed and cancel its in-flight update.

        Returns False when no context was open for the session.
        """

        async with self._contexts_lock:
            context = self._contexts.pop(session_id, None)
        if context is None:
            return False
        await self._cancel(context)
        logger.info("Closed memory context for session %s", session_id)
        return True

    async def shutdown(self) -> None:
        """Close every context; used on application shutdown."""

        async with self._contexts_lock:
            contexts = list(self._contexts.values())
            self._contexts.clear()
        await asyncio.gather(
            *(self._cancel(context) for context in contexts), return_exceptions=True
        )

    @staticmethod
    async def _cancel(context: SessionContext) -> None:
        context.closed = True
        task = context.pending_task
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
