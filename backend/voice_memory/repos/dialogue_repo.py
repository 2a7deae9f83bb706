from __future__ import annotations

import uuid
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from voice_memory.db.models import DialogueMessage
from voice_memory.utils.time_utils import utc_now


class DialogueRepo:
    """Repository for per-session dialogue history."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def _next_seq(self, session_id: str) -> int:
        result = await self._db.execute(
            select(func.max(DialogueMessage.seq)).where(DialogueMessage.session_id == session_id)
        )
        max_seq = result.scalar_one() or 0
        return int(max_seq) + 1

    async def add_message(
        self,
        session_id: str,
        role: str,
        content: str,
        message_id: Optional[str] = None,
    ) -> DialogueMessage:
        """Append one event with the next sequence number for the session."""

        message = DialogueMessage(
            id=message_id or uuid.uuid4().hex,
            session_id=session_id,
            seq=await self._next_seq(session_id),
            role=role,
            content=content,
            created_at=utc_now(),
        )
        self._db.add(message)
        await self._db.flush()
        return message

    async def list_messages(self, session_id: str) -> List[DialogueMessage]:
        """Return the session's events in ascending order."""

        stmt = (
            select(DialogueMessage)
            .where(DialogueMessage.session_id == session_id)
            .order_by(DialogueMessage.seq.asc())
        )
        return list((await self._db.execute(stmt)).scalars())

    async def delete_session(self, session_id: str) -> int:
        """Delete every event of the session and return the number removed."""

        result = await self._db.execute(
            delete(DialogueMessage).where(DialogueMessage.session_id == session_id)
        )
        return int(result.rowcount or 0)
