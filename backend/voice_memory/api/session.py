from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from voice_memory.core.security import is_safe_session_id, sanitize_text
from voice_memory.db.session import get_session
from voice_memory.repos.dialogue_repo import DialogueRepo
from voice_memory.schemas.session import (
    MessageCreateRequest,
    MessageOut,
    SessionCloseResponse,
    SessionOpenResponse,
)
from voice_memory.services.memory_service import MemoryService, get_memory_service

router = APIRouter(prefix="/api/session", tags=["session"])

MAX_MESSAGE_LEN = 8000


@router.post("/{session_id}/open", response_model=SessionOpenResponse)
async def open_session(
    session_id: str,
    memory_service: MemoryService = Depends(get_memory_service),
) -> SessionOpenResponse:
    """Register the session's memory context, loading any persisted snapshot."""

    ensure_session_id(session_id)
    snapshot = await memory_service.open_session(session_id)
    return SessionOpenResponse(
        session_id=session_id,
        flash_memory_count=len(snapshot.flash_memory),
        long_term_memory_count=len(snapshot.long_term_memory),
    )


@router.post("/{session_id}/messages", response_model=MessageOut)
async def append_message(
    session_id: str,
    payload: MessageCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> MessageOut:
    """Append one dialogue event to the session history."""

    ensure_session_id(session_id)
    content = sanitize_text(payload.content, MAX_MESSAGE_LEN)
    if not content:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Message content is empty"
        )
    repo = DialogueRepo(db)
    async with db.begin():
        message = await repo.add_message(session_id, payload.role, content)
    return MessageOut.model_validate(message)


@router.delete("/{session_id}", response_model=SessionCloseResponse)
async def close_session(
    session_id: str,
    purge: bool = Query(default=False),
    memory_service: MemoryService = Depends(get_memory_service),
    db: AsyncSession = Depends(get_session),
) -> SessionCloseResponse:
    """Tear down the session; ``purge`` also deletes history and stored memory."""

    ensure_session_id(session_id)
    closed = await memory_service.close_session(session_id, purge=purge)
    deleted = 0
    if purge:
        repo = DialogueRepo(db)
        async with db.begin():
            deleted = await repo.delete_session(session_id)
    return SessionCloseResponse(closed=closed, purged=purge, deleted_messages=deleted)


def ensure_session_id(session_id: str) -> None:
    if not is_safe_session_id(session_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid session id"
        )
