from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from voice_memory.api.session import ensure_session_id
from voice_memory.schemas.memory import (
    MemoryRetrieveRequest,
    MemoryRetrieveResponse,
    MemorySnapshotOut,
    MemoryUpdateResponse,
)
from voice_memory.services.memory_service import MemoryService, get_memory_service
from voice_memory.services.session_registry import MissingSessionContextError

router = APIRouter(prefix="/api/memory", tags=["memory"])


@router.post("/{session_id}/update", response_model=MemoryUpdateResponse)
async def update_memory(
    session_id: str,
    memory_service: MemoryService = Depends(get_memory_service),
) -> MemoryUpdateResponse:
    """Run one memory update cycle for the session's current turn."""

    ensure_session_id(session_id)
    try:
        outcome = await memory_service.update_session(session_id)
    except MissingSessionContextError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.reason) from exc
    return MemoryUpdateResponse.from_outcome(outcome)


@router.post("/{session_id}/retrieve", response_model=MemoryRetrieveResponse)
async def retrieve_memory(
    session_id: str,
    payload: MemoryRetrieveRequest,
    memory_service: MemoryService = Depends(get_memory_service),
) -> MemoryRetrieveResponse:
    """Return stored memories relevant to the user utterance."""

    ensure_session_id(session_id)
    memories = await memory_service.retrieve_context(session_id, payload.text)
    return MemoryRetrieveResponse(relevant_memories=memories)


@router.get("/{session_id}", response_model=MemorySnapshotOut)
async def get_memory(
    session_id: str,
    memory_service: MemoryService = Depends(get_memory_service),
) -> MemorySnapshotOut:
    """Return the session snapshot without embeddings."""

    ensure_session_id(session_id)
    snapshot = await memory_service.get_snapshot(session_id)
    return MemorySnapshotOut.from_snapshot(session_id, snapshot)
