from __future__ import annotations

from typing import Optional

from pydantic import Field

from voice_memory.memory.types import MemoryRecord, MemorySnapshot, UpdateOutcome
from voice_memory.schemas.common import APIModel


class MemoryRecordOut(APIModel):
    """Memory record as exposed over HTTP; embeddings are omitted."""

    text: str
    topics: list[str] = Field(default_factory=list)
    created_at: int
    importance: Optional[float] = None

    @classmethod
    def from_record(cls, record: MemoryRecord) -> "MemoryRecordOut":
        return cls(
            text=record.text,
            topics=list(record.topics),
            created_at=record.created_at,
            importance=record.importance,
        )


class MemorySnapshotOut(APIModel):
    session_id: str
    flash_memory: list[MemoryRecordOut] = Field(default_factory=list)
    long_term_memory: list[MemoryRecordOut] = Field(default_factory=list)

    @classmethod
    def from_snapshot(cls, session_id: str, snapshot: MemorySnapshot) -> "MemorySnapshotOut":
        return cls(
            session_id=session_id,
            flash_memory=[MemoryRecordOut.from_record(item) for item in snapshot.flash_memory],
            long_term_memory=[
                MemoryRecordOut.from_record(item) for item in snapshot.long_term_memory
            ],
        )


class MemoryUpdateResponse(APIModel):
    """Decision and result counts of one update cycle."""

    session_id: str
    turn_count: int
    run_flash: bool
    run_long_term: bool
    new_flash_count: int
    new_long_term_count: int
    flash_memory_count: int
    long_term_memory_count: int
    saved: bool
    cancelled: bool

    @classmethod
    def from_outcome(cls, outcome: UpdateOutcome) -> "MemoryUpdateResponse":
        return cls(
            session_id=outcome.session_id,
            turn_count=outcome.decision.turn_count,
            run_flash=outcome.decision.run_flash,
            run_long_term=outcome.decision.run_long_term,
            new_flash_count=len(outcome.new_flash),
            new_long_term_count=len(outcome.new_long_term),
            flash_memory_count=len(outcome.snapshot.flash_memory),
            long_term_memory_count=len(outcome.snapshot.long_term_memory),
            saved=outcome.saved,
            cancelled=outcome.cancelled,
        )


class MemoryRetrieveRequest(APIModel):
    text: str = ""


class MemoryRetrieveResponse(APIModel):
    relevant_memories: list[str] = Field(default_factory=list)
