from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Literal, Mapping, Optional, Sequence

Role = Literal["user", "assistant", "system"]

SUMMARY_TOPIC = "conversation_summary"


def now_ms() -> int:
    """Return the current wall-clock time in epoch milliseconds."""

    return int(time.time() * 1000)


@dataclass(frozen=True)
class InteractionEvent:
    """One dialogue event as seen by the memory subsystem."""

    role: Role
    content: str


@dataclass(frozen=True)
class MemoryRecord:
    """An embedded memory item. Replaced via merge, never edited in place."""

    text: str
    embedding: tuple[float, ...]
    topics: tuple[str, ...] = ()
    created_at: int = field(default_factory=now_ms)
    importance: Optional[float] = None

    @property
    def has_embedding(self) -> bool:
        return len(self.embedding) > 0


@dataclass(frozen=True)
class MemorySnapshot:
    """Full memory state of one session."""

    flash_memory: tuple[MemoryRecord, ...] = ()
    long_term_memory: tuple[MemoryRecord, ...] = ()

    @classmethod
    def empty(cls) -> "MemorySnapshot":
        return cls()

    def all_records(self) -> tuple[MemoryRecord, ...]:
        return self.flash_memory + self.long_term_memory

    def long_term_text(self) -> str:
        return "\n\n".join(record.text for record in self.long_term_memory)


@dataclass(frozen=True)
class UpdateDecision:
    """Which extractors should run for the current turn."""

    turn_count: int
    run_flash: bool
    run_long_term: bool

    @property
    def should_run(self) -> bool:
        return self.run_flash or self.run_long_term


@dataclass(frozen=True)
class MemoryUpdateRequest:
    """Input envelope shared by both extractors."""

    session_id: str
    events: tuple[InteractionEvent, ...]
    snapshot: MemorySnapshot


@dataclass(frozen=True)
class FlashExtractionResult:
    records: tuple[MemoryRecord, ...] = ()


@dataclass(frozen=True)
class LongTermExtractionResult:
    records: tuple[MemoryRecord, ...] = ()


@dataclass(frozen=True)
class UpdateOutcome:
    """Result of one update cycle for a session."""

    session_id: str
    decision: UpdateDecision
    snapshot: MemorySnapshot
    new_flash: tuple[MemoryRecord, ...] = ()
    new_long_term: tuple[MemoryRecord, ...] = ()
    saved: bool = False
    cancelled: bool = False


def record_to_dict(record: MemoryRecord) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "text": record.text,
        "embedding": list(record.embedding),
        "topics": list(record.topics),
        "createdAt": record.created_at,
    }
    if record.importance is not None:
        payload["importance"] = record.importance
    return payload


def record_from_dict(payload: Mapping[str, Any]) -> MemoryRecord | None:
    """Build a record from stored JSON; returns None for unusable rows."""

    text = payload.get("text")
    if not isinstance(text, str) or not text.strip():
        return None
    raw_embedding = payload.get("embedding")
    if not isinstance(raw_embedding, list):
        return None
    try:
        embedding = tuple(float(value) for value in raw_embedding)
    except (TypeError, ValueError):
        return None
    raw_topics = payload.get("topics")
    topics = tuple(str(item) for item in raw_topics) if isinstance(raw_topics, list) else ()
    created_at = payload.get("createdAt", payload.get("created_at"))
    if not isinstance(created_at, (int, float)) or isinstance(created_at, bool):
        created_at = 0
    importance = payload.get("importance")
    if not isinstance(importance, (int, float)) or isinstance(importance, bool):
        importance = None
    return MemoryRecord(
        text=text,
        embedding=embedding,
        topics=topics,
        created_at=int(created_at),
        importance=importance,
    )


def snapshot_to_dict(snapshot: MemorySnapshot) -> dict[str, Any]:
    return {
        "flashMemory": [record_to_dict(item) for item in snapshot.flash_memory],
        "longTermMemory": [record_to_dict(item) for item in snapshot.long_term_memory],
    }


def snapshot_from_dict(payload: Mapping[str, Any]) -> MemorySnapshot:
    """Rebuild a snapshot, tolerating missing lists and dropping bad rows."""

    return MemorySnapshot(
        flash_memory=_records_from_list(payload.get("flashMemory")),
        long_term_memory=_records_from_list(payload.get("longTermMemory")),
    )


def snapshot_to_storage_json(snapshot: MemorySnapshot) -> str:
    return json.dumps(snapshot_to_dict(snapshot), ensure_ascii=False, indent=2)


def describe_records(records: Iterable[MemoryRecord], preview: int = 5) -> str:
    """Render records for logs with embeddings shortened to a few values."""

    rows = []
    for record in records:
        payload = record_to_dict(record)
        vector = payload["embedding"]
        if len(vector) > preview:
            payload["embedding"] = vector[:preview] + [f"... ({len(vector) - preview} more)"]
        rows.append(payload)
    return json.dumps(rows, ensure_ascii=False, indent=2)


def render_dialogue(events: Sequence[InteractionEvent]) -> str:
    return "\n".join(f"{event.role}: {event.content}" for event in events)


def _records_from_list(value: Any) -> tuple[MemoryRecord, ...]:
    if not isinstance(value, list):
        return ()
    records = []
    for item in value:
        if not isinstance(item, Mapping):
            continue
        record = record_from_dict(item)
        if record is not None:
            records.append(record)
    return tuple(records)
