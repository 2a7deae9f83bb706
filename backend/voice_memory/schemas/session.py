from __future__ import annotations

from typing import Literal

from pydantic import Field

from voice_memory.schemas.common import APIModel


class SessionOpenResponse(APIModel):
    """Memory counts of the session right after its context is opened."""

    session_id: str
    flash_memory_count: int
    long_term_memory_count: int


class MessageCreateRequest(APIModel):
    """Payload for appending one dialogue event."""

    role: Literal["user", "assistant", "system"]
    content: str = Field(min_length=1)


class MessageOut(APIModel):
    """Stored dialogue event."""

    id: str
    session_id: str
    seq: int
    role: str
    content: str


class SessionCloseResponse(APIModel):
    """Result of tearing down a session."""

    closed: bool
    purged: bool
    deleted_messages: int = 0
