from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from voice_memory.db.base import Base
from voice_memory.utils.time_utils import utc_now


class DialogueMessage(Base):
    """One event of a session's dialogue history."""

    __tablename__ = "dialogue_messages"
    __table_args__ = (
        UniqueConstraint("session_id", "seq", name="uq_dialogue_session_seq"),
        Index("ix_dialogue_session", "session_id"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    session_id: Mapped[str] = mapped_column(String, nullable=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    role: Mapped[str] = mapped_column(String, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
