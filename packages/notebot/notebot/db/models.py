from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Enum, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from ..notes import Note, Visibility
from .base import Base

JSONType = JSON().with_variant(JSONB, "postgresql")


class NoteStatus(str, enum.Enum):
    pending = "pending"
    posted = "posted"
    failed = "failed"


class QueuedNote(Base):
    __tablename__ = "queued_notes"
    __table_args__ = (Index("ix_queued_notes_status_scheduled_at", "status", "scheduled_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    visibility: Mapped[Visibility] = mapped_column(
        Enum(Visibility, name="note_visibility", validate_strings=True), nullable=False
    )
    status: Mapped[NoteStatus] = mapped_column(
        Enum(NoteStatus, name="note_status", validate_strings=True),
        nullable=False,
        default=NoteStatus.pending,
        server_default=NoteStatus.pending.value,
    )
    scheduled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    attempted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    http_status: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    source: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def to_note(self) -> Note:
        return Note(text=self.text, visibility=self.visibility)
