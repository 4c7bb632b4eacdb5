from __future__ import annotations

import json
import os
import threading
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from notebot import Note, NotePoster
from notebot.db import NoteStatus, QueuedNote, open_session

from .note_submitter import APIError, NoteSubmitter


class FakePoster:
    def __init__(self) -> None:
        self.posted: list[Note] = []

    def post(
        self,
        note: Note,
        *,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> None:
        del cancel_event, timeout
        self.posted.append(note)


def _build_poster() -> NotePoster:
    if os.getenv("USE_REAL_MISSKEY") == "1":
        return NoteSubmitter.from_env()
    return FakePoster()


def _posting_batch_size() -> int:
    raw_value = os.getenv("POSTING_BATCH_SIZE", "10")
    try:
        return max(1, int(raw_value))
    except ValueError:
        return 10


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def enqueue_note(
    session: Session,
    note: Note,
    *,
    scheduled_at: datetime | None = None,
    source: str | None = None,
) -> QueuedNote:
    queued = QueuedNote(
        text=note.text,
        visibility=note.visibility,
        status=NoteStatus.pending,
        scheduled_at=_as_utc(scheduled_at) if scheduled_at else None,
        source=source,
    )
    session.add(queued)
    session.flush()
    return queued


def _due_notes_claim_query(current: datetime, *, batch_size: int, for_update_skip_locked: bool) -> Select[tuple[QueuedNote]]:
    stmt = (
        select(QueuedNote)
        .where(
            QueuedNote.status == NoteStatus.pending,
            (QueuedNote.scheduled_at.is_(None)) | (QueuedNote.scheduled_at <= current),
        )
        .order_by(QueuedNote.id.asc())
        .limit(batch_size)
    )
    if for_update_skip_locked:
        stmt = stmt.with_for_update(skip_locked=True)
    return stmt


def _claim_due_notes(session: Session, current: datetime, *, batch_size: int) -> list[QueuedNote]:
    use_skip_locked = session.get_bind().dialect.name == "postgresql"
    stmt = _due_notes_claim_query(current, batch_size=batch_size, for_update_skip_locked=use_skip_locked)
    return list(session.scalars(stmt).all())


def _log_posting_error(note_id: int, error_payload: dict[str, Any]) -> None:
    print(json.dumps({"event": "posting_job_error", "note_id": note_id, "error": error_payload}, ensure_ascii=True))


def run_posting_jobs(base_datetime: datetime, poster: NotePoster | None = None) -> list[dict[str, Any]]:
    current = _as_utc(base_datetime)
    results: list[dict[str, Any]] = []

    with open_session() as session:
        due_notes = _claim_due_notes(session, current, batch_size=_posting_batch_size())
        if not due_notes:
            return results

        owns_poster = poster is None
        posting_poster = poster or _build_poster()
        try:
            for queued in due_notes:
                queued.attempted_at = current
                try:
                    posting_poster.post(queued.to_note())
                except Exception as exc:  # noqa: BLE001
                    payload = {"type": type(exc).__name__, "message": str(exc)}
                    queued.status = NoteStatus.failed
                    queued.error = payload
                    if isinstance(exc, APIError):
                        queued.http_status = exc.status_code
                    _log_posting_error(queued.id, payload)
                    results.append({"note_id": queued.id, "status": "failed", "error": payload})
                else:
                    queued.status = NoteStatus.posted
                    queued.posted_at = current
                    results.append({"note_id": queued.id, "status": "posted"})
                session.flush()
        finally:
            close = getattr(posting_poster, "close", None)
            if owns_poster and callable(close):
                close()

        session.commit()

    return results
