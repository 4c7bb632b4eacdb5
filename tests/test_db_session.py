from __future__ import annotations

import pytest
from sqlalchemy import select

from notebot import Note, Visibility
from notebot.db import NoteStatus, QueuedNote, get_engine, init_db, open_session, reset_engine

from apps.worker import posting_jobs


@pytest.fixture()
def file_database(monkeypatch, tmp_path):
    database_path = tmp_path / "outbox.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{database_path}")
    reset_engine()
    yield database_path
    reset_engine()


def test_engine_follows_database_url_after_reset(file_database) -> None:
    engine = get_engine()

    assert engine.url.database == str(file_database)
    assert get_engine() is engine


def test_outbox_rows_survive_a_fresh_engine(file_database) -> None:
    init_db()
    with open_session() as session:
        posting_jobs.enqueue_note(session, Note(text="persisted", visibility=Visibility.home), source="cli")
        session.commit()

    reset_engine()

    with open_session() as session:
        queued = session.scalars(select(QueuedNote)).one()

    assert file_database.exists()
    assert queued.text == "persisted"
    assert queued.visibility == Visibility.home
    assert queued.status == NoteStatus.pending
    assert queued.source == "cli"


def test_reset_engine_without_cached_engine_is_a_noop(monkeypatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)

    reset_engine()
    reset_engine()

    with pytest.raises(RuntimeError, match="DATABASE_URL is required"):
        get_engine()
