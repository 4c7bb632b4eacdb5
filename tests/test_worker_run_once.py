from __future__ import annotations

import json

import httpx
from sqlalchemy import select

from notebot import Visibility
from notebot.db import QueuedNote

from apps.worker import run_once
from apps.worker.note_submitter import NoteSubmitter


def _last_event(capsys) -> dict[str, object]:
    return json.loads(capsys.readouterr().out.strip().splitlines()[-1])


def test_run_once_posts_with_fake_poster_by_default(monkeypatch, capsys) -> None:
    monkeypatch.delenv("USE_REAL_MISSKEY", raising=False)

    exit_code = run_once.main(["--text", "hello", "--visibility", "home"])

    assert exit_code == 0
    event = _last_event(capsys)
    assert event == {"event": "note_posted", "poster": "FakePoster", "visibility": "home", "chars": 5}


def test_run_once_reports_missing_configuration(monkeypatch, capsys) -> None:
    monkeypatch.setenv("USE_REAL_MISSKEY", "1")
    monkeypatch.delenv("MISSKEY_HOST", raising=False)

    exit_code = run_once.main(["--text", "hello"])

    assert exit_code == 1
    event = _last_event(capsys)
    assert event["event"] == "note_post_failed"
    assert "MISSKEY_HOST" in event["error"]["message"]


def test_run_once_reports_api_status(monkeypatch, capsys) -> None:
    sent: list[dict[str, object]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(json.loads(request.content))
        return httpx.Response(status_code=500)

    submitter = NoteSubmitter(
        host="misskey.example",
        auth_token="secret-token",
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    monkeypatch.setattr(run_once, "_build_poster", lambda: submitter)

    exit_code = run_once.main(["--text", "hello", "--timeout", "5"])

    assert exit_code == 1
    assert sent == [{"i": "secret-token", "text": "hello", "visibility": "public"}]
    event = _last_event(capsys)
    assert event["http_status"] == 500
    assert event["error"]["type"] == "APIError"
    assert "secret-token" not in json.dumps(event)


def test_run_once_enqueue_stores_note(monkeypatch, session_factory, capsys) -> None:
    monkeypatch.setattr(run_once, "open_session", session_factory)
    monkeypatch.setattr(run_once, "init_db", lambda: None)

    exit_code = run_once.main(
        ["--text", "later", "--visibility", "followers", "--enqueue", "--scheduled-at", "2026-05-01T09:00:00+00:00"]
    )

    assert exit_code == 0
    event = _last_event(capsys)
    assert event["event"] == "note_enqueued"

    with session_factory() as session:
        queued = session.scalar(select(QueuedNote).where(QueuedNote.id == event["note_id"]))

    assert queued is not None
    assert queued.text == "later"
    assert queued.visibility == Visibility.followers
    assert queued.source == "cli"
