from __future__ import annotations

import argparse
import json
from datetime import datetime

from notebot import Note, Visibility
from notebot.db import init_db, open_session

from .note_submitter import APIError, NoteSubmitError, NoteSubmitter
from .posting_jobs import _build_poster, enqueue_note


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Post a single note, or queue it for the scheduler")
    parser.add_argument("--text", type=str, required=True)
    parser.add_argument(
        "--visibility",
        type=str,
        default=Visibility.public.value,
        choices=[item.value for item in Visibility],
    )
    parser.add_argument("--timeout", type=float, required=False, help="Overall budget in seconds")
    parser.add_argument("--enqueue", action="store_true", help="Store the note in the outbox instead of posting")
    parser.add_argument("--scheduled-at", type=str, required=False, help="ISO datetime, only with --enqueue")
    return parser.parse_args(argv)


def _enqueue(note: Note, scheduled_at: str | None) -> dict[str, object]:
    init_db()
    with open_session() as session:
        queued = enqueue_note(
            session,
            note,
            scheduled_at=datetime.fromisoformat(scheduled_at) if scheduled_at else None,
            source="cli",
        )
        session.commit()
        return {"event": "note_enqueued", "note_id": queued.id, "visibility": note.visibility.value}


def _print_failure(exc: NoteSubmitError) -> None:
    payload: dict[str, object] = {
        "event": "note_post_failed",
        "error": {"type": type(exc).__name__, "message": str(exc)},
    }
    if isinstance(exc, APIError):
        payload["http_status"] = exc.status_code
    print(json.dumps(payload, ensure_ascii=True))


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    note = Note(text=args.text, visibility=Visibility.parse(args.visibility))

    if args.enqueue:
        print(json.dumps(_enqueue(note, args.scheduled_at), ensure_ascii=True))
        return 0

    try:
        poster = _build_poster()
    except NoteSubmitError as exc:
        _print_failure(exc)
        return 1

    try:
        poster.post(note, timeout=args.timeout)
    except NoteSubmitError as exc:
        _print_failure(exc)
        return 1
    finally:
        if isinstance(poster, NoteSubmitter):
            poster.close()

    print(
        json.dumps(
            {
                "event": "note_posted",
                "poster": type(poster).__name__,
                "visibility": note.visibility.value,
                "chars": len(note.text),
            },
            ensure_ascii=True,
        )
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
