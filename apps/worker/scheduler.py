from __future__ import annotations

import argparse
import json
import os
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from apscheduler.schedulers.blocking import BlockingScheduler

from notebot import NotePoster
from notebot.db import get_database_url, init_db

from .posting_jobs import _build_poster, run_posting_jobs


def _require_database_url() -> None:
    get_database_url()


def _posting_poll_seconds() -> int:
    try:
        return max(1, int(os.getenv("POSTING_POLL_SECONDS", "60")))
    except ValueError:
        return 60


def run_posting_once(base_datetime: datetime | None = None, poster: NotePoster | None = None) -> list[dict[str, Any]]:
    _require_database_url()
    init_db()
    run_dt = base_datetime or datetime.now()
    results = run_posting_jobs(base_datetime=run_dt, poster=poster)
    for result in results:
        payload = {"event": "posting_job", **result}
        print(json.dumps(payload, ensure_ascii=True))
    return results


def run_scheduler() -> None:
    _require_database_url()
    tz_name = os.getenv("WORKER_TZ", "UTC")
    timezone = ZoneInfo(tz_name)
    poll_seconds = _posting_poll_seconds()
    # One poster for the life of the process so every pass draws from the same bucket.
    poster = _build_poster()

    scheduler = BlockingScheduler(timezone=timezone)
    scheduler.add_job(
        lambda: run_posting_once(base_datetime=datetime.now(timezone), poster=poster),
        trigger="interval",
        seconds=poll_seconds,
        id="posting-jobs",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    next_run = getattr(scheduler.get_job("posting-jobs"), "next_run_time", None)
    print(
        json.dumps(
            {
                "event": "scheduler_start",
                "next_run_time": next_run.isoformat() if next_run else None,
                "timezone": tz_name,
                "posting_poll_seconds": poll_seconds,
                "poster": type(poster).__name__,
            },
            ensure_ascii=True,
        )
    )
    scheduler.start()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Drain the note outbox on a schedule")
    parser.add_argument("--once", action="store_true", help="Post due notes once and exit")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    if args.once:
        run_posting_once(base_datetime=datetime.now())
        return
    run_scheduler()


if __name__ == "__main__":
    main()
