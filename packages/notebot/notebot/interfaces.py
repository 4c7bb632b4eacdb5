from __future__ import annotations

import threading
from typing import Protocol

from .notes import Note


class NotePoster(Protocol):
    def post(
        self,
        note: Note,
        *,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
    ) -> None: ...
