from .base import Base
from .models import NoteStatus, QueuedNote
from .session import get_database_url, get_engine, init_db, open_session, reset_engine

__all__ = [
    "Base",
    "NoteStatus",
    "QueuedNote",
    "get_database_url",
    "get_engine",
    "init_db",
    "open_session",
    "reset_engine",
]
