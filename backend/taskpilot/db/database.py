"""Database setup — SQLModel engine, table creation, per-request sessions.

Tables: Category, Project, Task (tracker) and Conversation, Message (chat).
File-backed SQLite runs in WAL mode so API reads never queue behind the
single writer. There is no migration layer; tables come from SQLModel
metadata at startup.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from taskpilot.config import settings

_SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",  # safe with WAL
    "PRAGMA busy_timeout=5000",   # ms to wait on a locked database
)


def sqlite_file(url: str) -> Path | None:
    """Path of a file-backed SQLite URL; None for in-memory or other backends."""
    if not url.startswith("sqlite:///"):
        return None
    path = url[len("sqlite:///"):]
    if not path or ":memory:" in path:
        return None
    return Path(path)


def make_engine(url: str) -> Engine:
    """Engine for ``url``, creating the SQLite data directory if needed."""
    db_file = sqlite_file(url)
    if db_file is not None:
        db_file.parent.mkdir(parents=True, exist_ok=True)
    # FastAPI runs sync endpoints in a threadpool
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=False, connect_args=connect_args)


@event.listens_for(Engine, "connect")
def _apply_sqlite_pragmas(dbapi_connection, connection_record):
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return
    cursor = dbapi_connection.cursor()
    try:
        for pragma in _SQLITE_PRAGMAS:
            cursor.execute(pragma)
    finally:
        cursor.close()


engine = make_engine(settings.database_url)


def create_db_and_tables(bind: Engine | None = None) -> None:
    """Create every tracker and chat table that does not exist yet."""
    from taskpilot.models import messages, tracker  # noqa: F401  (register tables)

    SQLModel.metadata.create_all(bind or engine)


def get_session():
    """FastAPI dependency: one session per request."""
    with Session(engine) as session:
        yield session
