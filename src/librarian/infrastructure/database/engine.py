"""Database engine setup for SQLite with WAL mode.

SQLite is the persistence layer: WAL mode so readers never block the
writer, foreign keys enforced, and a busy timeout that bounds how long a
writer waits for the write lock before the store reports a timeout.
The DB is stored at {data_dir}/.librarian/{filename}.

SQLAlchemy Core (not ORM) is used: the engine maps rows to its own frozen
entities, so session management and identity maps add nothing.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from librarian.config.discovery import DATA_DIRNAME
from librarian.infrastructure.database.schema import metadata


def create_db_engine(
    db_path: Path,
    *,
    busy_timeout: float = 5.0,
    echo: bool = False,
) -> Engine:
    """Create a SQLite engine with WAL mode and foreign keys enabled.

    Connections may be used from worker threads; each checkout is owned by
    one thread at a time through the pool.
    """
    engine = create_engine(
        f"sqlite:///{db_path}",
        echo=echo,
        connect_args={"timeout": busy_timeout, "check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn: Any, _: Any) -> None:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def init_database(
    data_dir: Path,
    *,
    filename: str = "librarian.db",
    busy_timeout: float = 5.0,
    echo: bool = False,
) -> Engine:
    """Initialize the database at ``{data_dir}/.librarian/{filename}``.

    Creates the ``.librarian/`` directory and all tables from
    :data:`schema.metadata`. Idempotent: safe to call on an existing
    database.

    Returns the engine ready for use.
    """
    lib_dir = data_dir / DATA_DIRNAME
    lib_dir.mkdir(parents=True, exist_ok=True)

    engine = create_db_engine(lib_dir / filename, busy_timeout=busy_timeout, echo=echo)
    metadata.create_all(engine)
    return engine
