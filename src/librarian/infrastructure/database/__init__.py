"""SQLite database engine and schema via SQLAlchemy Core."""

from librarian.infrastructure.database.engine import create_db_engine, init_database
from librarian.infrastructure.database.schema import books, loans, members, metadata

__all__ = [
    "books",
    "create_db_engine",
    "init_database",
    "loans",
    "members",
    "metadata",
]
