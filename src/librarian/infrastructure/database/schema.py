"""SQLAlchemy Core table definitions for the librarian database.

Timestamps are stored as UTC. Stock and loan counters carry CHECK
constraints so a write that would drive them negative fails at the store
even if a guard in the service layer were bypassed.
"""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
)

metadata = MetaData()

books = Table(
    "books",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("code", Text, nullable=False, unique=True),
    Column("title", Text, nullable=False),
    Column("author", Text, nullable=False),
    Column("stock", Integer, nullable=False, default=0, server_default="0"),
    Column("created_at", DateTime, nullable=False),
    CheckConstraint("stock >= 0", name="ck_books_stock_non_negative"),
)

members = Table(
    "members",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("code", Text, nullable=False, unique=True),
    Column("name", Text, nullable=False),
    Column("borrowed_books_count", Integer, nullable=False, default=0, server_default="0"),
    Column("is_penalized", Boolean, nullable=False, default=False, server_default="0"),
    Column("penalty_expiration_date", DateTime),
    Column("created_at", DateTime, nullable=False),
    CheckConstraint("borrowed_books_count >= 0", name="ck_members_count_non_negative"),
)

loans = Table(
    "loans",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("book_id", Integer, ForeignKey("books.id"), nullable=False),
    Column("member_id", Integer, ForeignKey("members.id"), nullable=False),
    Column("created_at", DateTime, nullable=False),
    Column("returned_at", DateTime),  # NULL while outstanding
)

# ---------------------------------------------------------------------------
# Indexes for frequently filtered columns
# ---------------------------------------------------------------------------

Index("ix_books_stock", books.c.stock)
Index("ix_members_penalty", members.c.is_penalized, members.c.penalty_expiration_date)
Index("ix_loans_pair_open", loans.c.book_id, loans.c.member_id, loans.c.returned_at)
