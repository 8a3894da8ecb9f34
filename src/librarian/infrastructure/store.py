"""LibraryStore — repository for books, members, and loans.

The store is the single dependency injected into every service. It owns
the database engine and hands out :class:`StoreTransaction` handles:

- :meth:`LibraryStore.transaction` runs on ``engine.begin()``: commit when
  the block exits normally, rollback when it raises.
- :meth:`LibraryStore.snapshot` runs on ``engine.connect()`` for reads that
  do not need to commit anything.

Lending writes are *guarded*: each UPDATE repeats its precondition in the
WHERE clause and reports whether a row matched, so a precondition read
before the transaction is re-checked atomically at write time.

Driver exceptions never leave this module raw; they are translated into
the :mod:`librarian.infrastructure.errors` hierarchy.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import insert, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from librarian.domain.entities import Book, Loan, Member
from librarian.infrastructure.database.engine import init_database
from librarian.infrastructure.database.schema import books, loans, members
from librarian.infrastructure.errors import (
    StoreIntegrityError,
    StoreTimeoutError,
    StoreUnavailableError,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from sqlalchemy import Connection, Row
    from sqlalchemy.engine import Engine

    from librarian.config.settings import LibrarianSettings

logger = logging.getLogger(__name__)

_LOCK_MESSAGES = ("database is locked", "database table is locked", "busy")


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def _utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _book(row: Row[Any]) -> Book:
    return Book(
        id=row.id,
        code=row.code,
        title=row.title,
        author=row.author,
        stock=row.stock,
        created_at=_utc(row.created_at),
    )


def _member(row: Row[Any]) -> Member:
    return Member(
        id=row.id,
        code=row.code,
        name=row.name,
        borrowed_books_count=row.borrowed_books_count,
        is_penalized=bool(row.is_penalized),
        penalty_expiration_date=_utc(row.penalty_expiration_date),
        created_at=_utc(row.created_at),
    )


def _loan(row: Row[Any]) -> Loan:
    created_at = _utc(row.created_at)
    assert created_at is not None
    return Loan(
        id=row.id,
        book_id=row.book_id,
        member_id=row.member_id,
        created_at=created_at,
        returned_at=_utc(row.returned_at),
    )


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------


def _is_lock_timeout(exc: OperationalError) -> bool:
    message = str(exc.orig).lower()
    return any(fragment in message for fragment in _LOCK_MESSAGES)


@contextmanager
def _translate_errors() -> Iterator[None]:
    """Re-raise SQLAlchemy/driver errors as store errors."""
    try:
        yield
    except IntegrityError as exc:
        raise StoreIntegrityError(str(exc.orig)) from exc
    except OperationalError as exc:
        if _is_lock_timeout(exc):
            logger.warning("Store lock wait timed out: %s", exc.orig)
            raise StoreTimeoutError(str(exc.orig)) from exc
        logger.error("Store operation failed: %s", exc.orig)
        raise StoreUnavailableError(str(exc.orig)) from exc
    except DBAPIError as exc:
        logger.error("Store driver error: %s", exc.orig)
        raise StoreUnavailableError(str(exc.orig)) from exc


# ---------------------------------------------------------------------------
# StoreTransaction: yielded by transaction() and snapshot()
# ---------------------------------------------------------------------------


@dataclass
class StoreTransaction:
    """Active connection with lookups, inserts, and guarded lending writes."""

    conn: Connection

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def find_book(self, code: str) -> Book | None:
        row = self.conn.execute(select(books).where(books.c.code == code)).first()
        return _book(row) if row is not None else None

    def find_book_by_id(self, book_id: int) -> Book | None:
        row = self.conn.execute(select(books).where(books.c.id == book_id)).first()
        return _book(row) if row is not None else None

    def find_member(self, code: str) -> Member | None:
        row = self.conn.execute(select(members).where(members.c.code == code)).first()
        return _member(row) if row is not None else None

    def find_member_by_id(self, member_id: int) -> Member | None:
        row = self.conn.execute(select(members).where(members.c.id == member_id)).first()
        return _member(row) if row is not None else None

    def list_books(self, *, min_stock: int | None = None) -> list[Book]:
        stmt = select(books).order_by(books.c.id)
        if min_stock is not None:
            stmt = stmt.where(books.c.stock >= min_stock)
        return [_book(row) for row in self.conn.execute(stmt)]

    def list_members(self) -> list[Member]:
        stmt = select(members).order_by(members.c.id)
        return [_member(row) for row in self.conn.execute(stmt)]

    def find_active_loan(self, book_code: str, member_code: str) -> Loan | None:
        """Find the outstanding loan for a (book, member) pair.

        When several are outstanding, the earliest borrowed wins
        (ties broken by lowest id).
        """
        stmt = (
            select(loans)
            .join(books, loans.c.book_id == books.c.id)
            .join(members, loans.c.member_id == members.c.id)
            .where(
                books.c.code == book_code,
                members.c.code == member_code,
                loans.c.returned_at.is_(None),
            )
            .order_by(loans.c.created_at, loans.c.id)
            .limit(1)
        )
        row = self.conn.execute(stmt).first()
        return _loan(row) if row is not None else None

    # ------------------------------------------------------------------
    # Inserts and field updates
    # ------------------------------------------------------------------

    def insert_book(self, book: Book) -> Book:
        result = self.conn.execute(
            insert(books).values(**book.model_dump(exclude={"id"}))
        )
        return book.model_copy(update={"id": result.inserted_primary_key[0]})

    def insert_member(self, member: Member) -> Member:
        result = self.conn.execute(
            insert(members).values(**member.model_dump(exclude={"id"}))
        )
        return member.model_copy(update={"id": result.inserted_primary_key[0]})

    def insert_loan(self, loan: Loan) -> Loan:
        result = self.conn.execute(insert(loans).values(**loan.model_dump(exclude={"id"})))
        return loan.model_copy(update={"id": result.inserted_primary_key[0]})

    def update_book(self, book_id: int, **fields: Any) -> None:
        if fields:
            self.conn.execute(update(books).where(books.c.id == book_id).values(**fields))

    def update_member(self, member_id: int, **fields: Any) -> None:
        if fields:
            self.conn.execute(update(members).where(members.c.id == member_id).values(**fields))

    # ------------------------------------------------------------------
    # Guarded lending writes: True when the guard held
    # ------------------------------------------------------------------

    def take_copy(self, book_id: int) -> bool:
        """Decrement stock only while it is still positive."""
        result = self.conn.execute(
            update(books)
            .where(books.c.id == book_id, books.c.stock > 0)
            .values(stock=books.c.stock - 1)
        )
        return result.rowcount == 1

    def return_copy(self, book_id: int) -> bool:
        result = self.conn.execute(
            update(books).where(books.c.id == book_id).values(stock=books.c.stock + 1)
        )
        return result.rowcount == 1

    def open_member_loan(self, member_id: int, *, max_loans: int) -> bool:
        """Increment the loan counter only for an unpenalized member under the cap."""
        result = self.conn.execute(
            update(members)
            .where(
                members.c.id == member_id,
                members.c.is_penalized.is_(False),
                members.c.borrowed_books_count < max_loans,
            )
            .values(borrowed_books_count=members.c.borrowed_books_count + 1)
        )
        return result.rowcount == 1

    def settle_member_return(self, member_id: int, *, penalty_until: datetime | None) -> bool:
        """Decrement the loan counter and overwrite the penalty state."""
        result = self.conn.execute(
            update(members)
            .where(members.c.id == member_id, members.c.borrowed_books_count > 0)
            .values(
                borrowed_books_count=members.c.borrowed_books_count - 1,
                is_penalized=penalty_until is not None,
                penalty_expiration_date=penalty_until,
            )
        )
        return result.rowcount == 1

    def close_loan(self, loan_id: int, *, returned_at: datetime) -> bool:
        """Stamp ``returned_at`` only if the loan is still outstanding."""
        result = self.conn.execute(
            update(loans)
            .where(loans.c.id == loan_id, loans.c.returned_at.is_(None))
            .values(returned_at=returned_at)
        )
        return result.rowcount == 1

    def lapse_penalties(self, now: datetime) -> int:
        """Clear every penalty whose expiration is at or before *now*.

        Returns the number of members lapsed.
        """
        stmt = update(members).where(
            members.c.is_penalized.is_(True),
            members.c.penalty_expiration_date <= now,
        )
        result = self.conn.execute(stmt.values(is_penalized=False, penalty_expiration_date=None))
        return int(result.rowcount)


# ---------------------------------------------------------------------------
# LibraryStore
# ---------------------------------------------------------------------------


class LibraryStore:
    """Repository encapsulating database access for the lending engine.

    Constructed once at CLI startup from :class:`LibrarianSettings`.
    Services receive the store via their :class:`BaseService` constructor.
    """

    def __init__(self, settings: LibrarianSettings) -> None:
        self._settings = settings
        with _translate_errors():
            self._engine: Engine = init_database(
                settings.data_dir,
                filename=settings.database.filename,
                busy_timeout=settings.database.busy_timeout_seconds,
                echo=settings.database.echo,
            )

    @property
    def data_dir(self) -> Path:
        return self._settings.data_dir

    @property
    def engine(self) -> Engine:
        """The underlying SQLAlchemy engine (for direct access when needed)."""
        return self._engine

    @property
    def settings(self) -> LibrarianSettings:
        return self._settings

    def close(self) -> None:
        """Release pooled connections."""
        self._engine.dispose()

    @contextmanager
    def transaction(self) -> Iterator[StoreTransaction]:
        """Atomic unit of work.

        Every write issued through the yielded handle commits together when
        the block exits normally and rolls back together if it raises.

        Usage::

            with store.transaction() as txn:
                if not txn.take_copy(book.id):
                    raise ...  # nothing written survives
                txn.insert_loan(loan)
        """
        with _translate_errors(), self._engine.begin() as conn:
            yield StoreTransaction(conn)

    @contextmanager
    def snapshot(self) -> Iterator[StoreTransaction]:
        """Read-only handle; nothing issued through it is committed."""
        with _translate_errors(), self._engine.connect() as conn:
            yield StoreTransaction(conn)
