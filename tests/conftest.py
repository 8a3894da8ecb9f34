"""Shared pytest fixtures and test helpers for librarian tests."""

from __future__ import annotations

from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from click.testing import CliRunner
from sqlalchemy import select
from sqlalchemy.engine import Engine

from librarian.config.settings import LibrarianSettings
from librarian.domain.entities import Book, Loan, Member
from librarian.infrastructure.database.engine import init_database
from librarian.infrastructure.database.schema import loans
from librarian.infrastructure.store import LibraryStore, _loan
from librarian.services.telemetry import disable_telemetry


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def db_engine(tmp_path: Path) -> Generator[Engine]:
    """Initialized SQLite engine with all tables created."""
    engine = init_database(tmp_path)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[LibraryStore]:
    """Store on a fresh database under a temp directory."""
    monkeypatch.delenv("LIBRARIAN_CONFIG", raising=False)
    settings = LibrarianSettings.from_cli(data_dir=tmp_path)
    s = LibraryStore(settings)
    try:
        yield s
    finally:
        s.close()


@pytest.fixture(autouse=True)
def _reset_telemetry() -> Generator[None]:
    """Verbose CLI runs switch telemetry on for the whole thread."""
    yield
    disable_telemetry()


@pytest.fixture
def _isolated_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Change CWD to a temp directory so the CLI creates an isolated database.

    Use via ``@pytest.mark.usefixtures("_isolated_data_dir")`` on command
    test classes.
    """
    monkeypatch.delenv("LIBRARIAN_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)


# ---------------------------------------------------------------------------
# Seeding helpers (writes go straight through the store, not the services)
# ---------------------------------------------------------------------------


class Seeder:
    """Puts rows in place with exact values, including back-dated loans."""

    def __init__(self, store: LibraryStore) -> None:
        self.store = store

    def book(self, code: str, *, stock: int = 1, title: str = "", author: str = "") -> Book:
        book = Book(
            code=code,
            title=title or f"Title {code}",
            author=author or "Anonymous",
            stock=stock,
            created_at=datetime.now(UTC),
        )
        with self.store.transaction() as txn:
            return txn.insert_book(book)

    def member(
        self,
        code: str,
        *,
        name: str = "",
        borrowed_books_count: int = 0,
        penalty_until: datetime | None = None,
    ) -> Member:
        member = Member(
            code=code,
            name=name or f"Member {code}",
            borrowed_books_count=borrowed_books_count,
            is_penalized=penalty_until is not None,
            penalty_expiration_date=penalty_until,
            created_at=datetime.now(UTC),
        )
        with self.store.transaction() as txn:
            return txn.insert_member(member)

    def loan(self, book_code: str, member_code: str, *, days_ago: float = 0) -> Loan:
        """Record an outstanding loan borrowed *days_ago* days before now."""
        with self.store.transaction() as txn:
            book = txn.find_book(book_code)
            member = txn.find_member(member_code)
            assert book is not None and book.id is not None
            assert member is not None and member.id is not None
            txn.update_book(book.id, stock=book.stock - 1)
            txn.update_member(member.id, borrowed_books_count=member.borrowed_books_count + 1)
            return txn.insert_loan(
                Loan(
                    book_id=book.id,
                    member_id=member.id,
                    created_at=datetime.now(UTC) - timedelta(days=days_ago),
                )
            )

    def get_book(self, code: str) -> Book:
        with self.store.snapshot() as txn:
            book = txn.find_book(code)
        assert book is not None
        return book

    def get_member(self, code: str) -> Member:
        with self.store.snapshot() as txn:
            member = txn.find_member(code)
        assert member is not None
        return member

    def loans(self, *, outstanding: bool = False) -> list[Loan]:
        """Loan rows in insertion order; only unreturned ones if *outstanding*."""
        stmt = select(loans).order_by(loans.c.id)
        if outstanding:
            stmt = stmt.where(loans.c.returned_at.is_(None))
        with self.store.snapshot() as txn:
            return [_loan(row) for row in txn.conn.execute(stmt)]


@pytest.fixture
def seed(store: LibraryStore) -> Seeder:
    """Seeding helper bound to the ``store`` fixture."""
    return Seeder(store)
