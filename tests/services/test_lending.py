"""Tests for LendingService: borrow, return, and penalty lapse."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

from librarian.domain.commands import Borrow, Return
from librarian.domain.entities import Member
from librarian.infrastructure.store import LibraryStore, StoreTransaction
from librarian.services.lending import LendingService
from librarian.services.result import ErrorCode, ServiceResult, WarningCode

if TYPE_CHECKING:
    from tests.conftest import Seeder


def _borrow(store: LibraryStore, book: str = "B-1", member: str = "M-1") -> ServiceResult:
    return LendingService(store).borrow(Borrow(book_code=book, member_code=member))


def _return(store: LibraryStore, book: str = "B-1", member: str = "M-1") -> ServiceResult:
    return LendingService(store).return_book(Return(book_code=book, member_code=member))


def _rule(result: ServiceResult) -> str:
    assert not result.ok
    assert result.error is not None
    assert result.error.code == ErrorCode.BUSINESS_RULE_VIOLATION
    return str(result.error.detail["rule"])


class TestBorrow:
    def test_success_updates_all_three(self, store: LibraryStore, seed: Seeder) -> None:
        seed.book("B-1", stock=2)
        seed.member("M-1")

        result = _borrow(store)
        assert result.ok, result.error
        assert result.op == "borrow"
        assert result.data["stock"] == 1
        assert result.data["borrowed_books_count"] == 1
        assert result.data["book_code"] == "B-1"
        assert result.data["member_code"] == "M-1"

        assert seed.get_book("B-1").stock == 1
        assert seed.get_member("M-1").borrowed_books_count == 1
        outstanding = seed.loans(outstanding=True)
        assert len(outstanding) == 1
        assert outstanding[0].id == result.data["loan_id"]

    def test_unknown_book(self, store: LibraryStore, seed: Seeder) -> None:
        seed.member("M-1")
        result = _borrow(store, book="nope")
        assert result.error is not None
        assert result.error.code == ErrorCode.NOT_FOUND
        assert result.error.detail == {"entity": "book", "code": "nope"}

    def test_unknown_member(self, store: LibraryStore, seed: Seeder) -> None:
        seed.book("B-1")
        result = _borrow(store, member="nobody")
        assert result.error is not None
        assert result.error.code == ErrorCode.NOT_FOUND
        assert result.error.detail["entity"] == "member"
        assert seed.get_book("B-1").stock == 1

    def test_out_of_stock(self, store: LibraryStore, seed: Seeder) -> None:
        seed.book("B-1", stock=0)
        seed.member("M-1")
        assert _rule(_borrow(store)) == "out_of_stock"
        assert seed.loans() == []

    def test_stock_checked_before_member_exists(self, store: LibraryStore, seed: Seeder) -> None:
        seed.book("B-1", stock=0)
        assert _rule(_borrow(store, member="nobody")) == "out_of_stock"

    def test_penalized_member(self, store: LibraryStore, seed: Seeder) -> None:
        seed.book("B-1")
        seed.member("M-1", penalty_until=datetime.now(UTC) + timedelta(days=2))
        assert _rule(_borrow(store)) == "penalized"
        assert seed.get_book("B-1").stock == 1

    def test_max_borrowed(self, store: LibraryStore, seed: Seeder) -> None:
        seed.book("B-1", stock=3)
        seed.member("M-1", borrowed_books_count=2)
        result = _borrow(store)
        assert _rule(result) == "max_borrowed"
        assert result.error is not None
        assert result.error.detail["entity"] == "member"
        assert seed.get_book("B-1").stock == 3
        assert seed.get_member("M-1").borrowed_books_count == 2

    def test_expired_penalty_still_blocks_borrow(self, store: LibraryStore, seed: Seeder) -> None:
        seed.book("B-1", stock=3)
        seed.member("M-1", penalty_until=datetime.now(UTC) - timedelta(minutes=5))
        assert _rule(_borrow(store)) == "penalized"
        assert seed.get_book("B-1").stock == 3
        member = seed.get_member("M-1")
        assert member.is_penalized is True
        assert member.borrowed_books_count == 0
        assert seed.loans() == []

    def test_same_book_twice_allowed(self, store: LibraryStore, seed: Seeder) -> None:
        seed.book("B-1", stock=2)
        seed.member("M-1")
        assert _borrow(store).ok
        assert _borrow(store).ok
        assert len(seed.loans(outstanding=True)) == 2

    def test_concurrent_borrow_of_last_copy(self, store: LibraryStore, seed: Seeder) -> None:
        seed.book("B-1", stock=1)
        codes = [f"M-{i}" for i in range(6)]
        for code in codes:
            seed.member(code)

        with ThreadPoolExecutor(max_workers=len(codes)) as pool:
            results = list(pool.map(lambda code: _borrow(store, member=code), codes))

        winners = [r for r in results if r.ok]
        losers = [r for r in results if not r.ok]
        assert len(winners) == 1
        assert all(_rule(r) == "out_of_stock" for r in losers)
        assert seed.get_book("B-1").stock == 0
        assert len(seed.loans(outstanding=True)) == 1


class TestMemberGuardMiss:
    """The member row changed between the validating read and the commit."""

    def _stale_lookup(self, monkeypatch: pytest.MonkeyPatch, stale: Member) -> None:
        monkeypatch.setattr(StoreTransaction, "find_member", lambda _txn, _code: stale)

    def test_loan_cap_reached_meanwhile(
        self, store: LibraryStore, seed: Seeder, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        seed.book("B-1", stock=3)
        member = seed.member("M-1", borrowed_books_count=2)
        self._stale_lookup(monkeypatch, member.model_copy(update={"borrowed_books_count": 1}))

        result = _borrow(store)
        monkeypatch.undo()

        assert _rule(result) == "max_borrowed"
        assert seed.get_book("B-1").stock == 3
        assert seed.get_member("M-1").borrowed_books_count == 2
        assert seed.loans() == []

    def test_penalized_meanwhile(
        self, store: LibraryStore, seed: Seeder, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        seed.book("B-1", stock=3)
        member = seed.member("M-1", penalty_until=datetime.now(UTC) + timedelta(days=2))
        self._stale_lookup(
            monkeypatch,
            member.model_copy(update={"is_penalized": False, "penalty_expiration_date": None}),
        )

        result = _borrow(store)
        monkeypatch.undo()

        assert _rule(result) == "penalized"
        assert seed.get_book("B-1").stock == 3
        assert seed.get_member("M-1").borrowed_books_count == 0
        assert seed.loans() == []


class TestReturn:
    def test_on_time_at_seven_days(self, store: LibraryStore, seed: Seeder) -> None:
        seed.book("B-1", stock=1)
        seed.member("M-1")
        seed.loan("B-1", "M-1", days_ago=7)

        result = _return(store)
        assert result.ok, result.error
        assert result.data["days_borrowed"] == 7
        assert result.data["late"] is False
        assert result.data["penalty_expiration_date"] is None
        assert result.data["stock"] == 1
        assert result.data["borrowed_books_count"] == 0

        member = seed.get_member("M-1")
        assert member.is_penalized is False
        assert member.borrowed_books_count == 0
        assert seed.get_book("B-1").stock == 1
        assert seed.loans(outstanding=True) == []

    def test_late_at_eight_days(self, store: LibraryStore, seed: Seeder) -> None:
        seed.book("B-1", stock=1)
        seed.member("M-1")
        seed.loan("B-1", "M-1", days_ago=8)

        result = _return(store)
        assert result.ok, result.error
        assert result.data["days_borrowed"] == 8
        assert result.data["late"] is True

        returned_at = datetime.fromisoformat(result.data["returned_at"])
        until = datetime.fromisoformat(result.data["penalty_expiration_date"])
        assert until == returned_at + timedelta(days=3)

        member = seed.get_member("M-1")
        assert member.is_penalized is True
        assert member.penalty_expiration_date == until

        closed = seed.loans()[0]
        assert closed.returned_at == returned_at

    def test_on_time_return_clears_earlier_penalty(self, store: LibraryStore, seed: Seeder) -> None:
        seed.book("B-1", stock=1)
        seed.member("M-1")
        seed.loan("B-1", "M-1", days_ago=1)
        with store.transaction() as txn:
            member = txn.find_member("M-1")
            assert member is not None
            txn.update_member(
                member.id,
                is_penalized=True,
                penalty_expiration_date=datetime.now(UTC) + timedelta(days=2),
            )

        assert _return(store).ok
        assert seed.get_member("M-1").is_penalized is False

    def test_no_outstanding_loan(self, store: LibraryStore, seed: Seeder) -> None:
        seed.book("B-1", stock=4)
        seed.member("M-1", borrowed_books_count=1)

        result = _return(store)
        assert result.error is not None
        assert result.error.code == ErrorCode.NOT_FOUND
        assert result.error.detail == {
            "entity": "loan",
            "book_code": "B-1",
            "member_code": "M-1",
        }
        # Nothing moved.
        assert seed.get_book("B-1").stock == 4
        assert seed.get_member("M-1").borrowed_books_count == 1

    def test_already_returned_loan_is_not_found(self, store: LibraryStore, seed: Seeder) -> None:
        seed.book("B-1")
        seed.member("M-1")
        assert _borrow(store).ok
        assert _return(store).ok
        result = _return(store)
        assert result.error is not None
        assert result.error.code == ErrorCode.NOT_FOUND
        assert seed.get_book("B-1").stock == 1

    def test_duplicate_loans_close_earliest(self, store: LibraryStore, seed: Seeder) -> None:
        seed.book("B-1", stock=2)
        seed.member("M-1")
        recent = seed.loan("B-1", "M-1", days_ago=1)
        old = seed.loan("B-1", "M-1", days_ago=10)

        result = _return(store)
        assert result.data["loan_id"] == old.id
        assert result.data["late"] is True
        assert [loan.id for loan in seed.loans(outstanding=True)] == [recent.id]

    def test_future_loan_warns(self, store: LibraryStore, seed: Seeder) -> None:
        seed.book("B-1", stock=1)
        seed.member("M-1")
        seed.loan("B-1", "M-1", days_ago=-9)

        result = _return(store)
        assert result.ok
        assert result.data["days_borrowed"] in (8, 9)
        assert result.data["late"] is True
        assert [w.code for w in result.warnings] == [WarningCode.LOAN_CREATED_IN_FUTURE]

    def test_counter_already_zero_warns(self, store: LibraryStore, seed: Seeder) -> None:
        seed.book("B-1", stock=1)
        seed.member("M-1")
        loan = seed.loan("B-1", "M-1", days_ago=9)
        with store.transaction() as txn:
            txn.update_member(loan.member_id, borrowed_books_count=0)

        result = _return(store)
        assert result.ok
        assert result.data["borrowed_books_count"] == 0
        assert [w.code for w in result.warnings] == [WarningCode.LOAN_COUNT_ALREADY_ZERO]
        assert result.warnings[0].detail == {"member_code": "M-1"}
        member = seed.get_member("M-1")
        assert member.borrowed_books_count == 0
        assert member.is_penalized is True


class TestLapseExpiredPenalties:
    def test_sweep(self, store: LibraryStore, seed: Seeder) -> None:
        now = datetime.now(UTC)
        seed.member("M-1", penalty_until=now - timedelta(seconds=1))
        seed.member("M-2", penalty_until=now - timedelta(days=3))
        seed.member("M-3", penalty_until=now + timedelta(days=3))

        result = LendingService(store).lapse_expired_penalties()
        assert result.ok
        assert result.op == "lapse_penalties"
        assert result.data == {"lapsed": 2}
        assert seed.get_member("M-3").is_penalized is True

    def test_nothing_to_lapse(self, store: LibraryStore) -> None:
        assert LendingService(store).lapse_expired_penalties().data == {"lapsed": 0}


class TestStoreFailures:
    def test_store_timeout_is_generic_failure(
        self, store: LibraryStore, seed: Seeder, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from librarian.infrastructure.errors import StoreTimeoutError

        seed.book("B-1")
        seed.member("M-1")

        def _locked(*_args: object, **_kwargs: object) -> None:
            raise StoreTimeoutError("database is locked")

        monkeypatch.setattr(LibraryStore, "transaction", _locked)
        result = _borrow(store)
        assert result.error is not None
        assert result.error.code == ErrorCode.STORE_TIMEOUT
        assert result.error.retryable is True
        assert seed.get_book("B-1").stock == 1
