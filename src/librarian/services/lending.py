"""LendingService — borrow, return, and penalty lapse.

Pipeline for both lending operations: VALIDATE → COMMIT → RESPOND.

VALIDATE reads book, member, or loan outside any write transaction and
short-circuits on the first failed precondition. COMMIT opens one store
transaction and writes with guarded updates that repeat each precondition
in SQL. If a guard matches no row, the state changed between VALIDATE and
COMMIT: the fresh row is run through the same entity rule to name the
violation, and the whole transaction is rolled back.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from librarian.domain.commands import Borrow, Return
from librarian.domain.entities import Book, Loan, Member
from librarian.domain.rules import LendingRule, LendingRuleViolation
from librarian.services._helpers import iso, utc_now
from librarian.services.base import BaseService, store_errors_as_results
from librarian.services.result import ServiceError, ServiceResult, ServiceWarning, WarningCode
from librarian.services.telemetry import trace_span, traced

if TYPE_CHECKING:
    from datetime import datetime

    from librarian.domain.policy import PenaltyPolicy
    from librarian.infrastructure.store import StoreTransaction

log = structlog.get_logger(__name__)


class _Rejected(Exception):
    """Abort the open transaction and report *error* to the caller."""

    def __init__(self, error: ServiceError) -> None:
        super().__init__(error.code)
        self.error = error


def _violation(exc: LendingRuleViolation) -> ServiceError:
    return ServiceError.rule_violation(exc.rule, exc.entity, exc.code)


def _explain_book(book: Book | None, code: str) -> ServiceError:
    """Why a guarded stock decrement matched nothing."""
    if book is None:
        return ServiceError.not_found("book", code=code)
    try:
        book.apply_loan()
    except LendingRuleViolation as exc:
        return _violation(exc)
    return ServiceError.rule_violation(LendingRule.OUT_OF_STOCK, "book", code)


def _explain_member(member: Member | None, code: str, max_loans: int) -> ServiceError:
    """Why a guarded loan-counter increment matched nothing."""
    if member is None:
        return ServiceError.not_found("member", code=code)
    try:
        member.apply_loan(max_loans=max_loans)
    except LendingRuleViolation as exc:
        return _violation(exc)
    return ServiceError.rule_violation(LendingRule.MAX_BORROWED, "member", code)


class LendingService(BaseService):
    """The lending transaction engine."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @traced
    @store_errors_as_results("borrow")
    def borrow(self, command: Borrow) -> ServiceResult:
        """Lend a copy of a book to a member.

        Checks run in order and stop at the first failure: book exists,
        book in stock, member exists, member not penalized, member under
        the loan cap.
        """
        op = "borrow"
        now = utc_now()
        policy = self.policy

        # ── VALIDATE ─────────────────────────────────────────
        with trace_span("validate"), self._store.snapshot() as txn:
            book = txn.find_book(command.book_code)
            if book is None:
                return ServiceResult.failure(
                    op, ServiceError.not_found("book", code=command.book_code)
                )
            try:
                book.apply_loan()
            except LendingRuleViolation as exc:
                return ServiceResult.failure(op, _violation(exc))

            member = txn.find_member(command.member_code)
            if member is None:
                return ServiceResult.failure(
                    op, ServiceError.not_found("member", code=command.member_code)
                )

        try:
            member.apply_loan(max_loans=policy.max_concurrent_loans)
        except LendingRuleViolation as exc:
            return ServiceResult.failure(op, _violation(exc))

        # ── COMMIT ───────────────────────────────────────────
        try:
            with trace_span("commit"), self._store.transaction() as txn:
                loan, book, member = self._open_loan(txn, book, member, now, policy)
        except _Rejected as exc:
            log.info(
                "loan.rejected",
                book_code=command.book_code,
                member_code=command.member_code,
                reason=exc.error.detail.get("rule", exc.error.code),
            )
            return ServiceResult.failure(op, exc.error)

        log.info(
            "loan.opened",
            loan_id=loan.id,
            book_code=book.code,
            member_code=member.code,
            stock=book.stock,
            borrowed_books_count=member.borrowed_books_count,
        )

        # ── RESPOND ──────────────────────────────────────────
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "loan_id": loan.id,
                "book_code": book.code,
                "member_code": member.code,
                "borrowed_at": iso(loan.created_at),
                "stock": book.stock,
                "borrowed_books_count": member.borrowed_books_count,
            },
        )

    @traced
    @store_errors_as_results("return")
    def return_book(self, command: Return) -> ServiceResult:
        """Close the outstanding loan for a (book, member) pair.

        A return more than the loan period after borrowing penalizes the
        member until ``now + penalty_days``; an on-time return clears any
        earlier penalty.
        """
        op = "return"
        now = utc_now()
        policy = self.policy
        warnings: list[ServiceWarning] = []
        missing = ServiceError.not_found(
            "loan", book_code=command.book_code, member_code=command.member_code
        )

        # ── VALIDATE ─────────────────────────────────────────
        with trace_span("validate"), self._store.snapshot() as txn:
            loan = txn.find_active_loan(command.book_code, command.member_code)
        if loan is None:
            return ServiceResult.failure(op, missing)
        assert loan.id is not None

        if loan.created_in_future(now):
            warnings.append(
                ServiceWarning(
                    code=WarningCode.LOAN_CREATED_IN_FUTURE,
                    detail={"loan_id": loan.id, "created_at": iso(loan.created_at)},
                )
            )
            log.warning(
                "loan.created_in_future",
                loan_id=loan.id,
                created_at=loan.created_at,
                now=now,
            )
        days_borrowed = loan.days_borrowed(now)
        penalty_until = policy.penalty_for(days_borrowed, now)
        closed = loan.close(now)

        # ── COMMIT ───────────────────────────────────────────
        try:
            with trace_span("commit"), self._store.transaction() as txn:
                if not txn.close_loan(loan.id, returned_at=now):
                    # Returned by a concurrent call since VALIDATE.
                    raise _Rejected(missing)

                book = txn.find_book_by_id(loan.book_id)
                member = txn.find_member_by_id(loan.member_id)
                assert book is not None and member is not None
                restocked = book.apply_return()
                settled = member.apply_return(penalty_until=penalty_until)

                txn.return_copy(loan.book_id)
                if not txn.settle_member_return(loan.member_id, penalty_until=penalty_until):
                    warnings.append(
                        ServiceWarning(
                            code=WarningCode.LOAN_COUNT_ALREADY_ZERO,
                            detail={"member_code": member.code},
                        )
                    )
                    txn.update_member(
                        loan.member_id,
                        is_penalized=settled.is_penalized,
                        penalty_expiration_date=settled.penalty_expiration_date,
                    )
        except _Rejected as exc:
            return ServiceResult.failure(op, exc.error)

        log.info(
            "loan.closed",
            loan_id=loan.id,
            book_code=restocked.code,
            member_code=settled.code,
            days_borrowed=days_borrowed,
        )
        if settled.is_penalized:
            log.info(
                "penalty.applied",
                member_code=settled.code,
                until=settled.penalty_expiration_date,
            )

        # ── RESPOND ──────────────────────────────────────────
        return ServiceResult(
            ok=True,
            op=op,
            data={
                "loan_id": closed.id,
                "book_code": restocked.code,
                "member_code": settled.code,
                "returned_at": iso(closed.returned_at),
                "days_borrowed": days_borrowed,
                "late": settled.is_penalized,
                "penalty_expiration_date": iso(settled.penalty_expiration_date),
                "stock": restocked.stock,
                "borrowed_books_count": settled.borrowed_books_count,
            },
            warnings=warnings,
        )

    @traced
    @store_errors_as_results("lapse_penalties")
    def lapse_expired_penalties(self) -> ServiceResult:
        """Clear every penalty whose expiration is at or before now."""
        now = utc_now()
        with self._store.transaction() as txn:
            lapsed = txn.lapse_penalties(now)
        if lapsed:
            log.info("penalties.lapsed", count=lapsed, trigger="sweep")
        return ServiceResult(ok=True, op="lapse_penalties", data={"lapsed": lapsed})

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _open_loan(
        self,
        txn: StoreTransaction,
        book: Book,
        member: Member,
        now: datetime,
        policy: PenaltyPolicy,
    ) -> tuple[Loan, Book, Member]:
        """Guarded writes for one borrow. Raises _Rejected to roll back."""
        assert book.id is not None and member.id is not None

        if not txn.take_copy(book.id):
            raise _Rejected(_explain_book(txn.find_book_by_id(book.id), book.code))

        if not txn.open_member_loan(member.id, max_loans=policy.max_concurrent_loans):
            raise _Rejected(
                _explain_member(
                    txn.find_member_by_id(member.id),
                    member.code,
                    policy.max_concurrent_loans,
                )
            )

        loan = txn.insert_loan(Loan(book_id=book.id, member_id=member.id, created_at=now))

        fresh_book = txn.find_book_by_id(book.id)
        fresh_member = txn.find_member_by_id(member.id)
        assert fresh_book is not None and fresh_member is not None
        return loan, fresh_book, fresh_member
