"""Book, Member, and Loan — immutable records with lending mutators.

Entities never change in place. Each mutator validates the invariant it
touches and returns a new instance via ``model_copy``. Services decide
which mutator to call; the store persists the outcome with guarded writes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from librarian.domain.lifecycle import (
    LOAN_TRANSITIONS,
    PENALTY_TRANSITIONS,
    LoanStatus,
    PenaltyState,
    is_valid_transition,
)
from librarian.domain.rules import LendingRule, LendingRuleViolation


class Book(BaseModel):
    """A catalogued title with a stock counter."""

    model_config = {"frozen": True}

    id: int | None = None
    code: str = Field(min_length=1)
    title: str
    author: str
    stock: int = Field(ge=0)
    created_at: datetime | None = None

    def apply_loan(self) -> Book:
        """Take one copy off the shelf."""
        if self.stock == 0:
            raise LendingRuleViolation(LendingRule.OUT_OF_STOCK, entity="book", code=self.code)
        return self.model_copy(update={"stock": self.stock - 1})

    def apply_return(self) -> Book:
        """Put one copy back on the shelf."""
        return self.model_copy(update={"stock": self.stock + 1})


class Member(BaseModel):
    """A library member with loan counter and penalty state."""

    model_config = {"frozen": True}

    id: int | None = None
    code: str = Field(min_length=1)
    name: str
    borrowed_books_count: int = Field(default=0, ge=0)
    is_penalized: bool = False
    penalty_expiration_date: datetime | None = None
    created_at: datetime | None = None

    @property
    def penalty_state(self) -> PenaltyState:
        return PenaltyState.PENALIZED if self.is_penalized else PenaltyState.CLEAR

    def apply_loan(self, *, max_loans: int) -> Member:
        """Count one more outstanding loan.

        Raises:
            LendingRuleViolation: If the member is penalized or already
                holds *max_loans* books.
        """
        if self.is_penalized:
            raise LendingRuleViolation(LendingRule.PENALIZED, entity="member", code=self.code)
        if self.borrowed_books_count >= max_loans:
            raise LendingRuleViolation(LendingRule.MAX_BORROWED, entity="member", code=self.code)
        return self.model_copy(update={"borrowed_books_count": self.borrowed_books_count + 1})

    def apply_return(self, *, penalty_until: datetime | None) -> Member:
        """Count one loan fewer and overwrite the penalty state.

        An on-time return (``penalty_until=None``) clears any earlier penalty.
        """
        target = PenaltyState.CLEAR if penalty_until is None else PenaltyState.PENALIZED
        return self._move_penalty(
            target,
            borrowed_books_count=max(self.borrowed_books_count - 1, 0),
            penalty_expiration_date=penalty_until,
        )

    def _move_penalty(self, target: PenaltyState, **changes: Any) -> Member:
        if not is_valid_transition(self.penalty_state, target, PENALTY_TRANSITIONS):
            msg = f"Member {self.code}: penalty cannot go {self.penalty_state} -> {target}"
            raise ValueError(msg)
        return self.model_copy(update={"is_penalized": target == PenaltyState.PENALIZED, **changes})


class Loan(BaseModel):
    """One borrowing of a book by a member."""

    model_config = {"frozen": True}

    id: int | None = None
    book_id: int
    member_id: int
    created_at: datetime
    returned_at: datetime | None = None

    @property
    def status(self) -> LoanStatus:
        return LoanStatus.OUTSTANDING if self.returned_at is None else LoanStatus.RETURNED

    def close(self, returned_at: datetime) -> Loan:
        if not is_valid_transition(self.status, LoanStatus.RETURNED, LOAN_TRANSITIONS):
            msg = f"Loan {self.id} is {self.status}, it cannot be returned again"
            raise ValueError(msg)
        return self.model_copy(update={"returned_at": returned_at})

    def days_borrowed(self, now: datetime) -> int:
        """Whole days between borrowing and *now*, as an absolute difference."""
        return abs(now - self.created_at).days

    def created_in_future(self, now: datetime) -> bool:
        """Data-integrity check: a loan cannot start after *now*."""
        return self.created_at > now
