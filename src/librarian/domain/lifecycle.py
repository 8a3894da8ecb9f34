"""Loan and penalty lifecycle models.

A loan moves one way, OUTSTANDING -> RETURNED. A member's penalty flips
between CLEAR and PENALIZED: a late return penalizes, an on-time return or
the lapse sweep clears.
"""

from __future__ import annotations

from enum import StrEnum


class LoanStatus(StrEnum):
    """Status of a borrowed-book record."""

    OUTSTANDING = "outstanding"
    RETURNED = "returned"


class PenaltyState(StrEnum):
    """Whether a member is currently blocked from borrowing."""

    CLEAR = "clear"
    PENALIZED = "penalized"


# --- Transition maps ---

LOAN_TRANSITIONS: dict[str, list[str]] = {
    "outstanding": ["returned"],
    "returned": [],
}

PENALTY_TRANSITIONS: dict[str, list[str]] = {
    "clear": ["clear", "penalized"],  # every return overwrites the flag
    "penalized": ["clear", "penalized"],
}


def is_valid_transition(
    current: str,
    target: str,
    transitions: dict[str, list[str]],
) -> bool:
    """Check if transitioning from *current* to *target* is allowed."""
    allowed = transitions.get(current, [])
    return target in allowed
