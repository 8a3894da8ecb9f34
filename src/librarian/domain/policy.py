"""Penalty policy: when a return is late and how long the penalty lasts."""

from __future__ import annotations

from datetime import datetime, timedelta

from pydantic import BaseModel, Field

LOAN_PERIOD_DAYS = 7
PENALTY_DAYS = 3
MAX_CONCURRENT_LOANS = 2


class PenaltyPolicy(BaseModel):
    """The tunable surface of the lending rules."""

    model_config = {"frozen": True}

    loan_period_days: int = Field(default=LOAN_PERIOD_DAYS, ge=0)
    penalty_days: int = Field(default=PENALTY_DAYS, ge=0)
    max_concurrent_loans: int = Field(default=MAX_CONCURRENT_LOANS, ge=1)

    def is_late(self, days_borrowed: int) -> bool:
        """A loan is late only once it exceeds the loan period (``>``, not ``>=``)."""
        return days_borrowed > self.loan_period_days

    def penalty_window(self, now: datetime) -> datetime:
        """Instant at which a penalty issued at *now* expires."""
        return now + timedelta(days=self.penalty_days)

    def penalty_for(self, days_borrowed: int, now: datetime) -> datetime | None:
        """Penalty expiration for a return at *now*, or None when on time."""
        if self.is_late(days_borrowed):
            return self.penalty_window(now)
        return None
