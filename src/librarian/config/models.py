"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, librarian.toml only contains
overrides. An empty file (or none at all) yields the standard lending rules.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from librarian.domain.policy import LOAN_PERIOD_DAYS, MAX_CONCURRENT_LOANS, PENALTY_DAYS

# --- librarian.toml sections ---


class DatabaseConfig(BaseModel):
    """[database] section."""

    model_config = {"frozen": True}

    filename: str = "librarian.db"
    busy_timeout_seconds: float = Field(default=5.0, gt=0)
    echo: bool = False


class LendingConfig(BaseModel):
    """[lending] section."""

    model_config = {"frozen": True}

    max_concurrent_loans: int = Field(default=MAX_CONCURRENT_LOANS, ge=1)
    loan_period_days: int = Field(default=LOAN_PERIOD_DAYS, ge=0)
    penalty_days: int = Field(default=PENALTY_DAYS, ge=0)
