"""Store failures, kept apart from business outcomes.

The store translates driver exceptions into this small hierarchy so the
service layer can tell "the data says no" (a business result) from "the
database did not answer" (an infrastructure failure).
"""

from __future__ import annotations


class StoreError(Exception):
    """The store could not complete an operation."""

    retryable: bool = False


class StoreUnavailableError(StoreError):
    """The database could not be reached or failed mid-operation."""


class StoreTimeoutError(StoreError):
    """A lock wait exceeded the configured busy timeout."""

    retryable = True


class StoreIntegrityError(StoreError):
    """A write violated a uniqueness, check, or foreign-key constraint."""
