"""Lending business rules and the exception raised when one is broken."""

from __future__ import annotations

from enum import StrEnum


class LendingRule(StrEnum):
    """Business rules checked by borrow."""

    OUT_OF_STOCK = "out_of_stock"
    PENALIZED = "penalized"
    MAX_BORROWED = "max_borrowed"


class LendingRuleViolation(Exception):
    """An entity refused a lending mutation.

    Carries the rule name and the code of the entity that refused it, so
    the service layer can build a structured error without parsing text.
    """

    def __init__(self, rule: LendingRule, *, entity: str, code: str) -> None:
        super().__init__(f"{entity} {code}: {rule}")
        self.rule = rule
        self.entity = entity
        self.code = code
