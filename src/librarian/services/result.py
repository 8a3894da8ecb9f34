"""ServiceResult and ServiceError — the universal service contract.

INVARIANT: All service-layer methods return ServiceResult.
Errors carry a machine-readable code plus structured detail (entity kind,
codes, rule name). Turning them into user-facing text is the boundary
layer's job.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class ErrorCode(StrEnum):
    """Failure kinds a service operation can report."""

    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    STORE_TIMEOUT = "STORE_TIMEOUT"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


INFRASTRUCTURE_CODES = frozenset({ErrorCode.STORE_TIMEOUT, ErrorCode.STORE_UNAVAILABLE})


class WarningCode(StrEnum):
    """Non-fatal conditions an operation completed in spite of."""

    LOAN_CREATED_IN_FUTURE = "LOAN_CREATED_IN_FUTURE"
    LOAN_COUNT_ALREADY_ZERO = "LOAN_COUNT_ALREADY_ZERO"


class ServiceError(BaseModel):
    """Structured error payload within a ServiceResult."""

    model_config = {"frozen": True}

    code: ErrorCode
    detail: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_infrastructure(self) -> bool:
        """True for store failures, which are not business outcomes."""
        return self.code in INFRASTRUCTURE_CODES

    @property
    def retryable(self) -> bool:
        return self.code == ErrorCode.STORE_TIMEOUT

    @classmethod
    def not_found(cls, entity: str, **keys: Any) -> ServiceError:
        return cls(code=ErrorCode.NOT_FOUND, detail={"entity": entity, **keys})

    @classmethod
    def conflict(cls, entity: str, code: str) -> ServiceError:
        return cls(code=ErrorCode.CONFLICT, detail={"entity": entity, "code": code})

    @classmethod
    def rule_violation(cls, rule: str, entity: str, code: str) -> ServiceError:
        return cls(
            code=ErrorCode.BUSINESS_RULE_VIOLATION,
            detail={"rule": rule, "entity": entity, "code": code},
        )


class ServiceWarning(BaseModel):
    """Structured warning payload; rendered to text by the boundary."""

    model_config = {"frozen": True}

    code: WarningCode
    detail: dict[str, Any] = Field(default_factory=dict)


class ServiceResult(BaseModel):
    """Universal return type for all service operations.

    Attributes:
        ok: Whether the operation succeeded.
        op: Name of the operation (e.g. ``"borrow"``).
        data: Operation-specific payload on success.
        warnings: Non-fatal issues encountered during the operation.
        error: Structured error if ``ok`` is False.
        meta: Optional metadata (timing, counts, etc.).
    """

    model_config = {"frozen": True}

    ok: bool
    op: str
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[ServiceWarning] = Field(default_factory=list)
    error: ServiceError | None = None
    meta: dict[str, Any] | None = None

    @classmethod
    def failure(cls, op: str, error: ServiceError) -> ServiceResult:
        return cls(ok=False, op=op, error=error)
