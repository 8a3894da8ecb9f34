"""Rich/JSON output helpers.

The CLI renders ServiceResult for humans (Rich tables and styled
key-value lines) or machines (--json). This is also the only place that
turns a structured ServiceError into user-facing text.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from pydantic import BaseModel

from librarian.services.result import ErrorCode, WarningCode

if TYPE_CHECKING:
    from librarian.services.result import ServiceError, ServiceResult, ServiceWarning

GENERIC_SERVER_ERROR = "Internal server error"

_RULE_MESSAGES: dict[str, str] = {
    "out_of_stock": "Book with code {code} is out of stock",
    "penalized": "Member with code {code} is penalized",
    "max_borrowed": "Member with code {code} has reached the maximum number of borrowed books",
}


class OutputSettings(BaseModel):
    """Output switches taken from the global CLI flags."""

    model_config = {"frozen": True}

    json_output: bool = False
    quiet: bool = False
    verbose: bool = False


def describe_error(error: ServiceError) -> str:
    """User-facing message for a service error.

    Infrastructure failures never leak store detail: they read as a generic
    server error, with a retry hint when the failure was a timeout.
    """
    detail = error.detail
    if error.is_infrastructure:
        if error.retryable:
            return f"{GENERIC_SERVER_ERROR} (the library is busy, try again)"
        return GENERIC_SERVER_ERROR

    entity = str(detail.get("entity", "item"))
    code = detail.get("code")
    if error.code == ErrorCode.NOT_FOUND:
        if entity == "loan":
            return (
                f"No outstanding loan of book {detail.get('book_code')} "
                f"for member {detail.get('member_code')}"
            )
        return f"{entity.capitalize()} with code {code} not found"
    if error.code == ErrorCode.CONFLICT:
        return f"{entity.capitalize()} with code {code} already exists"
    if error.code == ErrorCode.BUSINESS_RULE_VIOLATION:
        template = _RULE_MESSAGES.get(str(detail.get("rule")), "Lending rule violated for {code}")
        return template.format(code=code)
    return GENERIC_SERVER_ERROR


def describe_warning(warning: ServiceWarning) -> str:
    """User-facing message for a service warning."""
    detail = warning.detail
    if warning.code == WarningCode.LOAN_CREATED_IN_FUTURE:
        return (
            f"Loan {detail.get('loan_id')} is dated {detail.get('created_at')}, after the "
            "return time; days borrowed counted as an absolute difference"
        )
    if warning.code == WarningCode.LOAN_COUNT_ALREADY_ZERO:
        return f"Member {detail.get('member_code')} had no loans counted; counter left at 0"
    return str(warning.code)


def format_result(result: ServiceResult, *, settings: OutputSettings | None = None) -> str:
    """Format a ServiceResult for display.

    Args:
        result: The service result to format.
        settings: Output switches; defaults to human-readable, non-verbose.
    """
    settings = settings or OutputSettings()
    if settings.json_output:
        payload = result.model_dump(mode="json")
        if result.error is not None:
            payload["error"]["message"] = describe_error(result.error)
        for entry, warning in zip(payload["warnings"], result.warnings, strict=True):
            entry["message"] = describe_warning(warning)
        return json.dumps(payload, indent=2)

    from librarian.output.renderers import render_quiet, render_result

    if settings.quiet:
        return render_quiet(result)
    return render_result(result, verbose=settings.verbose)
