"""Shared service-layer helper functions."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any


def utc_now() -> datetime:
    """Current instant, timezone-aware UTC."""
    return datetime.now(UTC)


def iso(value: datetime | None) -> str | None:
    """ISO 8601 text for result payloads (None passes through)."""
    return value.isoformat() if value is not None else None


def snapshot(model: Any, *, exclude: set[str] | None = None) -> dict[str, Any]:
    """JSON-safe dict of an entity for result payloads."""
    return dict(model.model_dump(mode="json", exclude=exclude or {"id"}))
