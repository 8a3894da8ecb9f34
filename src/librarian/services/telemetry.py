"""Per-operation timing for ``--verbose``.

A traced service call opens one root span; :func:`trace_span` records the
stages beneath it (``validate``, ``commit``, ``lapse``). The finished tree
is attached to ``ServiceResult.meta["telemetry"]`` and summarized in one
``operation.timed`` log event. With telemetry off, each call costs a
single ContextVar read.
"""

from __future__ import annotations

import functools
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

import structlog

from librarian.services.result import ServiceResult

log = structlog.get_logger("librarian.telemetry")

_enabled: ContextVar[bool] = ContextVar("_enabled", default=False)
_active: ContextVar[Span | None] = ContextVar("_active", default=None)


@dataclass
class Span:
    """Wall-clock time of one operation or one of its stages."""

    name: str
    started: float = field(default_factory=time.perf_counter)
    finished: float | None = None
    children: list[Span] = field(default_factory=list)

    @property
    def duration_ms(self) -> float:
        if self.finished is None:
            return 0.0
        return (self.finished - self.started) * 1000

    def finish(self) -> None:
        self.finished = time.perf_counter()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "duration_ms": round(self.duration_ms, 2)}
        if self.children:
            data["children"] = [child.to_dict() for child in self.children]
        return data


@contextmanager
def trace_span(stage: str) -> Iterator[None]:
    """Time *stage* under the operation currently being traced."""
    parent = _active.get() if _enabled.get() else None
    if parent is None:
        yield
        return

    span = Span(name=stage)
    parent.children.append(span)
    token = _active.set(span)
    try:
        yield
    finally:
        span.finish()
        _active.reset(token)


def traced[**P](func: Callable[P, ServiceResult]) -> Callable[P, ServiceResult]:
    """Decorator: time a service operation and attach the span tree to its result."""

    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> ServiceResult:
        if not _enabled.get():
            return func(*args, **kwargs)

        root = Span(name=func.__qualname__)
        token = _active.set(root)
        try:
            result = func(*args, **kwargs)
        finally:
            root.finish()
            _active.reset(token)

        log.debug(
            "operation.timed",
            op=result.op,
            ok=result.ok,
            error=result.error.code if result.error else None,
            duration_ms=round(root.duration_ms, 2),
            stages=[child.name for child in root.children],
        )
        meta = {**(result.meta or {}), "telemetry": root.to_dict()}
        return result.model_copy(update={"meta": meta})

    return wrapper


def enable_telemetry() -> None:
    """Turn tracing on for the current context (``--verbose``)."""
    _enabled.set(True)


def disable_telemetry() -> None:
    _enabled.set(False)
