"""structlog configuration for librarian.

Lending events are named ``<subject>.<what happened>`` (``loan.opened``,
``penalty.applied``, ``penalties.lapsed``). Two processors shape them:

- :func:`add_subject` copies the subject into its own key so JSON log
  consumers can filter on ``subject == "loan"``.
- :func:`render_datetimes` writes due dates and penalty expiries as
  ISO-8601 strings, matching what the CLI prints.

Output goes to stderr, colored for humans or as JSON lines (``--log-json``).
"""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from datetime import datetime
from typing import Any

import structlog


def add_subject(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Add ``subject`` from a dotted event name; other events pass through."""
    event = event_dict.get("event")
    if isinstance(event, str) and "." in event:
        event_dict.setdefault("subject", event.split(".", 1)[0])
    return event_dict


def render_datetimes(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    for key, value in event_dict.items():
        if isinstance(value, datetime):
            event_dict[key] = value.isoformat()
    return event_dict


def configure_logging(
    *,
    verbose: bool = False,
    log_json: bool = False,
) -> None:
    """Route librarian and stdlib logging through one structlog formatter.

    Args:
        verbose: Show librarian DEBUG events. Otherwise only WARNING and up.
        log_json: Use JSON renderer instead of console renderer.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_subject,
        render_datetimes,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.WARNING)

    logging.getLogger("librarian").setLevel(logging.DEBUG if verbose else logging.WARNING)
    # SQL echo is controlled by [database] echo, not --verbose.
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
