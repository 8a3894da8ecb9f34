"""Command: clear every penalty whose window has passed."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from librarian.commands._base import LibCommand

if TYPE_CHECKING:
    from librarian.commands._context import AppContext


@click.command(
    cls=LibCommand,
    examples="""\
  librarian lapse
  librarian --json lapse""",
)
@click.pass_obj
def lapse(app: AppContext) -> None:
    """Lift expired member penalties."""
    from librarian.services.lending import LendingService

    app.emit(LendingService(app.store_for("lapse_penalties")).lapse_expired_penalties())
