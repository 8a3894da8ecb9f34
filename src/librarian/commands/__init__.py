"""Subcommand modules for librarian.

Provides register_commands() which uses deferred imports to keep
``librarian --help`` fast.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register command groups and standalone commands on the root CLI group."""
    # --- Groups ---
    from librarian.commands.book import book
    from librarian.commands.member import member

    cli.add_command(book)
    cli.add_command(member)

    # --- Standalone commands ---
    from librarian.commands.lapse import lapse

    cli.add_command(lapse)
