"""Command group: the member directory."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click
from pydantic import ValidationError

from librarian.commands._base import LibGroup, usage_error

if TYPE_CHECKING:
    from librarian.commands._context import AppContext

_MEMBER_EXAMPLES = """\
  librarian member create M-042 --name "Ada Lovelace"
  librarian member update M-042 --name "Augusta Ada King"
  librarian member list"""


@click.group(cls=LibGroup, examples=_MEMBER_EXAMPLES)
@click.pass_obj
def member(app: AppContext) -> None:
    """Manage library members."""


@member.command(
    examples="""\
  librarian member create M-042 --name "Ada Lovelace"
  librarian --json member create M-043 --name "Alan Turing" """
)
@click.argument("code")
@click.option("--name", required=True, help="Member name.")
@click.pass_obj
def create(app: AppContext, code: str, name: str) -> None:
    """Register a member."""
    from librarian.domain.commands import CreateMember
    from librarian.services.directory import MemberService

    try:
        command = CreateMember(code=code, name=name)
    except ValidationError as exc:
        raise usage_error(exc) from exc
    app.emit(MemberService(app.store_for("create_member")).create(command))


@member.command(
    "list",
    examples="""\
  librarian member list
  librarian --json member list""",
)
@click.pass_obj
def list_cmd(app: AppContext) -> None:
    """List members, clearing penalties that have expired."""
    from librarian.services.directory import MemberService

    app.emit(MemberService(app.store_for("list_members")).list_members())


@member.command(
    examples="""\
  librarian member update M-042 --name "Ada King"
  librarian member update M-042 --code M-100"""
)
@click.argument("code")
@click.option("--code", "new_code", default=None, help="New member code.")
@click.option("--name", default=None, help="New name.")
@click.pass_obj
def update(app: AppContext, code: str, new_code: str | None, name: str | None) -> None:
    """Overwrite a member's code or name."""
    from librarian.domain.commands import UpdateMember
    from librarian.services.directory import MemberService

    try:
        command = UpdateMember(code=new_code, name=name)
    except ValidationError as exc:
        raise usage_error(exc) from exc

    if not command.changes():
        raise click.UsageError("No changes specified. Use --help for options.")

    app.emit(MemberService(app.store_for("update_member")).update(code, command))
