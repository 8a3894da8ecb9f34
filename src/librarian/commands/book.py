"""Command group: the book catalog plus borrowing and returning."""

from __future__ import annotations

from typing import TYPE_CHECKING

import click
from pydantic import ValidationError

from librarian.commands._base import LibGroup, usage_error

if TYPE_CHECKING:
    from librarian.commands._context import AppContext

_BOOK_EXAMPLES = """\
  librarian book create B-001 --title "Dune" --author "Frank Herbert" --stock 3
  librarian book list --min-stock 1
  librarian book update B-001 --stock 5
  librarian book borrow B-001 --member M-042
  librarian book return B-001 --member M-042"""


@click.group(cls=LibGroup, examples=_BOOK_EXAMPLES)
@click.pass_obj
def book(app: AppContext) -> None:
    """Manage books and lend them out."""


@book.command(
    examples="""\
  librarian book create B-001 --title "Dune" --author "Frank Herbert" --stock 3
  librarian --json book create B-002 --title "Emma" --author "Jane Austen" --stock 1"""
)
@click.argument("code")
@click.option("--title", required=True, help="Book title.")
@click.option("--author", required=True, help="Book author.")
@click.option("--stock", required=True, type=int, help="Copies available to lend.")
@click.pass_obj
def create(app: AppContext, code: str, title: str, author: str, stock: int) -> None:
    """Add a book to the catalog."""
    from librarian.domain.commands import CreateBook
    from librarian.services.catalog import BookService

    try:
        command = CreateBook(code=code, title=title, author=author, stock=stock)
    except ValidationError as exc:
        raise usage_error(exc) from exc
    app.emit(BookService(app.store_for("create_book")).create(command))


@book.command(
    "list",
    examples="""\
  librarian book list
  librarian book list --min-stock 10
  librarian -q book list""",
)
@click.option("--min-stock", type=int, default=None, help="Only books with at least N copies.")
@click.pass_obj
def list_cmd(app: AppContext, min_stock: int | None) -> None:
    """List books in the catalog."""
    from librarian.domain.commands import ListBooksFilter
    from librarian.services.catalog import BookService

    try:
        book_filter = ListBooksFilter(min_stock=min_stock)
    except ValidationError as exc:
        raise usage_error(exc) from exc
    app.emit(BookService(app.store_for("list_books")).list_books(book_filter))


@book.command(
    examples="""\
  librarian book update B-001 --title "Dune Messiah"
  librarian book update B-001 --code B-100 --stock 0"""
)
@click.argument("code")
@click.option("--code", "new_code", default=None, help="New book code.")
@click.option("--title", default=None, help="New title.")
@click.option("--author", default=None, help="New author.")
@click.option("--stock", type=int, default=None, help="New stock count.")
@click.pass_obj
def update(
    app: AppContext,
    code: str,
    new_code: str | None,
    title: str | None,
    author: str | None,
    stock: int | None,
) -> None:
    """Overwrite a book's code, title, author, or stock."""
    from librarian.domain.commands import UpdateBook
    from librarian.services.catalog import BookService

    try:
        command = UpdateBook(code=new_code, title=title, author=author, stock=stock)
    except ValidationError as exc:
        raise usage_error(exc) from exc

    if not command.changes():
        raise click.UsageError("No changes specified. Use --help for options.")

    app.emit(BookService(app.store_for("update_book")).update(code, command))


@book.command(
    examples="""\
  librarian book borrow B-001 --member M-042
  librarian --json book borrow B-001 --member M-042"""
)
@click.argument("code")
@click.option("--member", "member_code", required=True, help="Code of the borrowing member.")
@click.pass_obj
def borrow(app: AppContext, code: str, member_code: str) -> None:
    """Lend one copy of a book to a member."""
    from librarian.domain.commands import Borrow
    from librarian.services.lending import LendingService

    try:
        command = Borrow(book_code=code, member_code=member_code)
    except ValidationError as exc:
        raise usage_error(exc) from exc
    app.emit(LendingService(app.store_for("borrow")).borrow(command))


@book.command(
    "return",
    examples="""\
  librarian book return B-001 --member M-042""",
)
@click.argument("code")
@click.option("--member", "member_code", required=True, help="Code of the returning member.")
@click.pass_obj
def return_cmd(app: AppContext, code: str, member_code: str) -> None:
    """Return a borrowed copy; late returns penalize the member."""
    from librarian.domain.commands import Return
    from librarian.services.lending import LendingService

    try:
        command = Return(book_code=code, member_code=member_code)
    except ValidationError as exc:
        raise usage_error(exc) from exc
    app.emit(LendingService(app.store_for("return")).return_book(command))
