"""Operation-specific Rich renderers for ServiceResult.

Each renderer writes to a Rich Console (backed by StringIO).  The caller
extracts the rendered text via ``get_output(console)``.

Renderers are dispatched by ``result.op`` in :func:`render_result`.
Unknown ops fall through to a generic key-value renderer.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.table import Table
from rich.text import Text

from librarian.output.console import create_console, get_output
from librarian.output.formatters import describe_error

if TYPE_CHECKING:
    from rich.console import Console

    from librarian.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich.

    Returns plain text (no ANSI) when Rich detects no terminal,
    which is the case inside Click's CliRunner and piped output.
    """
    console = create_console()

    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)

    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Render minimal output for ``--quiet`` mode."""
    if not result.ok:
        msg = describe_error(result.error) if result.error else "Unknown error"
        return f"ERROR: {result.op} — {msg}"

    items = result.data.get("items")
    if items and isinstance(items, list):
        return "\n".join(str(item.get("code", "")) for item in items)

    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _status_line(console: Console, result: ServiceResult) -> None:
    """Print the OK status line."""
    label = Text("OK", style="lib.ok")
    op = Text(f"  {result.op}", style="lib.op")
    console.print(Text.assemble(label, op))


def _field(console: Console, key: str, value: Any) -> None:
    """Print a single indented key-value field."""
    k = Text(f"  {key}: ", style="lib.key")
    if key == "code" or key.endswith("_code"):
        v = Text(str(value), style="lib.code")
    elif isinstance(value, (dict, list)):
        v = Text(json.dumps(value, separators=(",", ":")))
    else:
        v = Text(str(value))
    console.print(Text.assemble(k, v))


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Print meta block including telemetry span tree (verbose only)."""
    if not result.meta:
        return

    console.print()
    console.print(Text("  meta:", style="dim"))

    for k, v in result.meta.items():
        if k == "telemetry":
            _render_telemetry_tree(console, v, indent=4)
        else:
            console.print(f"    {k}: {v}")


def _render_telemetry_tree(
    console: Console,
    span_data: dict[str, Any],
    indent: int = 4,
) -> None:
    """Render a hierarchical span tree with color-coded timing."""
    prefix = " " * indent
    name = span_data.get("name", "?")
    duration = span_data.get("duration_ms", 0.0)

    if duration > 1000:
        style = "bold red"
    elif duration > 100:
        style = "yellow"
    else:
        style = "dim"

    console.print(f"{prefix}[{style}]{duration:>8.2f}ms[/{style}]  {name}")

    for child in span_data.get("children", []):
        _render_telemetry_tree(console, child, indent=indent + 4)


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = describe_error(err) if err else "Unknown error"
    label = Text("ERROR", style="lib.error")
    op = Text(f"  {result.op}", style="lib.op")
    console.print(Text.assemble(label, op, " — ", msg))

    if verbose and err and err.detail:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            console.print(f"    {k}: {v}")


# ── Mutation renderers ────────────────────────────────────────────────


def _render_mutation(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render create/update/borrow/return results."""
    _status_line(console, result)
    for key, value in result.data.items():
        if value is not None:
            _field(console, key, value)
    if verbose:
        _render_meta(console, result)


# ── Listing renderers ─────────────────────────────────────────────────


def _render_books(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    items = result.data.get("items", [])
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Code", style="lib.code", no_wrap=True)
    table.add_column("Title", style="lib.title")
    table.add_column("Author")
    table.add_column("Stock", justify="right")
    if verbose:
        table.add_column("Created", style="dim")

    for item in items:
        stock = int(item.get("stock", 0))
        row: list[str | Text] = [
            str(item.get("code", "")),
            str(item.get("title", "")),
            str(item.get("author", "")),
            Text(str(stock), style="lib.stock.empty" if stock == 0 else ""),
        ]
        if verbose:
            row.append(str(item.get("created_at", "")))
        table.add_row(*row)

    console.print(table)
    console.print(f"\n{result.data.get('count', len(items))} books")
    if verbose:
        _render_meta(console, result)


def _render_members(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    items = result.data.get("items", [])
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Code", style="lib.code", no_wrap=True)
    table.add_column("Name", style="lib.title")
    table.add_column("Borrowed", justify="right")
    table.add_column("Penalty")

    for item in items:
        if item.get("is_penalized"):
            until = item.get("penalty_expiration_date") or "?"
            penalty = Text(f"until {until}", style="lib.penalized")
        else:
            penalty = Text("clear", style="lib.clear")
        table.add_row(
            str(item.get("code", "")),
            str(item.get("name", "")),
            str(item.get("borrowed_books_count", 0)),
            penalty,
        )

    console.print(table)
    summary = f"\n{result.data.get('count', len(items))} members"
    lapsed = result.data.get("lapsed", 0)
    if lapsed:
        summary += f" ({lapsed} penalties lapsed)"
    console.print(summary)
    if verbose:
        _render_meta(console, result)


# ── Generic fallback ──────────────────────────────────────────────────


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Fallback renderer: status line + all data as key-value pairs."""
    _status_line(console, result)
    for key, value in result.data.items():
        _field(console, key, value)
    if verbose:
        _render_meta(console, result)


# ── Dispatch table ────────────────────────────────────────────────────

_OP_RENDERERS: dict[str, Any] = {
    # Catalog
    "create_book": _render_mutation,
    "update_book": _render_mutation,
    "list_books": _render_books,
    # Directory
    "create_member": _render_mutation,
    "update_member": _render_mutation,
    "list_members": _render_members,
    # Lending
    "borrow": _render_mutation,
    "return": _render_mutation,
    "lapse_penalties": _render_generic,
}
