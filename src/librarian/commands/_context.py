"""AppContext — shared Click context for all commands.

Created once by the root CLI group and flows to all subcommands via
``@click.pass_obj``.  Provides lazy store initialization and centralized
result emission (stdout/stderr routing + exit codes).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, NoReturn

import click

from librarian.output.formatters import OutputSettings, describe_warning, format_result
from librarian.services.result import ErrorCode, ServiceError, ServiceResult

if TYPE_CHECKING:
    from librarian.config.settings import LibrarianSettings
    from librarian.infrastructure.store import LibraryStore

EXIT_INFRASTRUCTURE = 70

EXIT_CODES: dict[ErrorCode, int] = {
    ErrorCode.NOT_FOUND: 3,
    ErrorCode.CONFLICT: 4,
    ErrorCode.BUSINESS_RULE_VIOLATION: 5,
    ErrorCode.STORE_TIMEOUT: EXIT_INFRASTRUCTURE,
    ErrorCode.STORE_UNAVAILABLE: EXIT_INFRASTRUCTURE,
}


def exit_code_for(error: ServiceError | None) -> int:
    """Process exit status for a failed result."""
    if error is None:
        return 1
    return EXIT_CODES.get(error.code, 1)


class AppContext:
    """Shared context flowing through Click's command hierarchy.

    Subcommands access it via ``@click.pass_obj``.  The store is lazily
    initialized on first use so ``--help`` and ``--version`` never
    trigger database access.
    """

    def __init__(self, settings: LibrarianSettings) -> None:
        self.settings = settings
        self._store: LibraryStore | None = None

        # Configure structured logging
        from librarian.config.logging import configure_logging

        configure_logging(verbose=settings.verbose, log_json=settings.log_json)

        # Enable telemetry context var when verbose
        if settings.verbose:
            from librarian.services.telemetry import enable_telemetry

            enable_telemetry()

    def store_for(self, op: str) -> LibraryStore:
        """The store instance (created lazily on first access).

        A database that cannot be opened is reported like any other store
        failure of *op*.
        """
        if self._store is None:
            from librarian.infrastructure.errors import StoreError
            from librarian.infrastructure.store import LibraryStore

            try:
                self._store = LibraryStore(self.settings)
            except StoreError as exc:
                code = ErrorCode.STORE_TIMEOUT if exc.retryable else ErrorCode.STORE_UNAVAILABLE
                self.fail(
                    ServiceResult.failure(
                        op, ServiceError(code=code, detail={"retryable": exc.retryable})
                    )
                )
        return self._store

    def emit(self, result: ServiceResult) -> None:
        """Format and output a ServiceResult with correct exit semantics.

        * Success (``result.ok``): writes to stdout, returns normally.
          Warnings are emitted to stderr so they don't pollute piped output.
        * Failure: writes to stderr, exits with the code mapped from the
          error kind (3 not found, 4 conflict, 5 rule violation,
          70 infrastructure).
        """
        settings = OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )
        output = format_result(result, settings=settings)
        if result.ok:
            click.echo(output)
            # In JSON mode, warnings are already in the serialized payload.
            if not settings.json_output:
                for warning in result.warnings:
                    click.echo(f"WARNING: {describe_warning(warning)}", err=True)
        else:
            click.echo(output, err=True)
            raise SystemExit(exit_code_for(result.error))

    def fail(self, result: ServiceResult) -> NoReturn:
        """Emit a failed result and exit."""
        self.emit(result)
        raise SystemExit(exit_code_for(result.error))

    def close(self) -> None:
        if self._store is not None:
            self._store.close()
            self._store = None
