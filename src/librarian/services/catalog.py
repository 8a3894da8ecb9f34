"""BookService — catalog creation, listing, and in-place updates."""

from __future__ import annotations

from typing import Any

from librarian.domain.commands import CreateBook, ListBooksFilter, UpdateBook
from librarian.domain.entities import Book
from librarian.infrastructure.errors import StoreIntegrityError
from librarian.services._helpers import snapshot, utc_now
from librarian.services.base import BaseService, store_errors_as_results
from librarian.services.result import ServiceError, ServiceResult
from librarian.services.telemetry import traced


class BookService(BaseService):
    """Handles the book catalog."""

    @traced
    @store_errors_as_results("create_book")
    def create(self, command: CreateBook) -> ServiceResult:
        """Add a book. CONFLICT if the code is already catalogued."""
        op = "create_book"
        book = Book(**command.model_dump(), created_at=utc_now())

        try:
            with self._store.transaction() as txn:
                if txn.find_book(book.code) is not None:
                    return ServiceResult.failure(op, ServiceError.conflict("book", book.code))
                created = txn.insert_book(book)
        except StoreIntegrityError:
            # Lost a race with a concurrent create of the same code.
            return ServiceResult.failure(op, ServiceError.conflict("book", book.code))

        return ServiceResult(ok=True, op=op, data={"code": created.code})

    @traced
    @store_errors_as_results("list_books")
    def list_books(self, book_filter: ListBooksFilter | None = None) -> ServiceResult:
        """List books, optionally only those with ``stock >= min_stock``."""
        min_stock = book_filter.min_stock if book_filter is not None else None
        with self._store.snapshot() as txn:
            found = txn.list_books(min_stock=min_stock)

        items = [snapshot(book) for book in found]
        return ServiceResult(
            ok=True,
            op="list_books",
            data={"count": len(items), "items": items},
        )

    @traced
    @store_errors_as_results("update_book")
    def update(self, code: str, command: UpdateBook) -> ServiceResult:
        """Overwrite a book's fields in place.

        NOT_FOUND is checked before CONFLICT: an unknown book is reported
        as missing even if the proposed code is also taken.
        """
        op = "update_book"
        changes: dict[str, Any] = command.changes()

        try:
            with self._store.transaction() as txn:
                existing = txn.find_book(code)
                if existing is None:
                    return ServiceResult.failure(op, ServiceError.not_found("book", code=code))
                assert existing.id is not None

                new_code = changes.get("code", code)
                holder = txn.find_book(new_code)
                if holder is not None and holder.id != existing.id:
                    return ServiceResult.failure(op, ServiceError.conflict("book", new_code))

                fields_changed = [k for k, v in changes.items() if getattr(existing, k) != v]
                txn.update_book(existing.id, **changes)
        except StoreIntegrityError:
            return ServiceResult.failure(
                op, ServiceError.conflict("book", changes.get("code", code))
            )

        return ServiceResult(
            ok=True,
            op=op,
            data={"code": changes.get("code", code), "fields_changed": fields_changed},
        )
