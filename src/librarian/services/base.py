"""BaseService — abstract foundation for all librarian services.

Every service receives a :class:`LibraryStore` at construction time and
owns its transaction boundaries via ``self._store.transaction()``.
Store failures are caught once, at the service edge, by
:func:`store_errors_as_results`, so every public operation returns a
ServiceResult even when the database does not answer.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Concatenate

from librarian.domain.policy import PenaltyPolicy
from librarian.infrastructure.errors import StoreError, StoreTimeoutError
from librarian.services.result import ErrorCode, ServiceError, ServiceResult

if TYPE_CHECKING:
    from librarian.infrastructure.store import LibraryStore

logger = logging.getLogger(__name__)


class BaseService:
    """Abstract base for all service-layer classes.

    Usage::

        class BookService(BaseService):
            def create(self, command: CreateBook) -> ServiceResult:
                with self._store.transaction() as txn:
                    ...
    """

    def __init__(self, store: LibraryStore) -> None:
        self._store = store

    @property
    def policy(self) -> PenaltyPolicy:
        """Lending rules resolved from the ``[lending]`` config section."""
        return PenaltyPolicy(**self._store.settings.lending.model_dump())


def store_errors_as_results[S: BaseService, **P](
    op: str,
) -> Callable[
    [Callable[Concatenate[S, P], ServiceResult]],
    Callable[Concatenate[S, P], ServiceResult],
]:
    """Decorator: turn a :class:`StoreError` into a failed ServiceResult.

    Timeouts become ``STORE_TIMEOUT`` (retryable); everything else becomes
    ``STORE_UNAVAILABLE``. The operation is never retried here.
    """

    def decorator(
        func: Callable[Concatenate[S, P], ServiceResult],
    ) -> Callable[Concatenate[S, P], ServiceResult]:
        @functools.wraps(func)
        def wrapper(self: S, *args: P.args, **kwargs: P.kwargs) -> ServiceResult:
            try:
                return func(self, *args, **kwargs)
            except StoreError as exc:
                code = (
                    ErrorCode.STORE_TIMEOUT
                    if isinstance(exc, StoreTimeoutError)
                    else ErrorCode.STORE_UNAVAILABLE
                )
                logger.warning("%s failed in the store: %s", op, exc, exc_info=True)
                return ServiceResult.failure(
                    op,
                    ServiceError(code=code, detail={"retryable": exc.retryable}),
                )

        return wrapper

    return decorator
