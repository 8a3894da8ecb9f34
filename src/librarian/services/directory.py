"""MemberService — member registration, listing, and updates.

Listing doubles as the penalty-lapse trigger: expired penalties are
cleared (and committed) before the members are read, so a listing never
shows a penalty whose window has passed.
"""

from __future__ import annotations

from typing import Any

import structlog

from librarian.domain.commands import CreateMember, UpdateMember
from librarian.domain.entities import Member
from librarian.infrastructure.errors import StoreIntegrityError
from librarian.services._helpers import snapshot, utc_now
from librarian.services.base import BaseService, store_errors_as_results
from librarian.services.result import ServiceError, ServiceResult
from librarian.services.telemetry import trace_span, traced

log = structlog.get_logger(__name__)


class MemberService(BaseService):
    """Handles the member directory."""

    @traced
    @store_errors_as_results("create_member")
    def create(self, command: CreateMember) -> ServiceResult:
        """Register a member with no loans and no penalty."""
        op = "create_member"
        member = Member(code=command.code, name=command.name, created_at=utc_now())

        try:
            with self._store.transaction() as txn:
                if txn.find_member(member.code) is not None:
                    return ServiceResult.failure(op, ServiceError.conflict("member", member.code))
                created = txn.insert_member(member)
        except StoreIntegrityError:
            return ServiceResult.failure(op, ServiceError.conflict("member", member.code))

        return ServiceResult(ok=True, op=op, data={"code": created.code})

    @traced
    @store_errors_as_results("list_members")
    def list_members(self) -> ServiceResult:
        """Lapse expired penalties, then list every member."""
        now = utc_now()
        with trace_span("lapse"), self._store.transaction() as txn:
            lapsed = txn.lapse_penalties(now)
        if lapsed:
            log.info("penalties.lapsed", count=lapsed, trigger="list_members")

        with self._store.snapshot() as txn:
            found = txn.list_members()

        items = [snapshot(member) for member in found]
        return ServiceResult(
            ok=True,
            op="list_members",
            data={"count": len(items), "items": items, "lapsed": lapsed},
        )

    @traced
    @store_errors_as_results("update_member")
    def update(self, code: str, command: UpdateMember) -> ServiceResult:
        """Overwrite a member's code and/or name.

        NOT_FOUND first, then CONFLICT when a *different* member already
        holds the proposed code.
        """
        op = "update_member"
        changes: dict[str, Any] = command.changes()

        try:
            with self._store.transaction() as txn:
                existing = txn.find_member(code)
                if existing is None:
                    return ServiceResult.failure(op, ServiceError.not_found("member", code=code))
                assert existing.id is not None

                new_code = changes.get("code", code)
                holder = txn.find_member(new_code)
                if holder is not None and holder.id != existing.id:
                    return ServiceResult.failure(op, ServiceError.conflict("member", new_code))

                fields_changed = [k for k, v in changes.items() if getattr(existing, k) != v]
                txn.update_member(existing.id, **changes)
        except StoreIntegrityError:
            return ServiceResult.failure(
                op, ServiceError.conflict("member", changes.get("code", code))
            )

        return ServiceResult(
            ok=True,
            op=op,
            data={"code": changes.get("code", code), "fields_changed": fields_changed},
        )
