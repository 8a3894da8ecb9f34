"""Tests for MemberService."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from librarian.domain.commands import CreateMember, UpdateMember
from librarian.infrastructure.store import LibraryStore
from librarian.services.directory import MemberService
from librarian.services.result import ErrorCode

if TYPE_CHECKING:
    from tests.conftest import Seeder


class TestCreateMember:
    def test_create(self, store: LibraryStore, seed: Seeder) -> None:
        result = MemberService(store).create(CreateMember(code="M-1", name="Ada"))
        assert result.ok
        assert result.data == {"code": "M-1"}
        member = seed.get_member("M-1")
        assert member.borrowed_books_count == 0
        assert member.is_penalized is False

    def test_duplicate_conflicts(self, store: LibraryStore, seed: Seeder) -> None:
        seed.member("M-1", name="Ada")
        result = MemberService(store).create(CreateMember(code="M-1", name="Grace"))
        assert result.error is not None
        assert result.error.code == ErrorCode.CONFLICT
        assert seed.get_member("M-1").name == "Ada"


class TestListMembers:
    def test_list(self, store: LibraryStore, seed: Seeder) -> None:
        seed.member("M-1")
        seed.member("M-2")
        result = MemberService(store).list_members()
        assert result.ok
        assert result.data["count"] == 2
        assert result.data["lapsed"] == 0
        assert {item["code"] for item in result.data["items"]} == {"M-1", "M-2"}

    def test_expired_penalties_lapse_and_persist(self, store: LibraryStore, seed: Seeder) -> None:
        now = datetime.now(UTC)
        seed.member("M-1", penalty_until=now - timedelta(hours=1))
        seed.member("M-2", penalty_until=now + timedelta(days=2))

        result = MemberService(store).list_members()
        assert result.data["lapsed"] == 1
        items = {item["code"]: item for item in result.data["items"]}
        assert items["M-1"]["is_penalized"] is False
        assert items["M-1"]["penalty_expiration_date"] is None
        assert items["M-2"]["is_penalized"] is True

        # Persisted, not just hidden in the listing.
        assert seed.get_member("M-1").is_penalized is False
        assert seed.get_member("M-2").is_penalized is True


class TestUpdateMember:
    def test_rename(self, store: LibraryStore, seed: Seeder) -> None:
        seed.member("M-1", name="Ada")
        result = MemberService(store).update("M-1", UpdateMember(name="Ada King"))
        assert result.ok
        assert result.data["fields_changed"] == ["name"]
        assert seed.get_member("M-1").name == "Ada King"

    def test_not_found(self, store: LibraryStore) -> None:
        result = MemberService(store).update("ghost", UpdateMember(name="x"))
        assert result.error is not None
        assert result.error.code == ErrorCode.NOT_FOUND

    def test_code_taken_by_other_member(self, store: LibraryStore, seed: Seeder) -> None:
        seed.member("M-1")
        seed.member("M-2")
        result = MemberService(store).update("M-1", UpdateMember(code="M-2"))
        assert result.error is not None
        assert result.error.code == ErrorCode.CONFLICT

    def test_update_keeps_loan_state(self, store: LibraryStore, seed: Seeder) -> None:
        seed.member("M-1", borrowed_books_count=2)
        MemberService(store).update("M-1", UpdateMember(code="M-9"))
        assert seed.get_member("M-9").borrowed_books_count == 2
