"""Inbound command values.

Plain data decoded by the boundary layer and handed to one service
operation. Construction validates shape (non-empty codes, non-negative
stock); business rules are checked by the services.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

_CONFIG = ConfigDict(frozen=True, str_strip_whitespace=True)


class CreateBook(BaseModel):
    model_config = _CONFIG

    code: str = Field(min_length=1)
    title: str = Field(min_length=1)
    author: str = Field(min_length=1)
    stock: int = Field(ge=0)


class UpdateBook(BaseModel):
    """Partial update; omitted fields keep their current value."""

    model_config = _CONFIG

    code: str | None = Field(default=None, min_length=1)
    title: str | None = Field(default=None, min_length=1)
    author: str | None = Field(default=None, min_length=1)
    stock: int | None = Field(default=None, ge=0)

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ListBooksFilter(BaseModel):
    model_config = _CONFIG

    min_stock: int | None = Field(default=None, ge=0)


class CreateMember(BaseModel):
    model_config = _CONFIG

    code: str = Field(min_length=1)
    name: str = Field(min_length=1)


class UpdateMember(BaseModel):
    """Partial update; omitted fields keep their current value."""

    model_config = _CONFIG

    code: str | None = Field(default=None, min_length=1)
    name: str | None = Field(default=None, min_length=1)

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class Borrow(BaseModel):
    model_config = _CONFIG

    book_code: str = Field(min_length=1)
    member_code: str = Field(min_length=1)


class Return(BaseModel):
    model_config = _CONFIG

    book_code: str = Field(min_length=1)
    member_code: str = Field(min_length=1)
