from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, UTC
from enum import Enum
from typing import Optional

from sqlalchemy import text
from sqlmodel import Field, SQLModel

from .errors import ArgumentError, InvalidPage, InvalidSortColumn

DEFAULT_SPACE = "main"
TRASH_SPACE = ".trash"
HIDDEN_PREFIX = "."

# ISO-8601 UTC with milliseconds; identical layout on both sides keeps
# lexicographic order equal to chronological order.
NOW_SQL = "strftime('%Y-%m-%dT%H:%M:%fZ', 'now')"


class NoteColumn(str, Enum):
    ID = "id"
    SPACE = "space"
    CONTENT = "content"
    CREATED = "created"
    UPDATED = "updated"


class Note(SQLModel, table=True):
    __tablename__ = "notes"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    space: str = Field(default=DEFAULT_SPACE, index=True)
    created: Optional[str] = Field(
        default=None, sa_column_kwargs={"server_default": text(f"({NOW_SQL})")}
    )
    updated: Optional[str] = Field(
        default=None, sa_column_kwargs={"server_default": text(f"({NOW_SQL})")}
    )
    content: str
    pinned: bool = Field(default=False, sa_column_kwargs={"server_default": text("0")})

    @property
    def created_at(self) -> Optional[datetime]:
        return parse_timestamp(self.created) if self.created else None

    @property
    def updated_at(self) -> Optional[datetime]:
        return parse_timestamp(self.updated) if self.updated else None


@dataclass(frozen=True)
class SortOpts:
    column: NoteColumn | str = NoteColumn.ID
    ascending: bool = True

    def checked_column(self) -> NoteColumn:
        """Return the column as a ``NoteColumn`` or raise ``InvalidSortColumn``."""
        try:
            return NoteColumn(self.column)
        except ValueError:
            raise InvalidSortColumn(self.column) from None


@dataclass(frozen=True)
class PageOpts:
    """``limit=0`` means no limit; an offset is only allowed with a limit."""

    limit: int = 0
    offset: int = 0

    def check(self) -> None:
        if self.limit < 0:
            raise InvalidPage(self.limit, self.offset, "limit must not be negative")
        if self.offset < 0:
            raise InvalidPage(self.limit, self.offset, "offset must not be negative")
        if self.offset > 0 and self.limit == 0:
            raise InvalidPage(self.limit, self.offset, "offset requires a limit")


def check_space(space: str) -> str:
    if not space or not space.strip():
        raise ArgumentError("space must not be empty")
    if "," in space:
        raise ArgumentError("space cannot contain the character ','", {"space": space})
    return space


def format_timestamp(value: datetime) -> str:
    # naive values are taken as UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
