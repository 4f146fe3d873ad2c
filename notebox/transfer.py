"""JSON/YAML note files and their reconciliation with the store."""
from __future__ import annotations
from datetime import datetime, UTC
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional
import logging
import sys

import yaml
from pydantic import BaseModel, TypeAdapter, ValidationError, field_validator, model_validator

from .errors import ArgumentError, BatchImportError, NoteboxError
from .models import DEFAULT_SPACE, Note, PageOpts, SortOpts, format_timestamp
from .services import add_note, select_notes

logger = logging.getLogger(__name__)


class FileFormat(str, Enum):
    JSON = "json"
    YAML = "yaml"


_EXTENSIONS = {
    ".json": FileFormat.JSON,
    ".yml": FileFormat.YAML,
    ".yaml": FileFormat.YAML,
}


class NoteRecord(BaseModel):
    id: Optional[int] = None  # only set on export
    space: str = DEFAULT_SPACE
    content: str
    created: Optional[datetime] = None
    updated: Optional[datetime] = None
    pinned: bool = False

    @field_validator("created", "updated")
    @classmethod
    def _as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @model_validator(mode="after")
    def _created_before_updated(self) -> "NoteRecord":
        if self.created and self.updated and self.updated < self.created:
            raise ValueError("updated must not be earlier than created")
        return self

    @classmethod
    def from_note(cls, note: Note) -> "NoteRecord":
        return cls(
            id=note.id,
            space=note.space,
            content=note.content,
            created=note.created_at,
            updated=note.updated_at,
            pinned=note.pinned,
        )

    def to_note(self) -> Note:
        return Note(
            space=self.space,
            content=self.content,
            pinned=self.pinned,
            created=format_timestamp(self.created) if self.created else None,
            updated=format_timestamp(self.updated) if self.updated else None,
        )


_RECORDS = TypeAdapter(list[NoteRecord])
STDIN_PATH = Path("-")


def detect_format(path: Path | str) -> Optional[FileFormat]:
    return _EXTENSIONS.get(Path(path).suffix.lower())


def decode(text: str, fmt: FileFormat) -> list[NoteRecord]:
    try:
        if fmt is FileFormat.JSON:
            return _RECORDS.validate_json(text)
        data = yaml.safe_load(text)
        return _RECORDS.validate_python(data if data is not None else [])
    except (ValidationError, yaml.YAMLError) as e:
        raise ArgumentError(f"could not decode {fmt.value.upper()} notes: {e}") from e


def encode(records: list[NoteRecord], fmt: FileFormat, indent: Optional[int] = None) -> str:
    if fmt is FileFormat.JSON:
        return _RECORDS.dump_json(records, indent=indent).decode("utf-8")
    payload = _RECORDS.dump_python(records, mode="json")
    return yaml.safe_dump(payload, sort_keys=False, allow_unicode=True, indent=indent or 4)


def load_file(path: Path, preferred: Optional[FileFormat] = None) -> list[NoteRecord]:
    """Read a note file, ``-`` meaning stdin.

    The extension decides the format; ``preferred`` is used for stdin and for
    files whose extension says nothing.
    """
    path = Path(path)
    if path == STDIN_PATH:
        if preferred is None:
            raise ArgumentError("a file format must be chosen when reading stdin")
        return decode(sys.stdin.read(), preferred)
    fmt = detect_format(path) or preferred
    if fmt is None:
        raise ArgumentError("could not determine file format", {"path": str(path)})
    if not path.exists():
        raise ArgumentError("file does not exist", {"path": str(path)})
    return decode(path.read_text(encoding="utf-8"), fmt)


def import_records(records: Iterable[NoteRecord]) -> list[int]:
    """Add records in order with their own timestamps; returns the new ids.

    Nothing is rolled back if a record fails: the error lists what was created.
    """
    records = list(records)
    ids: list[int] = []
    for record in records:
        try:
            ids.append(add_note(record.to_note(), assign_timestamps=True))
        except NoteboxError as e:
            logger.error("import stopped after %d of %d notes", len(ids), len(records))
            raise BatchImportError(ids, len(records), e) from e
    logger.info("imported %d notes", len(ids))
    return ids


def export_records(
    spaces: Optional[Iterable[str]] = None,
    include_hidden: bool = False,
    sort: Optional[SortOpts] = None,
    page: Optional[PageOpts] = None,
) -> list[NoteRecord]:
    return [NoteRecord.from_note(n) for n in select_notes(spaces, include_hidden, sort, page)]
