"""Exceptions raised by the note store.

Every error carries a human-readable message plus a ``details`` dict with the
exact ids/counts involved, so callers can report precisely what happened.
"""
from __future__ import annotations

from typing import Any, Iterable, Optional


class NoteboxError(Exception):
    """Base exception for all note store errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


class ArgumentError(NoteboxError, ValueError):
    """Caller-correctable input, detected before the store is touched."""


class InvalidSortColumn(ArgumentError):
    def __init__(self, column: Any):
        super().__init__(f"invalid sort column: {column!r}", {"column": str(column)})
        self.column = column


class InvalidPage(ArgumentError):
    def __init__(self, limit: int, offset: int, reason: str):
        super().__init__(f"invalid page: {reason}", {"limit": limit, "offset": offset})
        self.limit = limit
        self.offset = offset


class PartialMutation(NoteboxError):
    """A multi-row mutation touched fewer rows than ids requested.

    Rows that were changed stay changed; nothing is rolled back.
    """

    def __init__(self, operation: str, requested: int, succeeded: int):
        super().__init__(
            f"only {succeeded} out of {requested} notes were {operation}",
            {"requested": requested, "succeeded": succeeded},
        )
        self.operation = operation
        self.requested = requested
        self.succeeded = succeeded


class NotFound(NoteboxError, LookupError):
    def __init__(self, ids: Iterable[int]):
        self.ids = list(ids)
        joined = ", ".join(str(i) for i in self.ids)
        super().__init__(f"the following ids did not exist: {joined}", {"ids": self.ids})


class StorageError(NoteboxError):
    """Engine-level I/O or constraint failure."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        details = {}
        if original_error is not None:
            details["original_error"] = str(original_error)[:200]
        super().__init__(message, details)
        self.original_error = original_error


class BatchImportError(NoteboxError):
    """An import stopped part way; ``created_ids`` were stored before ``cause``."""

    def __init__(self, created_ids: list[int], requested: int, cause: Exception):
        super().__init__(
            f"generated ids: {created_ids}, but only {len(created_ids)} of "
            f"{requested} successful: {cause}",
            {"created": len(created_ids), "requested": requested},
        )
        self.created_ids = created_ids
        self.requested = requested
        self.cause = cause
