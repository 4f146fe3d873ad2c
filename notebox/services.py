from __future__ import annotations
from datetime import datetime
from typing import Callable, Iterable, Iterator, Optional
import logging
import re
import threading

from sqlalchemy import delete, insert, not_, update
from sqlmodel import select

from .db import session_scope
from .errors import ArgumentError, InvalidSortColumn, NotFound, PartialMutation
from .models import (
    HIDDEN_PREFIX,
    TRASH_SPACE,
    Note,
    NoteColumn,
    PageOpts,
    SortOpts,
    check_space,
    format_timestamp,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10

_SORT_COLUMNS = {
    NoteColumn.ID: Note.id,
    NoteColumn.SPACE: Note.space,
    NoteColumn.CONTENT: Note.content,
    NoteColumn.CREATED: Note.created,
    NoteColumn.UPDATED: Note.updated,
}


# ---------- query composition ----------

def _space_list(spaces: Optional[Iterable[str]]) -> list[str]:
    if not spaces:
        return []
    if isinstance(spaces, str):
        return [spaces]
    return list(spaces)


def _where_spaces(stmt, spaces: list[str], include_hidden: bool):
    # an explicit space list always wins over the hidden-space policy
    if spaces:
        return stmt.where(Note.space.in_(spaces))
    if not include_hidden:
        return stmt.where(not_(Note.space.startswith(HIDDEN_PREFIX, autoescape=True)))
    return stmt


def _order_by(sort: Optional[SortOpts]) -> list:
    if sort is None:
        return [Note.pinned.desc(), Note.id.asc()]
    column = _SORT_COLUMNS[sort.checked_column()]
    # pinned group leads ascending output and trails descending output
    if sort.ascending:
        return [Note.pinned.desc(), column.asc(), Note.id.asc()]
    return [Note.pinned.asc(), column.desc(), Note.id.desc()]


def select_notes(
    spaces: Optional[Iterable[str]] = None,
    include_hidden: bool = False,
    sort: Optional[SortOpts] = None,
    page: Optional[PageOpts] = None,
) -> list[Note]:
    """
    Return notes filtered by space, ordered and optionally paged.
    - spaces: restrict to exactly these spaces (hidden ones included)
    - include_hidden: with no spaces given, also return dot-prefixed spaces
    - sort: column and direction; pinned notes are grouped at the front
      for ascending order and at the back for descending order
    - page: limit/offset window over the sorted result
    """
    order = _order_by(sort)
    if page is not None:
        page.check()

    stmt = _where_spaces(select(Note), _space_list(spaces), include_hidden)
    stmt = stmt.order_by(*order)
    if page is not None and page.limit > 0:
        stmt = stmt.limit(page.limit).offset(page.offset)

    with session_scope() as s:
        return list(s.exec(stmt))


def get_note(note_id: int) -> Note:
    with session_scope() as s:
        note = s.get(Note, note_id)
    if note is None:
        raise NotFound([note_id])
    return note


def get_notes(ids: Iterable[int]) -> list[Note]:
    """Fetch notes by id, one entry per requested id, in the requested order."""
    ids = _require_ids(ids)
    with session_scope() as s:
        found = {n.id: n for n in s.exec(select(Note).where(Note.id.in_(ids)))}

    missing = [i for i in dict.fromkeys(ids) if i not in found]
    if missing:
        raise NotFound(missing)
    return [found[i] for i in ids]


def select_spaces(include_hidden: bool = False, sort: Optional[SortOpts] = None) -> list[str]:
    """Distinct space names. Only the space column can order this listing."""
    if sort is None:
        sort = SortOpts(NoteColumn.SPACE)
    if sort.checked_column() is not NoteColumn.SPACE:
        raise InvalidSortColumn(sort.column)

    stmt = _where_spaces(select(Note.space).distinct(), [], include_hidden)
    stmt = stmt.order_by(Note.space.asc() if sort.ascending else Note.space.desc())
    with session_scope() as s:
        return list(s.exec(stmt))


# ---------- pagination ----------

def iterate_notes(
    spaces: Optional[Iterable[str]] = None,
    include_hidden: bool = False,
    sort: Optional[SortOpts] = None,
    page_size: int = DEFAULT_PAGE_SIZE,
    cancel: Optional[threading.Event] = None,
) -> Iterator[Note]:
    """Lazily walk every matching note, one page at a time.

    The same sort is used for every page, so the walk is only consistent if
    nothing writes to the matched notes meanwhile. Setting ``cancel`` stops the
    walk before the next note is handed out. A query error is raised from the
    iterator and ends it.
    """
    if page_size < 1:
        raise ArgumentError("page size must be positive", {"page_size": page_size})
    if sort is not None:
        sort.checked_column()
    return _iterate(_space_list(spaces), include_hidden, sort, page_size, cancel)


def _iterate(spaces, include_hidden, sort, page_size, cancel) -> Iterator[Note]:
    page = 0
    while not _cancelled(cancel):
        page_opts = PageOpts(limit=page_size, offset=page * page_size)
        notes = select_notes(spaces, include_hidden, sort, page_opts)
        if not notes:
            return
        for note in notes:
            if _cancelled(cancel):
                logger.debug("note iteration cancelled at page %d", page)
                return
            yield note
        page += 1


def _cancelled(cancel: Optional[threading.Event]) -> bool:
    return cancel is not None and cancel.is_set()


def _matcher(pattern: str, regex: bool, ignore_case: bool) -> Callable[[str], bool]:
    if regex:
        try:
            compiled = re.compile(pattern, re.IGNORECASE if ignore_case else 0)
        except re.error as e:
            raise ArgumentError(f"invalid pattern: {e}", {"pattern": pattern}) from e
        return lambda text: compiled.search(text) is not None
    if ignore_case:
        needle = pattern.casefold()
        return lambda text: needle in text.casefold()
    return lambda text: pattern in text


def find_notes(
    pattern: str,
    *,
    regex: bool = False,
    ignore_case: bool = False,
    spaces: Optional[Iterable[str]] = None,
    include_hidden: bool = False,
    include_trash: bool = False,
    cancel: Optional[threading.Event] = None,
) -> list[Note]:
    """Scan notes for content matching a substring or regular expression.

    Trashed notes are skipped unless ``include_trash`` is set.
    """
    match = _matcher(pattern, regex, ignore_case)
    found = []
    for note in iterate_notes(spaces, include_hidden or include_trash, cancel=cancel):
        if note.space == TRASH_SPACE and not include_trash:
            continue
        if match(note.content):
            found.append(note)
    return found


# ---------- mutations ----------

def _require_ids(ids: Iterable[int]) -> list[int]:
    ids = list(ids)
    if not ids:
        raise ArgumentError("must provide ids")
    return ids


def _timestamp_value(value: str | datetime | None) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return format_timestamp(value)
    try:
        return format_timestamp(parse_timestamp(value))
    except ValueError as e:
        raise ArgumentError(f"invalid timestamp: {value!r}") from e


def add_note(note: Note, assign_timestamps: bool = False) -> int:
    """Insert a note and return its new id.

    Without ``assign_timestamps`` the store stamps created/updated itself.
    With it (bulk import) the note's own timestamps are kept; a missing one
    falls back to the other, and both missing falls back to the store stamp.
    """
    check_space(note.space)
    values = {"space": note.space, "content": note.content, "pinned": bool(note.pinned)}

    if assign_timestamps:
        created = _timestamp_value(note.created)
        updated = _timestamp_value(note.updated)
        created = created or updated
        updated = updated or created
        if created is not None:
            if updated < created:
                raise ArgumentError(
                    "updated must not be earlier than created",
                    {"created": created, "updated": updated},
                )
            values["created"] = created
            values["updated"] = updated

    with session_scope() as s:
        result = s.connection().execute(insert(Note).values(**values))
        new_id = result.inserted_primary_key[0]

    logger.info("added note %s to space %r", new_id, note.space)
    return new_id


def replace_content(note_id: int, content: str) -> None:
    stmt = update(Note).where(Note.id == note_id).values(content=content)
    with session_scope() as s:
        affected = s.connection().execute(stmt).rowcount
    if affected != 1:
        raise NotFound([note_id])
    logger.info("replaced content of note %s", note_id)


def _update_many(operation: str, ids: Iterable[int], **values) -> None:
    ids = _require_ids(ids)
    stmt = update(Note).where(Note.id.in_(ids)).values(**values)
    with session_scope() as s:
        affected = s.connection().execute(stmt).rowcount
    # committed above: a short count is reported, not rolled back
    _verify(operation, len(ids), affected)


def _verify(operation: str, requested: int, affected: int) -> None:
    if affected != requested:
        logger.warning("%s %d of %d notes", operation, affected, requested)
        raise PartialMutation(operation, requested, affected)
    logger.info("%s %d notes", operation, affected)


def move_notes(ids: Iterable[int], to_space: str) -> None:
    check_space(to_space)
    _update_many("moved", ids, space=to_space)


def pin_notes(ids: Iterable[int], pinned: bool = True) -> None:
    _update_many("pinned" if pinned else "unpinned", ids, pinned=bool(pinned))


def remove_notes(ids: Iterable[int]) -> None:
    """Soft delete: move the notes to the trash space."""
    move_notes(ids, TRASH_SPACE)


def permanent_remove_notes(ids: Iterable[int]) -> None:
    ids = _require_ids(ids)
    with session_scope() as s:
        affected = s.connection().execute(delete(Note).where(Note.id.in_(ids))).rowcount
    _verify("deleted", len(ids), affected)


def empty_trash() -> int:
    """Permanently delete every trashed note; returns how many were removed."""
    ids = [n.id for n in select_notes([TRASH_SPACE])]
    if not ids:
        return 0
    permanent_remove_notes(ids)
    return len(ids)
