import threading

import pytest

from notebox import services
from notebox.errors import ArgumentError, InvalidSortColumn, StorageError
from notebox.models import TRASH_SPACE, Note, SortOpts
from notebox.services import add_note, find_notes, iterate_notes, remove_notes


def _add(content, space="main", pinned=False):
    return add_note(Note(space=space, content=content, pinned=pinned))


def test_iterates_every_note_exactly_once(store):
    ids = [_add(f"n{i}", pinned=i % 7 == 0) for i in range(23)]

    seen = [n.id for n in iterate_notes(sort=SortOpts(column="id"), page_size=10)]
    assert len(seen) == 23
    assert sorted(seen) == ids


def test_iteration_fetches_pages_lazily(store, monkeypatch):
    for i in range(25):
        _add(str(i))

    calls = []
    real = services.select_notes

    def counting(*args, **kwargs):
        calls.append(args[3])
        return real(*args, **kwargs)

    monkeypatch.setattr(services, "select_notes", counting)
    it = iterate_notes(page_size=10)
    assert calls == []

    next(it)
    assert len(calls) == 1
    list(it)
    # three full/partial pages plus the empty page that ends the walk
    assert [p.offset for p in calls] == [0, 10, 20, 30]


def test_empty_store_terminates(store):
    assert list(iterate_notes()) == []


def test_cancel_event_stops_iteration(store):
    for i in range(15):
        _add(str(i))

    cancel = threading.Event()
    taken = []
    for note in iterate_notes(page_size=4, cancel=cancel):
        taken.append(note.id)
        if len(taken) == 6:
            cancel.set()
    assert len(taken) == 6


def test_abandoned_iterator_can_be_closed(store):
    for i in range(5):
        _add(str(i))
    it = iterate_notes(page_size=2)
    next(it)
    it.close()
    with pytest.raises(StopIteration):
        next(it)


def test_query_error_is_raised_once_and_ends_iteration(store, monkeypatch):
    for i in range(15):
        _add(str(i))

    real = services.select_notes

    def failing(spaces, include_hidden, sort, page):
        if page.offset > 0:
            raise StorageError("disk went away")
        return real(spaces, include_hidden, sort, page)

    monkeypatch.setattr(services, "select_notes", failing)
    it = iterate_notes(page_size=10)
    got = [next(it) for _ in range(10)]
    assert len(got) == 10

    with pytest.raises(StorageError):
        next(it)
    with pytest.raises(StopIteration):
        next(it)


def test_bad_arguments_fail_eagerly(store):
    with pytest.raises(ArgumentError):
        iterate_notes(page_size=0)
    with pytest.raises(InvalidSortColumn):
        iterate_notes(sort=SortOpts(column="nope"))


def test_iterate_respects_hidden_policy(store):
    _add("a")
    _add("b", space=".secret")
    assert [n.content for n in iterate_notes()] == ["a"]
    assert {n.content for n in iterate_notes(include_hidden=True)} == {"a", "b"}


def test_find_substring_and_case(store):
    _add("Buy milk")
    _add("call mom")
    _add("MILK again", space="errands")

    assert [n.content for n in find_notes("milk")] == ["Buy milk"]
    assert [n.content for n in find_notes("milk", ignore_case=True)] == ["Buy milk", "MILK again"]


def test_find_regex(store):
    _add("ticket ABC-123")
    _add("no ticket here")
    assert [n.content for n in find_notes(r"[A-Z]+-\d+", regex=True)] == ["ticket ABC-123"]

    with pytest.raises(ArgumentError):
        find_notes("(unclosed", regex=True)


def test_find_skips_trash_unless_asked(store):
    keep = _add("needle one")
    gone = _add("needle two")
    _add("needle three", space=".hidden")
    remove_notes([gone])

    assert [n.id for n in find_notes("needle")] == [keep]
    assert {n.content for n in find_notes("needle", include_hidden=True)} == {"needle one", "needle three"}

    with_trash = find_notes("needle", include_trash=True)
    assert gone in {n.id for n in with_trash}
    assert any(n.space == TRASH_SPACE for n in with_trash)
