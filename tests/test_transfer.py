from datetime import datetime, UTC
import io
import json

import pytest
import yaml
from pydantic import ValidationError

from notebox.errors import ArgumentError, BatchImportError
from notebox.models import Note, SortOpts
from notebox.services import add_note, get_note, select_notes
from notebox.transfer import (
    FileFormat, NoteRecord, decode, detect_format, encode, export_records, import_records, load_file,
)


def test_detect_format():
    assert detect_format("notes.json") is FileFormat.JSON
    assert detect_format("notes.YML") is FileFormat.YAML
    assert detect_format("dir/notes.yaml") is FileFormat.YAML
    assert detect_format("notes.txt") is None


def test_record_defaults_and_validation():
    r = NoteRecord(content="only content")
    assert (r.space, r.pinned, r.created, r.id) == ("main", False, None, None)

    with pytest.raises(ValidationError):
        NoteRecord(space="main")
    with pytest.raises(ValidationError):
        NoteRecord(content="x", created="2022-01-02T00:00:00Z", updated="2022-01-01T00:00:00Z")


def test_decode_json_and_yaml():
    text = json.dumps([
        {"space": "work", "content": "a", "pinned": True, "created": "2023-01-01T10:00:00Z"},
        {"content": "b"},
    ])
    records = decode(text, FileFormat.JSON)
    assert [r.content for r in records] == ["a", "b"]
    assert records[0].created == datetime(2023, 1, 1, 10, tzinfo=UTC)

    yaml_text = "- space: work\n  content: c\n- content: d\n  pinned: true\n"
    records = decode(yaml_text, FileFormat.YAML)
    assert [(r.space, r.content, r.pinned) for r in records] == [("work", "c", False), ("main", "d", True)]

    assert decode("", FileFormat.YAML) == []


@pytest.mark.parametrize("text,fmt", [
    ("{not json", FileFormat.JSON),
    ('[{"space": "x"}]', FileFormat.JSON),
    ("- content: [unclosed", FileFormat.YAML),
])
def test_decode_errors_are_argument_errors(text, fmt):
    with pytest.raises(ArgumentError):
        decode(text, fmt)


def test_import_keeps_order_and_timestamps(store):
    records = [
        NoteRecord(space="work", content="first", created=datetime(2020, 1, 1, tzinfo=UTC),
                   updated=datetime(2020, 2, 1, tzinfo=UTC), pinned=True),
        NoteRecord(content="second"),
        NoteRecord(content="first"),  # duplicates are not detected
    ]
    ids = import_records(records)
    assert ids == [1, 2, 3]

    first = get_note(ids[0])
    assert (first.space, first.content, first.pinned) == ("work", "first", True)
    assert first.created == "2020-01-01T00:00:00.000Z"
    assert first.updated == "2020-02-01T00:00:00.000Z"


def test_import_failure_reports_created_ids(store):
    records = [NoteRecord(content="ok 1"), NoteRecord(content="ok 2"),
               NoteRecord(space="bad,space", content="nope"), NoteRecord(content="never")]

    with pytest.raises(BatchImportError) as exc:
        import_records(records)
    assert exc.value.created_ids == [1, 2]
    assert exc.value.requested == 4
    assert isinstance(exc.value.cause, ArgumentError)
    # nothing is rolled back
    assert [n.content for n in select_notes()] == ["ok 1", "ok 2"]


def test_export_then_import_preserves_notes(store, tmp_path):
    add_note(Note(space="main", content="alpha", pinned=True))
    add_note(Note(space="ideas", content="beta"))
    add_note(Note(space=".hidden", content="gamma"))

    exported = export_records(include_hidden=True, sort=SortOpts(column="id"))
    assert [r.id for r in exported] == [1, 2, 3]

    for fmt in FileFormat:
        out = tmp_path / f"notes.{fmt.value}"
        out.write_text(encode(exported, fmt, indent=2), encoding="utf-8")
        again = load_file(out)
        assert [r.model_dump() for r in again] == [r.model_dump() for r in exported]


def test_encode_yaml_is_plain_data():
    rec = NoteRecord(id=4, space="s", content="multi\nline", created=datetime(2024, 1, 1, tzinfo=UTC),
                     updated=datetime(2024, 1, 1, tzinfo=UTC))
    data = yaml.safe_load(encode([rec], FileFormat.YAML))
    assert data[0]["id"] == 4
    assert data[0]["content"] == "multi\nline"
    assert list(data[0]) == ["id", "space", "content", "created", "updated", "pinned"]


def test_load_file_needs_a_format(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("[]", encoding="utf-8")
    with pytest.raises(ArgumentError):
        load_file(path)
    assert load_file(path, FileFormat.JSON) == []

    with pytest.raises(ArgumentError):
        load_file(tmp_path / "missing.json")


def test_load_file_extension_beats_preferred(tmp_path):
    path = tmp_path / "notes.yaml"
    path.write_text("- content: from yaml\n", encoding="utf-8")
    assert [r.content for r in load_file(path, FileFormat.JSON)] == ["from yaml"]


def test_load_file_reads_stdin(monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO("- content: piped\n"))
    with pytest.raises(ArgumentError):
        load_file("-")

    monkeypatch.setattr("sys.stdin", io.StringIO("- content: piped\n"))
    assert [r.content for r in load_file("-", FileFormat.YAML)] == ["piped"]
