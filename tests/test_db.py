import pytest
from typer.testing import CliRunner

from notebox.cli import app
from notebox.db import configure, init_db, reset_engine
from notebox.errors import StorageError
from notebox.services import select_notes


@pytest.fixture
def blocked_path(tmp_path, monkeypatch):
    """Database path whose parent directory sits under a regular file."""
    (tmp_path / "file").write_text("not a directory", encoding="utf-8")
    monkeypatch.setenv("NOTE_DB_PATH", str(tmp_path / "file" / "sub" / "notes.db"))
    configure(None)
    reset_engine()
    yield
    configure(None)
    reset_engine()


def test_unusable_directory_is_a_storage_error(blocked_path):
    with pytest.raises(StorageError) as exc:
        init_db()
    assert "original_error" in exc.value.details

    with pytest.raises(StorageError):
        select_notes()


def test_cli_reports_unusable_directory(blocked_path):
    result = CliRunner().invoke(app, ["list"])
    assert result.exit_code == 1
    assert not isinstance(result.exception, OSError)
