import pytest

from notebox.db import configure, init_db, reset_engine


@pytest.fixture
def store(tmp_path, monkeypatch):
    """Fresh note store in a temp dir for every test."""
    db_file = tmp_path / "notes.sqlite"
    monkeypatch.setenv("NOTE_DB_PATH", str(db_file))
    monkeypatch.delenv("NOTE_SPACE", raising=False)
    configure(None)
    reset_engine()
    init_db()
    yield db_file
    configure(None)
    reset_engine()
