from pathlib import Path
import logging
import os
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel, Session, create_engine
from contextlib import contextmanager

from .errors import StorageError
from .models import NOW_SQL

logger = logging.getLogger(__name__)

_ENGINE = None
_ENGINE_URL = None  # track current engine's URL so we can switch when env changes
_OVERRIDE_PATH: Optional[Path] = None

DB_ENV = "NOTE_DB_PATH"

# Bumps `updated` whenever a note's space, content or pin state changes.
# max() keeps created <= updated for imported notes stamped in the future.
_TRIGGER_SQL = f"""
CREATE TRIGGER IF NOT EXISTS notes_refresh_updated
AFTER UPDATE OF space, content, pinned ON notes
FOR EACH ROW
BEGIN
    UPDATE notes SET updated = max(coalesce(OLD.created, ''), {NOW_SQL})
    WHERE id = OLD.id;
END;
"""


def default_db_path() -> Path:
    data_home = os.getenv("XDG_DATA_HOME")
    base = Path(data_home) if data_home else Path.home() / ".local" / "share"
    return base / "note" / "note.db"


def db_path() -> Path:
    if _OVERRIDE_PATH is not None:
        return _OVERRIDE_PATH
    env_path = os.getenv(DB_ENV)
    if env_path:
        return Path(env_path)
    return default_db_path()


def _compute_url() -> str:
    path = db_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise StorageError("could not create note store directory", original_error=e) from e
    return f"sqlite:///{path}"


def configure(path: Optional[Path]) -> None:
    """Pin the database file for this process (``None`` returns to env lookup)."""
    global _OVERRIDE_PATH
    _OVERRIDE_PATH = Path(path) if path is not None else None


def get_engine():
    global _ENGINE, _ENGINE_URL
    url = _compute_url()
    if _ENGINE is None or _ENGINE_URL != url:
        # swap engine if URL changed (common in tests)
        if _ENGINE is not None:
            _ENGINE.dispose()
        logger.debug("opening note store %s", url)
        _ENGINE = create_engine(url, echo=False)
        _ENGINE_URL = url
    return _ENGINE


def reset_engine():
    """For tests: drop the cached engine so a new NOTE_DB_PATH is picked up."""
    global _ENGINE, _ENGINE_URL
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = None
    _ENGINE_URL = None


def init_db():
    engine = get_engine()
    try:
        SQLModel.metadata.create_all(engine)
        with engine.begin() as conn:
            conn.exec_driver_sql(_TRIGGER_SQL)
    except SQLAlchemyError as e:
        raise StorageError("could not create note store", original_error=e) from e


def get_session():
    # keep objects alive after commit so returned models retain values
    return Session(get_engine(), expire_on_commit=False)


@contextmanager
def session_scope():
    """Commit on success, roll back on error, always close.

    Engine failures surface as ``StorageError``; every other exception
    propagates unchanged.
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise StorageError("note store operation failed", original_error=e) from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
