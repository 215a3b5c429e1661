"""SQLite-backed connection provider for the users table."""
from __future__ import annotations

import enum
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional

INDEX_UNIQUE_EMAIL = "email_UNIQUE"

# Columns covered by a unique index, as SQLite names them in IntegrityError messages.
_UNIQUE_INDEXES: Dict[str, str] = {
    "users.email": INDEX_UNIQUE_EMAIL,
}

_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    first_name TEXT,
    last_name TEXT,
    email TEXT NOT NULL,
    date_created TEXT,
    status TEXT,
    password TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS {INDEX_UNIQUE_EMAIL} ON users(email);
"""


class StorageError(Exception):
    """Base class for failures raised by the connection provider itself."""


class DatabaseUnavailableError(StorageError):
    """Raised when the database is not ready to hand out connections."""


class ConstraintViolation(StorageError):
    """A write was rejected by a unique index."""

    def __init__(self, index: str, detail: str) -> None:
        super().__init__(f"{index}: {detail}")
        self.index = index
        self.detail = detail


class DatabaseState(enum.Enum):
    NEW = "new"
    READY = "ready"
    CLOSED = "closed"


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the users database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "users.sqlite3").resolve(strict=False)


def _violated_index(exc: sqlite3.IntegrityError) -> Optional[str]:
    message = str(exc)
    if "UNIQUE" not in message.upper():
        return None
    for column, index in _UNIQUE_INDEXES.items():
        if column in message or index in message:
            return index
    return None


class Database:
    """Hands out short-lived SQLite connections once the schema is in place.

    Each checkout opens its own connection, so the object can be shared freely
    between threads. The lifecycle is ``NEW -> READY -> CLOSED``.
    """

    def __init__(self, path: Path, *, timeout: float = 5.0) -> None:
        self._path = path
        self._timeout = timeout
        self._state = DatabaseState.NEW
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def state(self) -> DatabaseState:
        return self._state

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, timeout=self._timeout, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def initialize(self) -> None:
        """Create the users table if needed, verify liveness and mark the database ready."""

        with self._lock:
            if self._state is DatabaseState.CLOSED:
                raise DatabaseUnavailableError("Database has been closed")
            _ensure_directory(self._path)
            conn = self._connect()
            try:
                conn.executescript(_SCHEMA)
                conn.commit()
            except sqlite3.Error as exc:
                raise DatabaseUnavailableError(f"Failed to initialise database at {self._path}") from exc
            finally:
                conn.close()
            self._ping()
            self._state = DatabaseState.READY

    def ping(self) -> None:
        """Run a trivial query, raising :class:`DatabaseUnavailableError` on failure."""

        self._require_ready()
        self._ping()

    def _ping(self) -> None:
        try:
            conn = self._connect()
            try:
                conn.execute("SELECT 1").fetchone()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise DatabaseUnavailableError(f"Database at {self._path} is not reachable") from exc

    def close(self) -> None:
        with self._lock:
            self._state = DatabaseState.CLOSED

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Check out a connection for a single operation.

        The transaction is committed when the block exits cleanly and rolled back
        otherwise. Unique index violations surface as :class:`ConstraintViolation`.
        """

        self._require_ready()
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise DatabaseUnavailableError(f"Could not open {self._path}") from exc

        try:
            yield conn
            conn.commit()
        except sqlite3.IntegrityError as exc:
            conn.rollback()
            index = _violated_index(exc)
            if index is None:
                raise
            raise ConstraintViolation(index, str(exc)) from exc
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _require_ready(self) -> None:
        if self._state is not DatabaseState.READY:
            raise DatabaseUnavailableError(f"Database is {self._state.value}, expected ready")


__all__ = [
    "ConstraintViolation",
    "Database",
    "DatabaseState",
    "DatabaseUnavailableError",
    "INDEX_UNIQUE_EMAIL",
    "StorageError",
    "resolve_database_path",
]
