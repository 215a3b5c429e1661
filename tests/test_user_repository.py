"""Behavioural tests for the users data-access layer."""

from __future__ import annotations

import logging
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator
from unittest.mock import MagicMock

import pytest

from users_api.database import ConstraintViolation, Database
from users_api.errors import ConflictError, InternalServerError, NotFoundError
from users_api.models import User
from users_api.repository import UserRepository

CREATED = "2024-05-01 09:30:00"


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "users.sqlite3")
    db.initialize()
    return db


@pytest.fixture()
def repository(database: Database) -> UserRepository:
    return UserRepository(database)


def _user(email: str = "ana@x.com", status: str = "active", **overrides: str) -> User:
    fields = {
        "first_name": "Ana",
        "last_name": "Lee",
        "email": email,
        "date_created": CREATED,
        "status": status,
        "password": "p",
    }
    fields.update(overrides)
    return User(**fields)


class _FakeDatabase:
    """Connection provider returning a mocked connection and cursor."""

    def __init__(self) -> None:
        self.cursor = MagicMock()
        self.conn = MagicMock()
        self.conn.cursor.return_value = self.cursor

    @contextmanager
    def connection(self) -> Iterator[MagicMock]:
        yield self.conn


def test_user_lifecycle_round_trip(repository: UserRepository) -> None:
    user = _user()
    assert user.id == 0

    repository.save(user)
    assert user.id == 1

    fetched = User(id=1)
    repository.get(fetched)
    assert fetched == User(
        id=1,
        first_name="Ana",
        last_name="Lee",
        email="ana@x.com",
        date_created=CREATED,
    )

    repository.update(
        User(id=1, first_name="Ana", last_name="Lee2", email="ana@x.com", status="inactive")
    )
    refreshed = User(id=1)
    repository.get(refreshed)
    assert refreshed.last_name == "Lee2"
    assert refreshed.date_created == CREATED

    inactive = repository.find_by_status("inactive")
    assert [(u.id, u.last_name, u.status) for u in inactive] == [(1, "Lee2", "inactive")]

    repository.delete(User(id=1))
    with pytest.raises(NotFoundError):
        repository.get(User(id=1))


def test_reads_never_return_password_or_status_from_get(repository: UserRepository) -> None:
    repository.save(_user(password="hunter2"))

    fetched = User(id=1)
    repository.get(fetched)
    assert fetched.password == ""
    assert fetched.status == ""

    (found,) = repository.find_by_status("active")
    assert found.password == ""
    assert found.status == "active"


def test_get_leaves_unselected_fields_untouched(repository: UserRepository) -> None:
    repository.save(_user())

    target = User(id=1, status="keep-me", password="secret")
    repository.get(target)
    assert target.status == "keep-me"
    assert target.password == "secret"


def test_get_missing_user_raises_not_found(repository: UserRepository) -> None:
    missing = User(id=42)
    with pytest.raises(NotFoundError) as excinfo:
        repository.get(missing)

    assert "42" in excinfo.value.message
    assert excinfo.value.status == 404
    assert missing.first_name == ""


def test_save_duplicate_email_raises_conflict(repository: UserRepository) -> None:
    repository.save(_user())

    duplicate = _user(first_name="Other")
    with pytest.raises(ConflictError) as excinfo:
        repository.save(duplicate)

    assert "ana@x.com" in excinfo.value.message
    assert excinfo.value.status == 409
    assert duplicate.id == 0


def test_update_to_taken_email_raises_conflict(repository: UserRepository) -> None:
    repository.save(_user())
    other = _user(email="ben@x.com", first_name="Ben")
    repository.save(other)

    other.email = "ana@x.com"
    with pytest.raises(ConflictError):
        repository.update(other)


def test_update_does_not_touch_creation_date_or_password(
    repository: UserRepository, database: Database
) -> None:
    repository.save(_user(password="original"))

    changed = _user(email="a@b.c", date_created="1999-01-01 00:00:00", password="changed")
    changed.id = 1
    repository.update(changed)

    with database.connection() as conn:
        row = conn.execute("SELECT date_created, password FROM users WHERE id=1").fetchone()
    assert row["date_created"] == CREATED
    assert row["password"] == "original"


def test_update_unknown_id_is_silent_no_op(repository: UserRepository) -> None:
    repository.update(User(id=999, first_name="Ghost", email="ghost@x.com", status="active"))

    with pytest.raises(NotFoundError):
        repository.get(User(id=999))


def test_delete_unknown_id_is_silent_no_op(repository: UserRepository) -> None:
    repository.save(_user())

    repository.delete(User(id=999))

    still_there = User(id=1)
    repository.get(still_there)
    assert still_there.email == "ana@x.com"


def test_find_by_status_without_matches_raises_not_found(repository: UserRepository) -> None:
    repository.save(_user())

    with pytest.raises(NotFoundError) as excinfo:
        repository.find_by_status("inactive")
    assert excinfo.value.message == "no users matching status inactive"


def test_find_by_status_returns_only_matching_rows(repository: UserRepository) -> None:
    repository.save(_user(email="a@x.com"))
    repository.save(_user(email="b@x.com", status="inactive"))
    repository.save(_user(email="c@x.com"))

    active = repository.find_by_status("active")
    assert sorted(u.email for u in active) == ["a@x.com", "c@x.com"]
    assert all(u.status == "active" for u in active)


def test_closed_database_surfaces_generic_internal_error(
    repository: UserRepository, database: Database, caplog: pytest.LogCaptureFixture
) -> None:
    database.close()

    with caplog.at_level(logging.ERROR, logger="users_api.repository"):
        with pytest.raises(InternalServerError) as excinfo:
            repository.get(User(id=1))

    assert excinfo.value.message == "database error"
    assert excinfo.value.__cause__ is None
    assert excinfo.value.__suppress_context__ is True
    assert any(
        "get user by id" in record.getMessage() and record.exc_info for record in caplog.records
    )


@pytest.mark.parametrize(
    "operation",
    [
        lambda repo: repo.get(User(id=1)),
        lambda repo: repo.save(_user()),
        lambda repo: repo.update(_user()),
        lambda repo: repo.delete(User(id=1)),
        lambda repo: repo.find_by_status("active"),
    ],
)
def test_cursor_is_released_when_execution_fails(operation, caplog: pytest.LogCaptureFixture) -> None:
    fake = _FakeDatabase()
    fake.cursor.execute.side_effect = sqlite3.OperationalError("no such table: users")
    repository = UserRepository(fake)  # type: ignore[arg-type]

    with caplog.at_level(logging.ERROR, logger="users_api.repository"):
        with pytest.raises(InternalServerError) as excinfo:
            operation(repository)

    fake.cursor.close.assert_called_once()
    assert "no such table" not in excinfo.value.message
    assert any("no such table" in str(record.exc_info[1]) for record in caplog.records if record.exc_info)


def test_cursor_is_released_when_row_mapping_fails() -> None:
    fake = _FakeDatabase()
    fake.cursor.fetchall.return_value = [
        {"id": None, "first_name": "x", "last_name": "y", "email": "z", "date_created": "", "status": "active"}
    ]
    repository = UserRepository(fake)  # type: ignore[arg-type]

    with pytest.raises(InternalServerError):
        repository.find_by_status("active")
    fake.cursor.close.assert_called_once()


def test_cursor_is_released_on_success() -> None:
    fake = _FakeDatabase()
    fake.cursor.lastrowid = 7
    repository = UserRepository(fake)  # type: ignore[arg-type]

    user = _user()
    repository.save(user)

    assert user.id == 7
    fake.cursor.close.assert_called_once()


def test_save_without_generated_id_is_internal_error() -> None:
    fake = _FakeDatabase()
    fake.cursor.lastrowid = None
    repository = UserRepository(fake)  # type: ignore[arg-type]

    user = _user()
    with pytest.raises(InternalServerError):
        repository.save(user)
    assert user.id == 0


def test_concurrent_saves_receive_distinct_ids(repository: UserRepository) -> None:
    users = [_user(email=f"user{i}@x.com") for i in range(20)]

    with ThreadPoolExecutor(max_workers=8) as executor:
        list(executor.map(repository.save, users))

    ids = {user.id for user in users}
    assert len(ids) == 20
    assert 0 not in ids
    assert len(repository.find_by_status("active")) == 20


@pytest.mark.parametrize("method", ["save", "update"])
def test_violation_of_other_unique_index_is_internal_error(method: str) -> None:
    fake = _FakeDatabase()
    fake.cursor.execute.side_effect = ConstraintViolation(
        "username_UNIQUE", "UNIQUE constraint failed: users.username"
    )
    repository = UserRepository(fake)  # type: ignore[arg-type]

    with pytest.raises(InternalServerError) as excinfo:
        getattr(repository, method)(_user())

    assert excinfo.value.message == "database error"
    fake.cursor.close.assert_called_once()


@pytest.mark.parametrize("method", ["save", "update"])
def test_violation_of_email_index_is_conflict(method: str) -> None:
    fake = _FakeDatabase()
    fake.cursor.execute.side_effect = ConstraintViolation(
        "email_UNIQUE", "UNIQUE constraint failed: users.email"
    )
    repository = UserRepository(fake)  # type: ignore[arg-type]

    with pytest.raises(ConflictError):
        getattr(repository, method)(_user())
