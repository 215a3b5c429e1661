"""Data access for the ``users`` table.

Every operation checks out a connection, runs a single statement through a
cursor that is closed on all exit paths, and converts storage failures into
the classified errors from :mod:`users_api.errors`. The original exception is
only ever logged; callers see a generic ``database error`` for anything that is
not a missing row or a duplicate email.
"""
from __future__ import annotations

import logging
import sqlite3
from contextlib import closing
from typing import List, Optional

from .database import INDEX_UNIQUE_EMAIL, ConstraintViolation, Database, StorageError
from .errors import ConflictError, InternalServerError, NotFoundError
from .models import User

QUERY_INSERT_USER = (
    "INSERT INTO users(first_name, last_name, email, date_created, status, password) "
    "VALUES(?, ?, ?, ?, ?, ?);"
)
QUERY_GET_USER = "SELECT id, first_name, last_name, email, date_created FROM users WHERE id=?;"
QUERY_UPDATE_USER = "UPDATE users SET first_name=?, last_name=?, email=?, status=? WHERE id=?;"
QUERY_DELETE_USER = "DELETE FROM users WHERE id=?;"
QUERY_FIND_USERS_BY_STATUS = (
    "SELECT id, first_name, last_name, email, date_created, status FROM users WHERE status=?;"
)

_DATABASE_ERROR = "database error"

_STORAGE_ERRORS = (sqlite3.Error, StorageError)
# Row mapping failures (missing column, unexpected type) count as storage failures too.
_READ_ERRORS = _STORAGE_ERRORS + (IndexError, KeyError, TypeError, ValueError)


class UserRepository:
    """Translate :class:`User` instances to and from rows."""

    def __init__(self, database: Database, *, logger: Optional[logging.Logger] = None) -> None:
        self._database = database
        self._logger = logger or logging.getLogger("users_api.repository")

    def get(self, user: User) -> None:
        """Load the row for ``user.id`` into ``user``. Status and password are left as-is."""

        loaded: Optional[User] = None
        try:
            with self._database.connection() as conn, closing(conn.cursor()) as cursor:
                cursor.execute(QUERY_GET_USER, (user.id,))
                row = cursor.fetchone()
                if row is not None:
                    loaded = User(
                        id=int(row["id"]),
                        first_name=row["first_name"],
                        last_name=row["last_name"],
                        email=row["email"],
                        date_created=row["date_created"],
                    )
        except _READ_ERRORS as exc:
            self._logger.error("error when trying to get user by id %s", user.id, exc_info=exc)
            raise InternalServerError(_DATABASE_ERROR) from None

        if loaded is None:
            self._logger.info("no user found with id %s", user.id)
            raise NotFoundError(f"user {user.id} not found")

        user.id = loaded.id
        user.first_name = loaded.first_name
        user.last_name = loaded.last_name
        user.email = loaded.email
        user.date_created = loaded.date_created

    def save(self, user: User) -> None:
        """Insert ``user`` and assign the generated identifier to ``user.id``."""

        try:
            with self._database.connection() as conn, closing(conn.cursor()) as cursor:
                cursor.execute(
                    QUERY_INSERT_USER,
                    (
                        user.first_name,
                        user.last_name,
                        user.email,
                        user.date_created,
                        user.status,
                        user.password,
                    ),
                )
                user_id = cursor.lastrowid
        except ConstraintViolation as exc:
            self._logger.error("error when trying to save user", exc_info=exc)
            if exc.index == INDEX_UNIQUE_EMAIL:
                raise ConflictError(f"email {user.email} already exists") from None
            raise InternalServerError(_DATABASE_ERROR) from None
        except _STORAGE_ERRORS as exc:
            self._logger.error("error when trying to save user", exc_info=exc)
            raise InternalServerError(_DATABASE_ERROR) from None

        if not user_id:
            self._logger.error("error when trying to get last insert id after creating a new user")
            raise InternalServerError(_DATABASE_ERROR)
        user.id = int(user_id)

    def update(self, user: User) -> None:
        """Overwrite names, email and status of the row keyed by ``user.id``.

        The affected-row count is not inspected, so an unknown id is a no-op.
        """

        try:
            with self._database.connection() as conn, closing(conn.cursor()) as cursor:
                cursor.execute(
                    QUERY_UPDATE_USER,
                    (user.first_name, user.last_name, user.email, user.status, user.id),
                )
        except ConstraintViolation as exc:
            self._logger.error("error when trying to update user %s", user.id, exc_info=exc)
            if exc.index == INDEX_UNIQUE_EMAIL:
                raise ConflictError(f"email {user.email} already exists") from None
            raise InternalServerError(_DATABASE_ERROR) from None
        except _STORAGE_ERRORS as exc:
            self._logger.error("error when trying to update user %s", user.id, exc_info=exc)
            raise InternalServerError(_DATABASE_ERROR) from None

    def delete(self, user: User) -> None:
        """Remove the row keyed by ``user.id``; an unknown id is a no-op."""

        try:
            with self._database.connection() as conn, closing(conn.cursor()) as cursor:
                cursor.execute(QUERY_DELETE_USER, (user.id,))
        except _STORAGE_ERRORS as exc:
            self._logger.error("error when trying to delete user %s", user.id, exc_info=exc)
            raise InternalServerError(_DATABASE_ERROR) from None

    def find_by_status(self, status: str) -> List[User]:
        """Return all users with ``status``; an empty match raises :class:`NotFoundError`."""

        try:
            with self._database.connection() as conn, closing(conn.cursor()) as cursor:
                cursor.execute(QUERY_FIND_USERS_BY_STATUS, (status,))
                results = [self._row_to_user(row) for row in cursor.fetchall()]
        except _READ_ERRORS as exc:
            self._logger.error("error when trying to find users by status %s", status, exc_info=exc)
            raise InternalServerError(_DATABASE_ERROR) from None

        if not results:
            self._logger.info("no users matching status %s", status)
            raise NotFoundError(f"no users matching status {status}")
        return results

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            first_name=row["first_name"],
            last_name=row["last_name"],
            email=row["email"],
            date_created=row["date_created"],
            status=row["status"],
        )


__all__ = ["UserRepository"]
