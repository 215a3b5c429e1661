"""Business rules layered on top of :class:`UserRepository`."""
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Callable, List, Optional

from passlib.context import CryptContext

from .errors import BadRequestError
from .models import STATUS_ACTIVE, STATUS_INACTIVE, User
from .repository import UserRepository

logger = logging.getLogger("users_api.service")

DB_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+$")
_ALLOWED_STATUSES = {STATUS_ACTIVE, STATUS_INACTIVE}

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def now_db_format() -> str:
    return datetime.now(timezone.utc).strftime(DB_DATE_FORMAT)


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def _normalize_email(email: str) -> str:
    normalized = email.strip().lower()
    if not normalized:
        raise BadRequestError("invalid email address")
    if not _EMAIL_PATTERN.match(normalized):
        raise BadRequestError(f"invalid email address: {normalized}")
    return normalized


def _validate_status(status: str) -> str:
    normalized = status.strip().lower()
    if normalized not in _ALLOWED_STATUSES:
        raise BadRequestError(f"invalid status: {status}")
    return normalized


class UsersService:
    """Validate input and apply defaults before delegating to the repository."""

    def __init__(
        self,
        repository: UserRepository,
        *,
        password_hasher: Optional[Callable[[str], str]] = None,
    ) -> None:
        self._repository = repository
        self._hash_password = password_hasher or hash_password

    def create_user(self, user: User) -> User:
        user.first_name = user.first_name.strip()
        user.last_name = user.last_name.strip()
        user.email = _normalize_email(user.email)
        password = user.password.strip()
        if not password:
            raise BadRequestError("invalid password")

        user.status = STATUS_ACTIVE
        user.date_created = now_db_format()
        user.password = self._hash_password(password)

        self._repository.save(user)
        logger.info("Created user %s", user.id)
        return user

    def get_user(self, user_id: int) -> User:
        user = User(id=user_id)
        self._repository.get(user)
        return user

    def update_user(self, user_id: int, changes: User, *, partial: bool) -> User:
        """Apply ``changes`` to an existing user.

        A full update replaces the names and email; a partial update only copies
        the fields that are non-empty. Status is always required: reads never
        load it, so it cannot be carried over from the stored row.
        """
        if not changes.status.strip():
            raise BadRequestError("status is required")
        status = _validate_status(changes.status)

        current = self.get_user(user_id)

        if partial:
            if changes.first_name.strip():
                current.first_name = changes.first_name.strip()
            if changes.last_name.strip():
                current.last_name = changes.last_name.strip()
            if changes.email.strip():
                current.email = _normalize_email(changes.email)
        else:
            current.first_name = changes.first_name.strip()
            current.last_name = changes.last_name.strip()
            current.email = _normalize_email(changes.email)

        current.status = status

        self._repository.update(current)
        logger.info("Updated user %s (partial=%s)", user_id, partial)
        return current

    def delete_user(self, user_id: int) -> None:
        self._repository.delete(User(id=user_id))
        logger.info("Deleted user %s", user_id)

    def search_users(self, status: str) -> List[User]:
        return self._repository.find_by_status(_validate_status(status))


__all__ = ["DB_DATE_FORMAT", "UsersService", "hash_password", "now_db_format"]
