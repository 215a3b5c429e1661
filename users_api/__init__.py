"""Core utilities for the users service."""

from __future__ import annotations

from typing import Any

from .database import Database, resolve_database_path
from .models import User
from .repository import UserRepository


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP application."""

    from .api import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "Database",
    "User",
    "UserRepository",
    "create_app",
    "resolve_database_path",
]
