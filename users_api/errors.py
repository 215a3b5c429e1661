"""Classified errors shared by the repository, service and HTTP layers."""
from __future__ import annotations

from typing import Dict, Union


class RestError(Exception):
    """Base error carrying a caller-safe message and an HTTP status."""

    status: int = 500
    error: str = "internal_server_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Union[str, int]]:
        return {"message": self.message, "status": self.status, "error": self.error}


class BadRequestError(RestError):
    status = 400
    error = "bad_request"


class NotFoundError(RestError):
    status = 404
    error = "not_found"


class ConflictError(RestError):
    status = 409
    error = "conflict"


class InternalServerError(RestError):
    status = 500
    error = "internal_server_error"


__all__ = [
    "BadRequestError",
    "ConflictError",
    "InternalServerError",
    "NotFoundError",
    "RestError",
]
