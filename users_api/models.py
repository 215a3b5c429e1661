"""Domain models for the users service."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Union

STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"


@dataclass
class User:
    """Represents a row of the ``users`` table.

    ``id`` stays ``0`` until the repository has persisted the user. ``password``
    is write-only: no query ever reads it back into an instance.
    """

    id: int = 0
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    date_created: str = ""
    status: str = ""
    password: str = ""

    def marshall(self, public: bool = False) -> Dict[str, Union[int, str]]:
        """Return the serialisable view of the user exposed over HTTP."""

        if public:
            return {"id": self.id, "date_created": self.date_created, "status": self.status}
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "date_created": self.date_created,
            "status": self.status,
        }


__all__ = ["STATUS_ACTIVE", "STATUS_INACTIVE", "User"]
