"""HTTP API exposing the users service."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Union

from fastapi import FastAPI, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import Settings, load_settings
from .database import Database, DatabaseUnavailableError
from .errors import RestError
from .models import User
from .repository import UserRepository
from .services import UsersService

logger = logging.getLogger("users_api.api")

UserView = Dict[str, Union[int, str]]


class CreateUserRequest(BaseModel):
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=255)


class UpdateUserRequest(BaseModel):
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    email: str = Field(default="", max_length=255)
    status: str = Field(default="", max_length=32)


def _is_public(x_public: Optional[str]) -> bool:
    return (x_public or "").strip().lower() == "true"


def register_user_routes(app: FastAPI, service: UsersService, database: Database) -> None:
    """Expose the user endpoints on the provided FastAPI application."""

    @app.get("/healthz")
    def healthcheck() -> Dict[str, str]:
        try:
            database.ping()
        except DatabaseUnavailableError as exc:
            logger.error("Health check failed: %s", exc)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="database unavailable",
            ) from exc
        return {"status": "ok"}

    @app.post("/users", status_code=status.HTTP_201_CREATED)
    def create_user(
        request: CreateUserRequest,
        x_public: Optional[str] = Header(default=None),
    ) -> UserView:
        user = User(
            first_name=request.first_name,
            last_name=request.last_name,
            email=request.email,
            password=request.password,
        )
        created = service.create_user(user)
        return created.marshall(_is_public(x_public))

    @app.get("/users/{user_id}")
    def get_user(user_id: int, x_public: Optional[str] = Header(default=None)) -> UserView:
        return service.get_user(user_id).marshall(_is_public(x_public))

    @app.put("/users/{user_id}")
    def replace_user(
        user_id: int,
        request: UpdateUserRequest,
        x_public: Optional[str] = Header(default=None),
    ) -> UserView:
        updated = service.update_user(user_id, _changes(request), partial=False)
        return updated.marshall(_is_public(x_public))

    @app.patch("/users/{user_id}")
    def patch_user(
        user_id: int,
        request: UpdateUserRequest,
        x_public: Optional[str] = Header(default=None),
    ) -> UserView:
        updated = service.update_user(user_id, _changes(request), partial=True)
        return updated.marshall(_is_public(x_public))

    @app.delete("/users/{user_id}")
    def delete_user(user_id: int) -> Dict[str, str]:
        service.delete_user(user_id)
        return {"status": "deleted"}

    @app.get("/internal/users/search")
    def search_users(
        status_value: str = Query(..., alias="status", min_length=1),
        x_public: Optional[str] = Header(default=None),
    ) -> List[UserView]:
        users = service.search_users(status_value)
        public = _is_public(x_public)
        return [user.marshall(public) for user in users]


def _changes(request: UpdateUserRequest) -> User:
    return User(
        first_name=request.first_name,
        last_name=request.last_name,
        email=request.email,
        status=request.status,
    )


async def _rest_error_handler(request: Request, exc: RestError) -> JSONResponse:
    return JSONResponse(status_code=exc.status, content=exc.to_dict())


def create_app(
    *,
    database: Database | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Instantiate the FastAPI application for the users service."""

    if database is None:
        app_settings = settings or load_settings()
        database = Database(app_settings.database_path, timeout=app_settings.database_timeout)
    database.initialize()

    repository = UserRepository(database)
    service = UsersService(repository)

    app = FastAPI(
        title="Users API",
        version="0.1.0",
        description="Create, fetch, update, delete and search user records.",
    )
    app.state.database = database
    app.state.service = service
    app.add_exception_handler(RestError, _rest_error_handler)

    register_user_routes(app, service, database)
    logger.info("Users API ready (database=%s)", database.path)
    return app


__all__ = ["create_app", "register_user_routes"]
