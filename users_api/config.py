"""Configuration management for the users service."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from .database import resolve_database_path

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the database, HTTP server and logging."""

    database_path: Path
    database_timeout: float = 5.0
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from the raw YAML mapping."""
        database = _section(data, "database")
        server = _section(data, "server")

        raw_path = database.get("path")
        if raw_path:
            candidate = Path(str(raw_path)).expanduser()
            if not candidate.is_absolute() and base_path is not None:
                candidate = base_path / candidate
            database_path = candidate.resolve(strict=False)
        else:
            database_path = resolve_database_path(None)

        try:
            timeout = float(database.get("timeout", 5.0))
            port = int(server.get("port", 8080))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid numeric setting: {exc}") from exc
        if timeout <= 0:
            raise ValueError("database.timeout must be positive")
        if not 1 <= port <= 65535:
            raise ValueError("server.port must be between 1 and 65535")

        log_level = str(data.get("log_level", "INFO")).upper()
        if log_level not in _LOG_LEVELS:
            raise ValueError(f"Unknown log_level '{log_level}'")

        return Settings(
            database_path=database_path,
            database_timeout=timeout,
            host=str(server.get("host", "0.0.0.0")),
            port=port,
            log_level=log_level,
        )


def _section(data: Mapping[str, object], key: str) -> Dict[str, object]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError(f"Configuration section '{key}' must be a mapping")
    return value


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (Path(__file__).resolve().parent.parent / "config" / "users.yaml").resolve(strict=False)


def load_settings(config_path: Path | None = None) -> Settings:
    """Load settings from YAML, letting ``USERS_API_DB_PATH`` override the database path.

    A missing configuration file is not an error; defaults are used instead.
    """
    path = config_path or resolve_config_path(os.getenv("USERS_API_CONFIG"))
    raw: Dict[str, object] = {}
    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
        if not isinstance(raw, dict):
            raise ValueError("Configuration file must contain a mapping at the top level")

    settings = Settings.from_dict(raw, base_path=path.parent)

    env_db_path = os.getenv("USERS_API_DB_PATH")
    if env_db_path:
        settings = replace(settings, database_path=resolve_database_path(env_db_path))
    return settings


__all__ = ["Settings", "load_settings", "resolve_config_path"]
