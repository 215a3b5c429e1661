"""Command-line interface for the users service."""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from users_api.config import Settings, load_settings
from users_api.database import Database

logger = logging.getLogger("users_api.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Users API utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the YAML configuration (default: USERS_API_CONFIG or config/users.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the users database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP users service")
    serve_parser.add_argument("--host", default=None, help="Bind address (overrides configuration)")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the HTTP API (overrides configuration, default: 8080)",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db"}

    # Global options may precede the subcommand.
    command_index = 0
    while command_index < len(args_list) and args_list[command_index] == "--config":
        command_index += 2

    if command_index >= len(args_list):
        args_list = [*args_list, "serve"]
    else:
        first = args_list[command_index]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = [*args_list[:command_index], "serve", *args_list[command_index:]]

    return parser.parse_args(args_list)


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path, timeout=settings.database_timeout)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(*, database: Database, host: str, port: int, log_level: str) -> None:
    from users_api.api import create_app
    import uvicorn

    logger.info("Starting users API on http://%s:%s", host, port)

    app = create_app(database=database)
    try:
        uvicorn.run(app, host=host, port=port, log_level=log_level.lower())
    finally:
        database.close()


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    args = _parse_args(argv)
    settings = load_settings(Path(args.config) if args.config else None)

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(
            database=database,
            host=args.host or settings.host,
            port=args.port or settings.port,
            log_level=settings.log_level,
        )
    elif args.command == "init-db":
        database.close()
        print("Database initialisation complete.")


if __name__ == "__main__":
    main()
