import argparse
import getpass
import sys
from dataclasses import replace
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from users_api.config import load_settings
from users_api.database import Database, resolve_database_path
from users_api.errors import RestError
from users_api.models import User
from users_api.repository import UserRepository
from users_api.services import UsersService


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a user record")
    parser.add_argument("first_name", help="Given name of the user")
    parser.add_argument("last_name", help="Family name of the user")
    parser.add_argument("email", help="Unique email address")
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (overrides the configured database path)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the YAML configuration (default: USERS_API_CONFIG or config/users.yaml)",
    )
    return parser.parse_args(argv)


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if not password.strip():
            print("Password must not be empty.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main(argv=None) -> int:
    args = parse_args(argv)
    password = prompt_for_password()

    settings = load_settings(Path(args.config) if args.config else None)
    if args.db_path:
        settings = replace(settings, database_path=resolve_database_path(args.db_path))
    database = Database(settings.database_path, timeout=settings.database_timeout)
    database.initialize()

    service = UsersService(UserRepository(database))
    user = User(first_name=args.first_name, last_name=args.last_name, email=args.email, password=password)

    try:
        service.create_user(user)
    except RestError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    finally:
        database.close()

    print(f"Created user #{user.id}: {user.first_name} {user.last_name} <{user.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
