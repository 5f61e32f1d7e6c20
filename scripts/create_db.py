"""
create_db.py

Creates or rebuilds the SQLite database used by the home win poller
and the status API.

Safe to re-run: every table is created with IF NOT EXISTS.
Use --rebuild to start from an empty file (drops game history,
subscribers and the email audit log).
"""

import argparse
from pathlib import Path

from app.config import CONFIG
from app.db import GameStore


def rebuild_database(db_path: Path) -> None:
    """
    Delete the existing database file (if it exists).
    """
    if db_path.exists():
        db_path.unlink()


def create_tables(db_path: Path) -> None:
    store = GameStore.open(db_path)
    store.close()


def parse_arguments() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Create or rebuild the home win SQLite database schema"
    )

    parser.add_argument(
        "--db",
        type=str,
        default=str(CONFIG.db_path),
        help="Path to SQLite database file"
    )

    parser.add_argument(
        "--rebuild",
        action="store_true",
        help="Delete existing database file before creating tables"
    )

    parser.add_argument(
        "--subscriber",
        action="append",
        default=[],
        help="Email to subscribe after creating tables (repeatable)"
    )

    return parser.parse_args()


def main() -> None:
    args = parse_arguments()
    db_path = Path(args.db)

    if args.rebuild:
        rebuild_database(db_path)

    create_tables(db_path)

    if args.subscriber:
        store = GameStore.open(db_path)
        try:
            for email in args.subscriber:
                ok, message = store.add_subscriber(email)
                print(f"{email}: {message}")
        finally:
            store.close()

    print("Database schema created successfully.")
    print("Database path:", str(db_path.resolve()))


if __name__ == "__main__":
    main()
