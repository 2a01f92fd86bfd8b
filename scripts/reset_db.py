#!/usr/bin/env python3
"""Script to reset the chat history database.

Usage:
  python scripts/reset_db.py [--force]
"""

import argparse
import sys
from pathlib import Path

from dotenv import load_dotenv

from brewbot.core.database import Base, get_engine, init_db

project_root = Path(__file__).parent.parent


def reset_sqlite(force: bool, database_url: str | None) -> bool:
    """Drop and recreate SQLite tables. Returns False if skipped."""
    print("Resetting SQLite database...")
    if not force:
        confirm = input("  This will delete all chat history. Continue? [y/N]: ")
        if confirm.lower() != "y":
            print("  Skipping SQLite reset.")
            return False

    init_db(database_url)
    engine = get_engine()
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    print("  SQLite tables dropped and recreated.")
    return True


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Reset the brewbot chat history database.")
    parser.add_argument("--force", "-f", action="store_true", help="Skip confirmation prompt")
    parser.add_argument("--database-url", help="Override DATABASE_URL")
    args = parser.parse_args(argv)

    load_dotenv(project_root / ".env")

    reset_sqlite(args.force, args.database_url)
    print("Done!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
