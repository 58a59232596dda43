#!/usr/bin/env python3
"""Script to wipe the persisted chat state.

Usage:
  python scripts/reset_state.py [--force] [--database-url URL]
"""

import argparse
import os
import sys
from pathlib import Path

# Add project root to sys.path so we can import the frontend package
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

from frontend.core.errors import PersistenceError
from frontend.core.storage import StateStorage


def reset_state(database_url: str, force: bool) -> bool:
    """Delete the stored conversations. Returns True if anything was reset."""
    print("Resetting chat state...")
    storage = StateStorage(database_url)

    state = storage.load()
    if state is None:
        print("  Nothing stored, already clean.")
        return False

    if not force:
        confirm = input(f"  This will delete {len(state.conversations)} conversation(s). Continue? [y/N]: ")
        if confirm.lower() != "y":
            print("  Skipping reset.")
            return False

    try:
        storage.clear()
    except PersistenceError as e:
        print(f"  [ERROR] {e}")
        return False

    print("  [OK] Chat state cleared. A default conversation is created on next start.")
    return True


def main():
    parser = argparse.ArgumentParser(description="Reset MiniChat conversation state.")
    parser.add_argument("--force", "-f", action="store_true", help="Skip confirmation prompt")
    parser.add_argument("--database-url", help="Override DATABASE_URL")
    args = parser.parse_args()

    # Load environment variables
    load_dotenv(project_root / ".env")

    database_url = args.database_url or os.environ.get("DATABASE_URL", "sqlite:///data/minichat.sqlite")
    reset_state(database_url, args.force)
    print("Done!")


if __name__ == "__main__":
    main()
