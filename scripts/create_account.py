import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from session_timer.database import Database, resolve_database_path


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a MockMate account with an initial credit balance")
    parser.add_argument("name", help="Display name for the account")
    parser.add_argument("--email", default=None, help="Unique email address")
    parser.add_argument("--credits", type=int, default=0, help="Initial credit balance")
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to TIMER_DB_PATH or data/timer.sqlite3)",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()

    db_env = args.db_path or os.getenv("TIMER_DB_PATH")
    db_path = resolve_database_path(db_env)

    database = Database(db_path)
    database.initialize()

    try:
        account = database.create_account(args.name.strip(), args.email, credits=args.credits)
    except ValueError as exc:  # duplicates, negative credits, etc.
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created account {account.id}: {account.name} <{account.email or 'no email set'}>")
    print(f"Initial balance: {account.credits} credit(s)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
