"""Command-line interface for the MockMate session timer service."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Sequence

import httpx

from session_timer.config import load_settings, resolve_config_path
from session_timer.database import Database, resolve_database_path

logger = logging.getLogger("mockmate.timer.main")

_DEFAULT_SERVICE_URL = "http://localhost:8080"


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="MockMate session timer utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the timer database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP timer service")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="Port for the HTTP API (default: 8080)",
    )

    account_parser = subparsers.add_parser("create-account", help="Create an account with a credit balance")
    account_parser.add_argument("name", help="Display name for the account")
    account_parser.add_argument("--email", default=None, help="Optional unique email address")
    account_parser.add_argument("--credits", type=int, default=0, help="Initial credit balance")

    stats_parser = subparsers.add_parser("stats", help="Show timer statistics from a running service")
    stats_parser.add_argument(
        "--service-url",
        default=None,
        help=f"Base URL of a running timer service (default: {_DEFAULT_SERVICE_URL})",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "create-account", "stats"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_database() -> Database:
    settings = load_settings(resolve_config_path(os.getenv("TIMER_CONFIG_PATH")))
    db_path = resolve_database_path(os.getenv("TIMER_DB_PATH"))
    database = Database(db_path, timeout=settings.io_timeout_seconds)
    database.initialize()
    logger.info("Database initialised at %s", db_path)
    return database


def _serve(*, database: Database, host: str, port: int) -> None:
    from session_timer.service import create_app
    import uvicorn

    logger.info("Starting session timer API on http://%s:%s", host, port)
    app = create_app(database=database)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _create_account(database: Database, *, name: str, email: str | None, credits: int) -> int:
    try:
        account = database.create_account(name, email, credits=credits)
    except ValueError as exc:
        print(f"Failed to create account: {exc}")
        return 1
    print(f"Created account {account.id}: {account.name} ({account.credits} credits)")
    return 0


def _show_stats(service_url: str | None) -> int:
    base_url = (service_url or os.getenv("TIMER_SERVICE_URL") or _DEFAULT_SERVICE_URL).rstrip("/")
    headers = {}
    token = os.getenv("TIMER_CLI_TOKEN")
    if token:
        headers["Authorization"] = f"Bearer {token}"

    try:
        response = httpx.get(f"{base_url}/v1/timers/stats", headers=headers, timeout=10.0)
    except httpx.HTTPError as exc:
        print(f"Failed to contact timer service: {exc}")
        return 1

    if response.status_code in (401, 403):
        print("Authentication failed. Set TIMER_CLI_TOKEN to a configured API token.")
        return 1
    if response.status_code != 200:
        print(f"Service responded with {response.status_code}: {response.text.strip()}")
        return 1

    try:
        payload = response.json()
    except ValueError:
        print("Service returned an unexpected response format.")
        return 1

    print(f"Timer loop running: {'yes' if payload.get('is_running') else 'no'}")
    print(f"Active timers: {payload.get('active_timers', 0)}")
    print(f"Total tracked minutes: {payload.get('total_elapsed_minutes', 0)}")
    longest = payload.get("longest_session")
    if longest:
        title = longest.get("job_title") or "untitled"
        print(f"Longest session: {longest.get('session_id')} ({title}, {longest.get('elapsed_minutes')}m)")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)

    if args.command == "stats":
        return _show_stats(args.service_url)

    database = _initialise_database()

    if args.command == "serve":
        _serve(database=database, host=args.host, port=args.port)
    elif args.command == "create-account":
        return _create_account(database, name=args.name, email=args.email, credits=args.credits)
    elif args.command == "init-db":
        print("Database initialisation complete.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
