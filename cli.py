import argparse
import asyncio
import json
from dataclasses import asdict

from assessment_api.config import INACTIVE_SESSION_DAYS, LOG_LEVEL, MAX_ACTIVE_SESSIONS_PER_USER
from assessment_api.database import AsyncSessionLocal, init_db
from assessment_api.services.session_maintenance_service import SessionManager
from core.logging_setup import setup_console_logging

setup_console_logging(LOG_LEVEL)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Auth session maintenance")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("cleanup", help="Remove expired and inactive sessions")

    inactive = sub.add_parser("inactive", help="Remove sessions unused for a number of days")
    inactive.add_argument(
        "--days",
        type=int,
        default=INACTIVE_SESSION_DAYS,
        help="Inactivity threshold in days",
    )

    limit = sub.add_parser("limit", help="Cap the live sessions of one user")
    limit.add_argument("user_id", type=int, help="User whose sessions to trim")
    limit.add_argument(
        "--max",
        type=int,
        default=MAX_ACTIVE_SESSIONS_PER_USER,
        help="Number of most recently used sessions to keep",
    )

    sub.add_parser("stats", help="Print session counts")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace, manager: SessionManager) -> dict[str, object]:
    if args.command == "cleanup":
        return await manager.perform_maintenance_cleanup()
    if args.command == "inactive":
        return {"inactive_cleaned": await manager.cleanup_inactive_sessions(args.days)}
    if args.command == "limit":
        return {"removed": await manager.limit_user_sessions(args.user_id, args.max)}
    return asdict(await manager.get_session_stats())


async def _main(args: argparse.Namespace) -> dict[str, object]:
    await init_db()
    return await run(args, SessionManager(AsyncSessionLocal))


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    result = asyncio.run(_main(args))
    print(json.dumps(result, indent=2))


if __name__ == "__main__":
    main()
