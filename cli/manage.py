"""Operator CLI: run a sync cycle or inspect a user without the web server."""

from __future__ import annotations

import argparse
import asyncio
import sys

import httpx
from aiogram import Bot

from reposter.config import Settings
from reposter.database import create_engine, create_schema, ensure_sqlite_directory
from reposter.exceptions import ConfigurationError
from reposter.main import build_pipeline, configure_logging
from reposter.services.account_service import describe_user_status
from reposter.telegram.bot import format_status


async def run_once(settings: Settings) -> int:
    """Run a single polling cycle and print a summary. Returns an exit code."""
    ensure_sqlite_directory(settings.database_url)
    engine, session_factory = create_engine(settings)
    await create_schema(engine)
    bot = Bot(token=settings.telegram_bot_token)
    try:
        async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as http_client:
            pipeline = build_pipeline(settings, session_factory, http_client, bot)
            cycle = await pipeline.run_cycle()
    finally:
        await bot.session.close()
        await engine.dispose()

    print(f"Cycle complete: {len(cycle.users)} user(s) processed")
    for result in cycle.users:
        if result.skipped:
            print(f"  {result.telegram_id}: skipped (in flight)")
            continue
        line = (
            f"  {result.telegram_id}: fetched={result.fetched} admitted={result.admitted} "
            f"delivered={len(result.delivered_post_ids)} failed={len(result.failed_post_ids)}"
        )
        if result.error:
            line += f" error={result.error}"
        print(line)
    return 1 if cycle.failed_users else 0


async def show_status(settings: Settings, telegram_id: int) -> int:
    """Print the eligibility read model for one user. Returns an exit code."""
    engine, session_factory = create_engine(settings)
    try:
        await create_schema(engine)
        async with session_factory() as session:
            status = await describe_user_status(session, telegram_id)
    finally:
        await engine.dispose()

    if status is None:
        print(f"Error: no user with telegram id {telegram_id}")
        return 1
    print(format_status(status))
    print(f"Eligible: {'yes' if status.eligible else 'no'}")
    return 0


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="reposter-manage",
        description="Operate the Threads to Telegram reposter",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser(
        "run-once",
        help="Run one sync cycle and exit (requires RUN_SCHEDULER=false; "
        "never run beside a server whose scheduler is live)",
    )
    status_parser = subparsers.add_parser("status", help="Show a user's sync status")
    status_parser.add_argument("telegram_id", type=int, help="Telegram user id")

    args = parser.parse_args()
    settings = Settings()
    configure_logging(args.debug or settings.debug)

    if args.command == "run-once":
        try:
            settings.validate_runtime_config()
        except ConfigurationError as exc:
            print(f"Error: {exc}")
            sys.exit(1)
        if settings.run_scheduler:
            print(
                "Error: run-once bypasses the server scheduler's per-user lock. "
                "Stop the scheduler and set RUN_SCHEDULER=false to run a manual cycle."
            )
            sys.exit(1)
        sys.exit(asyncio.run(run_once(settings)))
    elif args.command == "status":
        sys.exit(asyncio.run(show_status(settings, args.telegram_id)))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
