from __future__ import annotations

import argparse
import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from dotenv import load_dotenv

from linkfeed.config import Config, load_config
from linkfeed.logging_setup import setup_logging
from linkfeed.logsink.sink import LogSink
from linkfeed.jobs.pipeline import (
    AppContext,
    build_app_context,
    start_background_jobs,
    stop_background_jobs,
)
from linkfeed.query.pagination import LINK_ELLIPSIS, build_page_links


logger = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="linkfeed")
    parser.add_argument(
        "--env",
        default=".env",
        help="Path to .env file (default: .env).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Run the recurring ingest scheduler until interrupted.")
    sub.add_parser("ingest", help="Run one ingest pass now and print the report.")
    sub.add_parser("sweep", help="Delete items older than the retention window.")
    sub.add_parser("init-db", help="Create the item table if it does not exist.")

    p_list = sub.add_parser("list", help="Print one page of stored items.")
    p_list.add_argument("--category", default=None)
    p_list.add_argument("--page", type=int, default=1)
    p_list.add_argument("--page-size", type=int, default=10)
    return parser.parse_args(argv)


async def _serve(ctx: AppContext) -> None:
    await start_background_jobs(ctx)
    logger.info("linkfeed started")
    try:
        await asyncio.Event().wait()
    finally:
        await stop_background_jobs(ctx)
        logger.info("linkfeed stopped")


def _print_page(result, page_links) -> None:
    print(f"page {result.page}/{result.total_pages} ({result.total_items} items, status={result.status})")
    for item in result.items:
        published = datetime.fromtimestamp(item.publish_date, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")
        print(f"- [{published}] {item.title} ({item.source_name})")
        print(f"  {item.link}")
    if page_links:
        labels = [link.label if link.kind == LINK_ELLIPSIS or not link.current else f"[{link.label}]" for link in page_links]
        print(" ".join(labels))


async def _main_async(args: argparse.Namespace, config: Config) -> int:
    ctx = await build_app_context(config)

    if args.command == "run":
        await _serve(ctx)
        return 0

    try:
        if args.command == "ingest":
            report = await ctx.scheduler.run_now()
            print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
            return 1 if report.aborted else 0

        if args.command == "sweep":
            deleted = await ctx.orchestrator.sweep()
            print(f"deleted {deleted} items")
            return 0

        if args.command == "init-db":
            await ctx.storage.ensure_schema()
            return 0

        if args.command == "list":
            result = await ctx.query.list_page(args.category, args.page_size, args.page)
            _print_page(result, build_page_links(result.page, result.total_pages))
            return 0
    finally:
        await ctx.storage.close()

    return 2


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    env_path = Path(args.env)
    if env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv()

    config = load_config()
    setup_logging(config.log_level, LogSink(config.log_sink_config()))

    try:
        return asyncio.run(_main_async(args, config))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
