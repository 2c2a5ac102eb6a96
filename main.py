#!/usr/bin/env python3
"""QuickBrew: keeps per-category news feeds stocked with five-bullet summaries.

This CLI runs the ingestion, summarization and cache-keeper jobs against a
local SQLite store and exposes the read contract for inspection.

Commands:
    ingest           Pull recent articles per category from GNews
    summarize        Summarize the newest unsummarized articles
    keeper           Top up and rebuild every category's feed cache
    all              ingest, summarize and keeper in sequence
    status           Show configuration, store totals and per-category insights
    feed             Print a page of a category's cached feed
    story            Print one summarized article
    seed-categories  Create the default categories in the store

Examples:
    python main.py seed-categories
    python main.py all
    python main.py feed --category tech --limit 5
    python main.py story 42

Environment:
    GNEWS_API_KEY: Needed by ingest
    GROQ_API_KEY: Needed by summarize and keeper top-up
    See config.py for all configuration options
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from config import CATEGORY_NAMES, Config
from database import Database
from observability.logging import setup_logging

logger = logging.getLogger(__name__)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _run_job(coro) -> Any:
    try:
        return asyncio.run(coro)
    except KeyboardInterrupt:
        logger.info("Stopped by user (Ctrl+C)")
        raise


def cmd_ingest(args: argparse.Namespace, config: Config) -> int:
    from pipeline import run_ingest

    stats = _run_job(run_ingest(config))
    _print_json(stats.to_dict())
    return 0


def cmd_summarize(args: argparse.Namespace, config: Config) -> int:
    """Exit code is non-zero when any article failed."""
    from pipeline import run_summarize

    stats = _run_job(run_summarize(config))
    _print_json(stats.to_dict())
    return 1 if stats.fail > 0 else 0


def cmd_keeper(args: argparse.Namespace, config: Config) -> int:
    """Exit code is non-zero when any category aborted."""
    from pipeline import run_keeper

    stats = _run_job(run_keeper(config))
    _print_json(stats.to_dict())
    return 0 if stats.ok else 1


def cmd_all(args: argparse.Namespace, config: Config) -> int:
    from pipeline import run_all

    ingest, summarize, keeper = _run_job(run_all(config))
    _print_json({
        "ingest": ingest.to_dict(),
        "summarize": summarize.to_dict(),
        "keeper": keeper.to_dict(),
    })
    return 0 if summarize.fail == 0 and keeper.ok else 1


def cmd_status(args: argparse.Namespace, config: Config) -> int:
    """Display configuration and store statistics."""
    with Database(config.db_path) as db:
        totals = db.stats()
        insights = db.category_insights(days=config.keeper.window_days)

    status = {
        "config": {
            "summary_model": config.summary_model,
            "gnews_configured": bool(config.gnews_api_key),
            "groq_configured": bool(config.groq_api_key),
            "categories": list(config.category_queries),
            "keeper_min_ready": config.keeper.min_ready,
            "keeper_window_days": config.keeper.window_days,
            "keeper_fallback_days": config.keeper.fallback_days,
            "enable_logfire": config.enable_logfire,
        },
        "database": {"path": str(config.db_path), **totals},
        "categories": insights,
    }
    _print_json(status)
    return 0


def cmd_feed(args: argparse.Namespace, config: Config) -> int:
    with Database(config.db_path) as db:
        page = db.feed_page(args.category, cursor=args.cursor, limit=args.limit)
    if page is None:
        print(f"Unknown category: {args.category}", file=sys.stderr)
        return 1
    _print_json(page.model_dump(mode="json"))
    return 0


def cmd_story(args: argparse.Namespace, config: Config) -> int:
    with Database(config.db_path) as db:
        story = db.get_story(args.id)
    if story is None:
        print(f"Story {args.id} not found or not summarized yet", file=sys.stderr)
        return 1
    _print_json(story.model_dump(mode="json"))
    return 0


def cmd_seed_categories(args: argparse.Namespace, config: Config) -> int:
    names = {slug: CATEGORY_NAMES.get(slug, slug.title()) for slug in config.category_queries}
    with Database(config.db_path) as db:
        created = db.seed_categories(names)
    print(f"Categories created: {created} (configured: {len(names)})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="QuickBrew: news cache keeper",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("ingest", help="Pull recent articles per category")
    subparsers.add_parser("summarize", help="Summarize recent unsummarized articles")
    subparsers.add_parser("keeper", help="Rebuild per-category feed caches")
    subparsers.add_parser("all", help="Run ingest, summarize and keeper")
    subparsers.add_parser("status", help="Show configuration and statistics")
    subparsers.add_parser("seed-categories", help="Create the default categories")

    feed_parser = subparsers.add_parser("feed", help="Show a page of a category feed")
    feed_parser.add_argument(
        "--category",
        required=True,
        help="Category slug (e.g. tech)",
    )
    feed_parser.add_argument(
        "--cursor",
        type=int,
        default=1,
        help="First rank to show (default: 1)",
    )
    feed_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Page size, 1-50 (default: 20)",
    )

    story_parser = subparsers.add_parser("story", help="Show one summarized article")
    story_parser.add_argument("id", type=int, help="Article id")

    return parser


COMMANDS = {
    "ingest": cmd_ingest,
    "summarize": cmd_summarize,
    "keeper": cmd_keeper,
    "all": cmd_all,
    "status": cmd_status,
    "feed": cmd_feed,
    "story": cmd_story,
    "seed-categories": cmd_seed_categories,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Returns:
        Exit code
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command not in COMMANDS:
        parser.print_help()
        return 0

    try:
        config = Config.load()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    if error := config.validate():
        print(f"Configuration error: {error}", file=sys.stderr)
        return 1

    setup_logging(config, verbose=args.verbose)

    try:
        return COMMANDS[args.command](args, config)
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        logger.error("Command failed | cmd=%s error=%s", args.command, e, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
