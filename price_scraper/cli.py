"""Command-line entry point for the price scraper.

Usage:
    # Scrape every 60 seconds until interrupted
    price-scraper --base-api-url https://api.example.com --client-id ID --client-secret SECRET

    # One run, then exit (non-zero exit code if the run failed)
    price-scraper --once

    # Scrape but do not post prices or the run record
    price-scraper --once --dry-run

Every flag falls back to the matching environment variable / .env entry
(API_BASE_URL, CLIENT_ID, CLIENT_SECRET, SCRAPE_INTERVAL_SECONDS, ...).
"""

import argparse
import asyncio
import sys
from typing import List, Optional

import structlog

from price_scraper.config import Settings, settings as default_settings
from price_scraper.core.exceptions import PriceScraperError
from price_scraper.core.logging_setup import configure_logging
from price_scraper.scrapers.orchestrator import ScrapeOrchestrator
from price_scraper.scrapers.scheduler import PeriodicScrapeScheduler


logger = structlog.get_logger("price_scraper")


def parse_args(argv: Optional[List[str]] = None, settings: Settings = default_settings) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list (defaults to sys.argv[1:])
        settings: Settings providing the defaults

    Returns:
        Parsed Namespace object
    """
    parser = argparse.ArgumentParser(
        prog="price-scraper",
        description="Scrape provider prices and report them to the control API.",
    )
    parser.add_argument(
        "-b",
        "--base-api-url",
        default=settings.API_BASE_URL,
        help="Control API base URL (env: API_BASE_URL)",
    )
    parser.add_argument(
        "--client-id",
        default=settings.CLIENT_ID,
        help="Client id used to log in (env: CLIENT_ID)",
    )
    parser.add_argument(
        "--client-secret",
        default=settings.CLIENT_SECRET,
        help="Client secret used to log in (env: CLIENT_SECRET)",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=settings.SCRAPE_INTERVAL_SECONDS,
        metavar="SECONDS",
        help=f"Seconds between runs (default: {settings.SCRAPE_INTERVAL_SECONDS})",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single scrape and exit.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Scrape but do not post prices or the run record (for testing).",
    )
    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=settings.JSON_LOGS,
        help="Emit JSON log lines instead of console output.",
    )

    args = parser.parse_args(argv)

    missing = [
        flag
        for flag, value in (
            ("--base-api-url", args.base_api_url),
            ("--client-id", args.client_id),
            ("--client-secret", args.client_secret),
        )
        if not value
    ]
    if missing:
        parser.error(f"missing required value(s): {', '.join(missing)}")
    if args.interval < 1:
        parser.error("--interval must be at least 1 second")

    return args


def build_orchestrator(args: argparse.Namespace, settings: Settings = default_settings) -> ScrapeOrchestrator:
    """Create the orchestrator, letting CLI flags override settings."""
    return ScrapeOrchestrator.from_settings(
        settings.model_copy(
            update={
                "API_BASE_URL": args.base_api_url.rstrip("/"),
                "CLIENT_ID": args.client_id,
                "CLIENT_SECRET": args.client_secret,
            }
        ),
        dry_run=args.dry_run,
    )


async def main(args: argparse.Namespace) -> int:
    """Main async runner.

    Returns:
        Process exit code
    """
    orchestrator = build_orchestrator(args)

    if args.once:
        try:
            summary = await orchestrator.run()
        except PriceScraperError as e:
            logger.error("scrape_failed", error=e.message)
            return 1
        return 1 if summary.failures else 0

    scheduler = PeriodicScrapeScheduler(orchestrator, interval_seconds=args.interval)
    await scheduler.serve()
    return 0


def run(argv: Optional[List[str]] = None) -> None:
    """Console-script entry point."""
    args = parse_args(argv)
    configure_logging(args.log_level, json_logs=args.json_logs)

    logger.info(
        "price_scraper_starting",
        base_api_url=args.base_api_url,
        interval_seconds=None if args.once else args.interval,
        dry_run=args.dry_run,
    )

    try:
        exit_code = asyncio.run(main(args))
    except KeyboardInterrupt:
        logger.info("interrupted")
        exit_code = 0
    sys.exit(exit_code)


if __name__ == "__main__":
    run()
