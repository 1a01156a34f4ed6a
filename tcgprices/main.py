"""
TCG Price Tracker: Command Line Entrypoint

Configures structlog, creates the async SQLAlchemy engine and runs one
ingestion command to completion.

Run via:
    python -m tcgprices.main catalog
    python -m tcgprices.main prices
    python -m tcgprices.main nightly
    python -m tcgprices.main historical 2024-02-08

Exit code is 0 on success and 1 on any failure.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import date
from typing import Any, Sequence

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tcgprices.config import settings
from tcgprices.pipeline.archive import ArchiveImporter, parse_start_date
from tcgprices.pipeline.catalog import CatalogSeeder
from tcgprices.pipeline.nightly import run_nightly_sync
from tcgprices.pipeline.prices import PriceSeeder
from tcgprices.pipeline.tcgcsv import TcgcsvClient


# ---------------------------------------------------------------------------
# Structlog Configuration
# ---------------------------------------------------------------------------


def _configure_logging(log_level: str = "INFO") -> None:
    """
    Set up structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    # stdlib logging for third-party libraries (httpx, sqlalchemy)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Database Setup
# ---------------------------------------------------------------------------


async def create_db_engine(
    database_url: str,
) -> tuple[Any, async_sessionmaker[AsyncSession]]:
    """
    Create SQLAlchemy async engine and session factory.

    Returns:
        (engine, session_factory) tuple.
    """
    logger = structlog.get_logger(__name__)
    logger.info("database_engine_initializing")

    engine_kwargs: dict[str, Any] = {"echo": False, "pool_pre_ping": True}
    if database_url.startswith("postgresql"):
        engine_kwargs.update(pool_size=5, max_overflow=10)

    engine = create_async_engine(database_url, **engine_kwargs)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    logger.info("database_engine_ready")
    return engine, session_factory


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tcgprices",
        description="Ingest TCGplayer catalog and price data from tcgcsv.com",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("catalog", help="Seed categories, groups and products")
    sub.add_parser("prices", help="Snapshot current prices for every group")
    sub.add_parser("nightly", help="Catalog refresh followed by a price snapshot")

    historical = sub.add_parser(
        "historical", help="Import daily price archives up to yesterday"
    )
    historical.add_argument("start_date", help="First day to import (YYYY-MM-DD)")
    return parser


async def run_command(command: str, start_date: date | None = None) -> None:
    """Run one command against a fresh engine; the engine is always disposed."""
    logger = structlog.get_logger(__name__)

    database_url = settings.require_database_url()
    engine, session_factory = await create_db_engine(database_url)

    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        logger.info("database_health_check_passed")

        async with TcgcsvClient() as client:
            if command == "catalog":
                await CatalogSeeder(session_factory, client).seed()
            elif command == "prices":
                recorded_at = await client.fetch_last_updated_timestamp()
                await PriceSeeder(session_factory, client).seed_prices(recorded_at)
            elif command == "nightly":
                await run_nightly_sync(session_factory, client)
            elif command == "historical":
                assert start_date is not None
                await ArchiveImporter(session_factory, client).run(start_date)
            else:
                raise ValueError(f"Unknown command: {command}")
    finally:
        await engine.dispose()
        logger.info("database_engine_disposed")


def main(argv: Sequence[str] | None = None) -> int:
    """Parse arguments, run the command, return the process exit code."""
    args = build_parser().parse_args(argv)

    _configure_logging(log_level=settings.LOG_LEVEL)
    logger = structlog.get_logger(__name__)
    logger.info(
        "tcgprices_command_start",
        command=args.command,
        environment=settings.ENVIRONMENT,
    )

    try:
        start_date = None
        if args.command == "historical":
            start_date = parse_start_date(args.start_date)
        asyncio.run(run_command(args.command, start_date))
    except KeyboardInterrupt:
        logger.info("tcgprices_interrupted_by_user", command=args.command)
        return 1
    except Exception as e:
        logger.error(
            "tcgprices_command_failed",
            command=args.command,
            error=str(e),
            error_type=type(e).__name__,
        )
        return 1

    logger.info("tcgprices_command_complete", command=args.command)
    return 0


# ---------------------------------------------------------------------------
# CLI Entry
# ---------------------------------------------------------------------------


if __name__ == "__main__":
    sys.exit(main())
