"""
TCG Price Tracker: Price Seeding (live and archive)

Appends one ProductPrice row per (product, subtype) per run. Rows are never
updated: re-running with the same recorded_at appends duplicates, so callers
pick recorded_at deliberately (upstream last-updated time for live runs,
midnight UTC of the archive day for historical ones).

Each batch runs in its own transaction:
    1. Insert the batch's distinct (product_id, sub_type_name) pairs into
       product_subtype, ignoring ones that already exist.
    2. Re-read subtype IDs for the batch's product IDs.
    3. Build price rows; rows whose subtype did not resolve are dropped.
    4. Insert price rows. Null prices stay null.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from datetime import date, datetime, time as dt_time, timezone
from pathlib import Path
from typing import Sequence

import structlog
from pydantic import ValidationError
from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tcgprices.config import BATCH_SIZE, CONCURRENCY_LIMIT, SUPPORTED_CATEGORY_IDS
from tcgprices.errors import TCGPriceError, UpstreamError
from tcgprices.models.catalog import Product, ProductGroup
from tcgprices.models.price import ProductPrice, ProductSubtype
from tcgprices.pipeline.tcgcsv import TcgcsvClient, TcgcsvPrice, parse_envelope
from tcgprices.utils.batching import GroupFetchResult, chunk, run_bounded
from tcgprices.utils.db import upsert_insert

logger = structlog.get_logger(__name__)

ARCHIVE_PRICES_FILENAME = "prices"


@dataclass
class BatchResult:
    inserted: int = 0
    unresolved: int = 0


@dataclass
class PriceSeedSummary:
    """Outcome of one price run."""

    recorded_at: datetime | None = None
    inserted: int = 0
    missing_products: int = 0
    unresolved_subtypes: int = 0
    failed_groups: list[int] = field(default_factory=list)
    batches: int = 0
    elapsed_seconds: float = 0.0

    @property
    def rate(self) -> float | None:
        """Inserted rows per second, None when nothing was timed."""
        if self.elapsed_seconds <= 0:
            return None
        return round(self.inserted / self.elapsed_seconds, 1)


@dataclass
class GroupRef:
    """The slice of a product_group row needed to fetch its prices."""

    group_id: int
    category_id: int | None
    name: str


def _naive_utc(value: datetime) -> datetime:
    """product_subtype timestamps are stored without a zone, in UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def archive_recorded_at(day: date) -> datetime:
    return datetime.combine(day, dt_time.min, tzinfo=timezone.utc)


def load_archive_prices(
    root: Path,
    day: date,
    category_ids: Sequence[int] = SUPPORTED_CATEGORY_IDS,
) -> tuple[list[TcgcsvPrice], list[int]]:
    """
    Read every {root}/{day}/{category}/{group}/prices file for the given
    categories. Each file holds the same envelope the live endpoint returns.

    Categories missing on disk are skipped silently; unreadable or malformed
    group files are logged and reported back as failed group IDs.

    Returns:
        (prices, failed_group_ids)
    """
    day_dir = Path(root) / day.isoformat()
    prices: list[TcgcsvPrice] = []
    failed: list[int] = []

    for category_id in category_ids:
        category_dir = day_dir / str(category_id)
        if not category_dir.is_dir():
            logger.info(
                "archive_category_missing",
                day=day.isoformat(),
                category_id=category_id,
            )
            continue

        group_dirs = sorted(
            (p for p in category_dir.iterdir() if p.is_dir() and p.name.isdigit()),
            key=lambda p: int(p.name),
        )
        for group_dir in group_dirs:
            prices_file = group_dir / ARCHIVE_PRICES_FILENAME
            if not prices_file.is_file():
                continue
            try:
                results = parse_envelope(json.loads(prices_file.read_text("utf-8")))
                prices.extend(TcgcsvPrice.model_validate(r) for r in results)
            except (OSError, ValueError, TCGPriceError, ValidationError) as e:
                logger.warning(
                    "archive_group_read_failed",
                    day=day.isoformat(),
                    category_id=category_id,
                    group_id=int(group_dir.name),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                failed.append(int(group_dir.name))

    return prices, failed


class PriceSeeder:
    """
    Writes price snapshots for the whole catalog.

    Usage:
        async with TcgcsvClient() as client:
            summary = await PriceSeeder(session_factory, client).seed_prices()
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: TcgcsvClient | None = None,
        concurrency: int = CONCURRENCY_LIMIT,
        batch_size: int = BATCH_SIZE,
    ):
        self.session_factory = session_factory
        self.client = client
        self.concurrency = concurrency
        self.batch_size = batch_size

    # -----------------------------------------------------------------------
    # Batch write
    # -----------------------------------------------------------------------

    async def write_batch(
        self,
        session: AsyncSession,
        prices: Sequence[TcgcsvPrice],
        recorded_at: datetime,
    ) -> BatchResult:
        """Resolve subtypes and append price rows for one batch."""
        if not prices:
            return BatchResult()

        if recorded_at.tzinfo is not None:
            recorded_at = recorded_at.astimezone(timezone.utc)
        seen_at = _naive_utc(recorded_at)
        pairs = list(dict.fromkeys((p.product_id, p.sub_type_name) for p in prices))

        stmt = upsert_insert(session, ProductSubtype).values(
            [
                {
                    "product_id": product_id,
                    "sub_type_name": sub_type_name,
                    "first_seen_at": seen_at,
                    "last_seen_at": seen_at,
                }
                for product_id, sub_type_name in pairs
            ]
        )
        stmt = stmt.on_conflict_do_nothing(
            index_elements=["product_id", "sub_type_name"]
        )
        await session.execute(stmt)

        product_ids = list({product_id for product_id, _ in pairs})
        rows = await session.execute(
            select(
                ProductSubtype.id,
                ProductSubtype.product_id,
                ProductSubtype.sub_type_name,
            ).where(ProductSubtype.product_id.in_(product_ids))
        )
        subtype_ids = {
            (row.product_id, row.sub_type_name): row.id for row in rows.all()
        }

        price_rows = []
        unresolved = 0
        for price in prices:
            subtype_id = subtype_ids.get((price.product_id, price.sub_type_name))
            if subtype_id is None:
                logger.warning(
                    "price_subtype_unresolved",
                    product_id=price.product_id,
                    sub_type_name=price.sub_type_name,
                )
                unresolved += 1
                continue
            price_rows.append(
                {
                    "product_subtype_id": subtype_id,
                    "recorded_at": recorded_at,
                    "low_price": price.low_price,
                    "mid_price": price.mid_price,
                    "high_price": price.high_price,
                    "market_price": price.market_price,
                    "direct_low_price": price.direct_low_price,
                }
            )

        if price_rows:
            await session.execute(insert(ProductPrice).values(price_rows))

        return BatchResult(inserted=len(price_rows), unresolved=unresolved)

    async def _write_all(
        self,
        prices: Sequence[TcgcsvPrice],
        recorded_at: datetime,
        summary: PriceSeedSummary,
    ) -> None:
        batches = chunk(prices, self.batch_size)
        logger.info(
            "price_batches_start",
            records=len(prices),
            batches=len(batches),
            batch_size=self.batch_size,
        )

        for batch_idx, batch in enumerate(batches, start=1):
            batch_start = time.perf_counter()
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        result = await self.write_batch(session, batch, recorded_at)
            except Exception as e:
                logger.error(
                    "price_batch_failed",
                    batch=batch_idx,
                    batches=len(batches),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

            summary.inserted += result.inserted
            summary.unresolved_subtypes += result.unresolved
            summary.batches += 1

            elapsed = time.perf_counter() - batch_start
            logger.info(
                "price_batch_complete",
                batch=batch_idx,
                batches=len(batches),
                records=len(batch),
                inserted=result.inserted,
                seconds=round(elapsed, 2),
                records_per_second=round(len(batch) / elapsed) if elapsed > 0 else None,
            )

    # -----------------------------------------------------------------------
    # Live mode
    # -----------------------------------------------------------------------

    async def _load_groups(self) -> list[GroupRef]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(
                    ProductGroup.group_id,
                    ProductGroup.category_id,
                    ProductGroup.name,
                ).order_by(ProductGroup.group_id)
            )
            return [
                GroupRef(group_id=r.group_id, category_id=r.category_id, name=r.name)
                for r in result.all()
            ]

    async def _fetch_group_prices(
        self, group: GroupRef
    ) -> GroupFetchResult[GroupRef, TcgcsvPrice]:
        assert self.client is not None
        if group.category_id is None:
            error = ValueError(f"group {group.group_id} has no category")
            logger.warning(
                "price_group_without_category",
                group_id=group.group_id,
                group_name=group.name,
            )
            return GroupFetchResult(group=group, error=error)

        try:
            prices = await self.client.fetch_prices_for_group(
                group.category_id, group.group_id
            )
            return GroupFetchResult(group=group, items=prices)
        except (UpstreamError, ValidationError) as e:
            logger.warning(
                "price_group_fetch_failed",
                group_id=group.group_id,
                group_name=group.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return GroupFetchResult(group=group, error=e)

    async def seed_prices(self, recorded_at: datetime | None = None) -> PriceSeedSummary:
        """
        Snapshot current prices for every group in the database.

        Args:
            recorded_at: Timestamp stamped on every row. Defaults to the
                upstream last-updated time.
        """
        if self.client is None:
            raise TCGPriceError("Live price seeding requires a TcgcsvClient")

        start = time.perf_counter()
        if recorded_at is None:
            recorded_at = await self.client.fetch_last_updated_timestamp()
        summary = PriceSeedSummary(recorded_at=recorded_at)
        logger.info("price_seed_start", recorded_at=recorded_at.isoformat())

        groups = await self._load_groups()
        if not groups:
            logger.warning("price_seed_no_groups")
            return summary
        logger.info("price_seed_groups_loaded", groups=len(groups))

        results = await run_bounded(groups, self._fetch_group_prices, self.concurrency)
        summary.failed_groups = [r.group.group_id for r in results if not r.ok]
        all_prices = [p for r in results for p in r.items]

        logger.info(
            "price_seed_fetched",
            records=len(all_prices),
            failed_groups=len(summary.failed_groups),
        )
        if all_prices:
            await self._write_all(all_prices, recorded_at, summary)
        else:
            logger.info("price_seed_nothing_to_write")

        summary.elapsed_seconds = round(time.perf_counter() - start, 2)
        logger.info(
            "price_seed_complete",
            inserted=summary.inserted,
            unresolved_subtypes=summary.unresolved_subtypes,
            failed_groups=len(summary.failed_groups),
            batches=summary.batches,
            seconds=summary.elapsed_seconds,
            records_per_second=summary.rate,
        )
        return summary

    # -----------------------------------------------------------------------
    # Archive mode
    # -----------------------------------------------------------------------

    async def _existing_product_ids(self, product_ids: Sequence[int]) -> set[int]:
        existing: set[int] = set()
        async with self.session_factory() as session:
            for ids in chunk(list(product_ids), self.batch_size):
                result = await session.execute(
                    select(Product.product_id).where(Product.product_id.in_(ids))
                )
                existing.update(result.scalars().all())
        return existing

    async def seed_prices_from_archive(self, root: Path, day: date) -> PriceSeedSummary:
        """
        Import one extracted archive day.

        Prices for products that are not in the catalog are dropped and
        counted as missing_products; they are never fatal.
        """
        start = time.perf_counter()
        recorded_at = archive_recorded_at(day)
        summary = PriceSeedSummary(recorded_at=recorded_at)

        prices, failed = await asyncio.to_thread(load_archive_prices, Path(root), day)
        summary.failed_groups = failed
        logger.info(
            "archive_prices_loaded",
            day=day.isoformat(),
            records=len(prices),
            failed_groups=len(failed),
        )
        if not prices:
            return summary

        known = await self._existing_product_ids({p.product_id for p in prices})
        kept = [p for p in prices if p.product_id in known]
        summary.missing_products = len(prices) - len(kept)
        if summary.missing_products:
            logger.warning(
                "archive_prices_missing_products",
                day=day.isoformat(),
                dropped=summary.missing_products,
                missing_product_ids=len({p.product_id for p in prices} - known),
            )

        if kept:
            await self._write_all(kept, recorded_at, summary)

        summary.elapsed_seconds = round(time.perf_counter() - start, 2)
        logger.info(
            "archive_prices_complete",
            day=day.isoformat(),
            inserted=summary.inserted,
            missing_products=summary.missing_products,
            unresolved_subtypes=summary.unresolved_subtypes,
            seconds=summary.elapsed_seconds,
        )
        return summary
