"""
TCG Price Tracker: Catalog Seeding (categories, groups, products)

Reconciles upstream catalog data into the database with idempotent bulk
upserts keyed on TCGplayer IDs. The incoming row always wins: there is no
modified_on comparison, any re-ingestion overwrites the stored fields.

Flow:
    1. Fetch supported categories, upsert them.
    2. For each category, fetch and upsert its groups (failure aborts the run).
    3. For each category, fetch products for every group in parallel.
       A failing group is logged and skipped; the others continue.
    4. Write products in batches: upsert product rows, upsert presale info,
       replace extended data. A failing batch aborts the run.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Sequence

import structlog
from pydantic import ValidationError
from sqlalchemy import delete, insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tcgprices.config import BATCH_SIZE, CONCURRENCY_LIMIT, EXTENDED_DATA_CHUNK_SIZE
from tcgprices.errors import UpstreamError
from tcgprices.models.catalog import (
    ExtendedData,
    PresaleInfo,
    Product,
    ProductCategory,
    ProductGroup,
)
from tcgprices.pipeline.tcgcsv import (
    TcgcsvCategory,
    TcgcsvClient,
    TcgcsvGroup,
    TcgcsvProduct,
)
from tcgprices.utils.batching import GroupFetchResult, chunk, run_bounded
from tcgprices.utils.db import excluded_columns, upsert_insert

logger = structlog.get_logger(__name__)

CATEGORY_UPDATE_COLUMNS = ["name", "display_name", "modified_on"]
GROUP_UPDATE_COLUMNS = [
    "name",
    "abbreviation",
    "is_supplemental",
    "published_on",
    "modified_on",
    "category_id",
]
PRODUCT_UPDATE_COLUMNS = [
    "name",
    "clean_name",
    "card_number",
    "image_url",
    "category_id",
    "group_id",
    "url",
    "modified_on",
    "image_count",
]
PRESALE_UPDATE_COLUMNS = ["is_presale", "released_on", "note"]


@dataclass
class CatalogSummary:
    """Counts reported at the end of a catalog run."""

    categories: int = 0
    groups: int = 0
    products: int = 0
    failed_groups: list[int] = field(default_factory=list)
    elapsed_seconds: float = 0.0


class CatalogSeeder:
    """
    Seeds categories, groups, and products from tcgcsv.com.

    Usage:
        async with TcgcsvClient() as client:
            summary = await CatalogSeeder(session_factory, client).seed()
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: TcgcsvClient,
        concurrency: int = CONCURRENCY_LIMIT,
        batch_size: int = BATCH_SIZE,
        extended_data_chunk_size: int = EXTENDED_DATA_CHUNK_SIZE,
    ):
        self.session_factory = session_factory
        self.client = client
        self.concurrency = concurrency
        self.batch_size = batch_size
        self.extended_data_chunk_size = extended_data_chunk_size

    # -----------------------------------------------------------------------
    # Upserts
    # -----------------------------------------------------------------------

    async def upsert_categories(
        self, session: AsyncSession, categories: Sequence[TcgcsvCategory]
    ) -> int:
        if not categories:
            return 0

        stmt = upsert_insert(session, ProductCategory).values(
            [
                {
                    "category_id": c.category_id,
                    "name": c.name,
                    "display_name": c.display_name,
                    "modified_on": c.modified_on,
                }
                for c in categories
            ]
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["category_id"],
            set_=excluded_columns(stmt, CATEGORY_UPDATE_COLUMNS),
        )
        await session.execute(stmt)
        return len(categories)

    async def upsert_groups(
        self, session: AsyncSession, groups: Sequence[TcgcsvGroup]
    ) -> int:
        if not groups:
            return 0

        stmt = upsert_insert(session, ProductGroup).values(
            [
                {
                    "group_id": g.group_id,
                    "name": g.name,
                    "abbreviation": g.abbreviation,
                    "is_supplemental": g.is_supplemental,
                    "published_on": g.published_on,
                    "modified_on": g.modified_on,
                    "category_id": g.category_id,
                }
                for g in groups
            ]
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["group_id"],
            set_=excluded_columns(stmt, GROUP_UPDATE_COLUMNS),
        )
        await session.execute(stmt)
        return len(groups)

    async def upsert_products(
        self, session: AsyncSession, products: Sequence[TcgcsvProduct]
    ) -> int:
        if not products:
            return 0

        stmt = upsert_insert(session, Product).values(
            [
                {
                    "product_id": p.product_id,
                    "name": p.name,
                    "clean_name": p.clean_name,
                    "card_number": p.card_number,
                    "image_url": p.image_url,
                    "category_id": p.category_id,
                    "group_id": p.group_id,
                    "url": p.url,
                    "modified_on": p.modified_on,
                    "image_count": p.image_count,
                }
                for p in products
            ]
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["product_id"],
            set_=excluded_columns(stmt, PRODUCT_UPDATE_COLUMNS),
        )
        await session.execute(stmt)
        return len(products)

    async def upsert_presale_info(
        self, session: AsyncSession, products: Sequence[TcgcsvProduct]
    ) -> int:
        rows = [
            {
                "product_id": p.product_id,
                "is_presale": p.presale_info.is_presale,
                "released_on": p.presale_info.released_on,
                "note": p.presale_info.note,
            }
            for p in products
            if p.presale_info is not None
        ]
        if not rows:
            return 0

        stmt = upsert_insert(session, PresaleInfo).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["product_id"],
            set_=excluded_columns(stmt, PRESALE_UPDATE_COLUMNS),
        )
        await session.execute(stmt)
        return len(rows)

    async def replace_extended_data(
        self, session: AsyncSession, products: Sequence[TcgcsvProduct]
    ) -> int:
        """
        Delete every extended data row for these products, then insert the
        freshly fetched set. Attributes dropped upstream disappear here too.
        """
        product_ids = [p.product_id for p in products]
        if not product_ids:
            return 0

        await session.execute(
            delete(ExtendedData).where(ExtendedData.product_id.in_(product_ids))
        )

        rows = [
            {
                "product_id": p.product_id,
                "name": ext.name,
                "display_name": ext.display_name,
                "value": ext.value,
            }
            for p in products
            for ext in p.extended_data
        ]
        for rows_chunk in chunk(rows, self.extended_data_chunk_size):
            await session.execute(insert(ExtendedData).values(rows_chunk))
        return len(rows)

    async def write_product_batch(
        self, session: AsyncSession, products: Sequence[TcgcsvProduct]
    ) -> None:
        """Products first: presale info and extended data reference them."""
        await self.upsert_products(session, products)
        await self.upsert_presale_info(session, products)
        await self.replace_extended_data(session, products)

    # -----------------------------------------------------------------------
    # Orchestration
    # -----------------------------------------------------------------------

    async def _fetch_group_products(
        self, category_id: int, group: TcgcsvGroup
    ) -> GroupFetchResult[TcgcsvGroup, TcgcsvProduct]:
        try:
            products = await self.client.fetch_products_for_group(
                category_id, group.group_id
            )
            return GroupFetchResult(group=group, items=products)
        except (UpstreamError, ValidationError) as e:
            logger.warning(
                "catalog_group_products_fetch_failed",
                category_id=category_id,
                group_id=group.group_id,
                group_name=group.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return GroupFetchResult(group=group, error=e)

    async def seed_category_products(
        self,
        category: TcgcsvCategory,
        groups: Sequence[TcgcsvGroup],
        summary: CatalogSummary,
    ) -> int:
        """Fetch and write every product of one category. Returns products written."""
        category_start = time.perf_counter()
        logger.info(
            "catalog_category_products_start",
            category_id=category.category_id,
            category=category.display_name or category.name,
            groups=len(groups),
        )

        results = await run_bounded(
            list(groups),
            lambda g: self._fetch_group_products(category.category_id, g),
            self.concurrency,
        )
        summary.failed_groups.extend(r.group.group_id for r in results if not r.ok)
        all_products = [p for r in results for p in r.items]

        logger.info(
            "catalog_category_products_fetched",
            category_id=category.category_id,
            products=len(all_products),
            failed_groups=sum(1 for r in results if not r.ok),
        )
        if not all_products:
            return 0

        batches = chunk(all_products, self.batch_size)
        for batch_idx, batch in enumerate(batches, start=1):
            batch_start = time.perf_counter()
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        await self.write_product_batch(session, batch)
            except Exception as e:
                logger.error(
                    "catalog_batch_failed",
                    category_id=category.category_id,
                    batch=batch_idx,
                    batches=len(batches),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

            elapsed = time.perf_counter() - batch_start
            summary.products += len(batch)
            logger.info(
                "catalog_batch_complete",
                category_id=category.category_id,
                batch=batch_idx,
                batches=len(batches),
                products=len(batch),
                seconds=round(elapsed, 2),
                products_per_second=round(len(batch) / elapsed) if elapsed > 0 else None,
            )

        logger.info(
            "catalog_category_products_complete",
            category_id=category.category_id,
            products=len(all_products),
            seconds=round(time.perf_counter() - category_start, 2),
        )
        return len(all_products)

    async def seed(self) -> CatalogSummary:
        """
        Run a full catalog pass.

        Returns:
            CatalogSummary with categories, groups and products written.
        """
        start = time.perf_counter()
        summary = CatalogSummary()

        categories = await self.client.fetch_categories()
        if not categories:
            logger.warning("catalog_no_categories")
            return summary

        async with self.session_factory() as session:
            async with session.begin():
                summary.categories = await self.upsert_categories(session, categories)
        for category in categories:
            logger.info(
                "catalog_category_upserted",
                category_id=category.category_id,
                category=category.display_name or category.name,
            )

        groups_by_category: dict[int, list[TcgcsvGroup]] = {}
        for category in categories:
            try:
                groups = await self.client.fetch_groups_for_category(category.category_id)
                groups_by_category[category.category_id] = groups
                if not groups:
                    logger.info("catalog_no_groups", category_id=category.category_id)
                    continue

                async with self.session_factory() as session:
                    async with session.begin():
                        summary.groups += await self.upsert_groups(session, groups)
            except Exception as e:
                logger.error(
                    "catalog_groups_failed",
                    category_id=category.category_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

        for category in categories:
            await self.seed_category_products(
                category, groups_by_category.get(category.category_id, []), summary
            )

        summary.elapsed_seconds = round(time.perf_counter() - start, 2)
        logger.info(
            "catalog_seed_complete",
            categories=summary.categories,
            groups=summary.groups,
            products=summary.products,
            failed_groups=len(summary.failed_groups),
            seconds=summary.elapsed_seconds,
            products_per_second=(
                round(summary.products / summary.elapsed_seconds)
                if summary.elapsed_seconds > 0
                else None
            ),
        )
        return summary
