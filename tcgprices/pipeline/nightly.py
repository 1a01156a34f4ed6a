"""
TCG Price Tracker: Nightly Sync

Two sequential steps: refresh the catalog, then snapshot prices at the
upstream last-updated time. Prices reference subtypes of catalog products,
so a catalog failure stops the run before any price is written.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tcgprices.errors import SyncStepError
from tcgprices.pipeline.catalog import CatalogSeeder, CatalogSummary
from tcgprices.pipeline.prices import PriceSeedSummary, PriceSeeder
from tcgprices.pipeline.tcgcsv import TcgcsvClient

logger = structlog.get_logger(__name__)


@dataclass
class NightlySummary:
    catalog: CatalogSummary
    prices: PriceSeedSummary


async def run_nightly_sync(
    session_factory: async_sessionmaker[AsyncSession],
    client: TcgcsvClient,
) -> NightlySummary:
    logger.info("nightly_sync_start")

    logger.info("nightly_step_start", step=1, of=2, name="catalog")
    try:
        catalog = await CatalogSeeder(session_factory, client).seed()
    except Exception as e:
        logger.error("nightly_step_failed", step=1, name="catalog", error=str(e))
        raise SyncStepError("Product seeding failed. Aborting nightly sync.") from e

    logger.info("nightly_step_start", step=2, of=2, name="prices")
    try:
        recorded_at = await client.fetch_last_updated_timestamp()
        prices = await PriceSeeder(session_factory, client).seed_prices(recorded_at)
    except Exception as e:
        logger.error("nightly_step_failed", step=2, name="prices", error=str(e))
        raise SyncStepError("Price seeding failed. Aborting nightly sync.") from e

    logger.info(
        "nightly_sync_complete",
        products=catalog.products,
        prices=prices.inserted,
    )
    return NightlySummary(catalog=catalog, prices=prices)
