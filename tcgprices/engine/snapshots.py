"""
TCG Price Tracker: Latest Prices & Sparklines

Card-list views need a compact summary per product rather than a full
timeline: the most recent observation for each subtype, and a short series
of daily average market prices.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Sequence

import structlog
from pydantic import Field
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tcgprices.engine.timeline import CamelModel, as_utc, average
from tcgprices.models.price import ProductPrice, ProductSubtype

logger = structlog.get_logger(__name__)

DEFAULT_SPARKLINE_DAYS: int = 30


class SubtypeLatestPrice(CamelModel):
    subtype_id: int
    sub_type_name: str
    recorded_at: datetime | None = None
    low_price: Decimal | None = None
    mid_price: Decimal | None = None
    high_price: Decimal | None = None
    market_price: Decimal | None = None
    direct_low_price: Decimal | None = None


class SparklinePoint(CamelModel):
    day: date = Field(alias="date")
    market_price: Decimal


class SubtypeSparkline(CamelModel):
    subtype_id: int
    sub_type_name: str
    sparkline_data: list[SparklinePoint] = []


async def _load_subtypes(
    session: AsyncSession, product_ids: Sequence[int]
) -> list[ProductSubtype]:
    result = await session.execute(
        select(ProductSubtype)
        .where(ProductSubtype.product_id.in_(list(product_ids)))
        .order_by(ProductSubtype.product_id, ProductSubtype.id)
    )
    return list(result.scalars().all())


async def get_latest_prices(
    session: AsyncSession, product_ids: Sequence[int]
) -> dict[int, list[SubtypeLatestPrice]]:
    """
    Most recent price row per subtype, keyed by product ID.

    Products without subtypes map to an empty list; subtypes without any
    price row carry None prices.
    """
    latest: dict[int, list[SubtypeLatestPrice]] = {pid: [] for pid in product_ids}
    if not product_ids:
        return latest

    subtypes = await _load_subtypes(session, product_ids)
    if not subtypes:
        return latest

    newest = (
        select(
            ProductPrice.product_subtype_id,
            func.max(ProductPrice.recorded_at).label("recorded_at"),
        )
        .where(ProductPrice.product_subtype_id.in_([s.id for s in subtypes]))
        .group_by(ProductPrice.product_subtype_id)
        .subquery()
    )
    result = await session.execute(
        select(ProductPrice)
        .join(
            newest,
            and_(
                ProductPrice.product_subtype_id == newest.c.product_subtype_id,
                ProductPrice.recorded_at == newest.c.recorded_at,
            ),
        )
        .order_by(ProductPrice.id)
    )
    # Same-timestamp duplicates resolve to the last inserted row.
    by_subtype = {row.product_subtype_id: row for row in result.scalars().all()}

    for subtype in subtypes:
        row = by_subtype.get(subtype.id)
        entry = SubtypeLatestPrice(subtype_id=subtype.id, sub_type_name=subtype.sub_type_name)
        if row is not None:
            entry.recorded_at = as_utc(row.recorded_at)
            entry.low_price = row.low_price
            entry.mid_price = row.mid_price
            entry.high_price = row.high_price
            entry.market_price = row.market_price
            entry.direct_low_price = row.direct_low_price
        latest[subtype.product_id].append(entry)

    return latest


async def get_sparklines(
    session: AsyncSession,
    product_ids: Sequence[int],
    days: int = DEFAULT_SPARKLINE_DAYS,
    now: datetime | None = None,
) -> dict[int, list[SubtypeSparkline]]:
    """
    Daily average market price per subtype over the last `days` UTC days
    (today included). Days with no market price are omitted.
    """
    if days < 1:
        raise ValueError(f"days must be >= 1, got {days}")

    sparklines: dict[int, list[SubtypeSparkline]] = {pid: [] for pid in product_ids}
    if not product_ids:
        return sparklines

    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    window_start = now.replace(hour=0, minute=0, second=0, microsecond=0) - timedelta(
        days=days - 1
    )

    subtypes = await _load_subtypes(session, product_ids)
    if not subtypes:
        return sparklines

    result = await session.execute(
        select(
            ProductPrice.product_subtype_id,
            ProductPrice.recorded_at,
            ProductPrice.market_price,
        ).where(
            ProductPrice.product_subtype_id.in_([s.id for s in subtypes]),
            ProductPrice.recorded_at >= window_start,
            ProductPrice.recorded_at <= now,
            ProductPrice.market_price.is_not(None),
        )
    )
    daily: dict[int, dict[date, list[Decimal]]] = defaultdict(lambda: defaultdict(list))
    for row in result.all():
        daily[row.product_subtype_id][as_utc(row.recorded_at).date()].append(
            row.market_price
        )

    for subtype in subtypes:
        per_day = daily.get(subtype.id, {})
        sparklines[subtype.product_id].append(
            SubtypeSparkline(
                subtype_id=subtype.id,
                sub_type_name=subtype.sub_type_name,
                sparkline_data=[
                    SparklinePoint(day=d, market_price=average(per_day[d]))
                    for d in sorted(per_day)
                ],
            )
        )

    logger.debug(
        "sparklines_query",
        products=len(product_ids),
        subtypes=len(subtypes),
        days=days,
        window_start=window_start.isoformat(),
    )
    return sparklines
