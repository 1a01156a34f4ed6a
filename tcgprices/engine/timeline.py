"""
TCG Price Tracker: Price Timeline Aggregation

Buckets a product's price history into fixed intervals for charting.

Algorithm:
    1. Reject start >= end before touching the database.
    2. Load the product (NotFoundError if absent) and its subtypes by id.
    3. Load price rows with start <= recorded_at < end, ascending.
    4. Truncate each recorded_at to its bucket start (UTC) and group.
    5. Per bucket and price field: avg / min / max over non-null values,
       None when every value is null. data_points counts rows.

Read-only and deterministic for a given database state and input range.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

import structlog
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tcgprices.config import TimelineInterval
from tcgprices.errors import InvalidRangeError, NotFoundError
from tcgprices.models.catalog import Product
from tcgprices.models.price import ProductPrice, ProductSubtype

logger = structlog.get_logger(__name__)

PRICE_FIELDS: tuple[str, ...] = (
    "low_price",
    "mid_price",
    "high_price",
    "market_price",
    "direct_low_price",
)

CENT = Decimal("0.01")

_HOURLY_INTERVALS: dict[TimelineInterval, int] = {
    TimelineInterval.ONE_HOUR: 1,
    TimelineInterval.SIX_HOURS: 6,
    TimelineInterval.TWELVE_HOURS: 12,
}


# ---------------------------------------------------------------------------
# Result Models
# ---------------------------------------------------------------------------


class CamelModel(BaseModel):
    """Serialises with camelCase keys via model_dump(by_alias=True)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PriceTimelinePoint(CamelModel):
    bucket: datetime
    data_points: int

    avg_low_price: Decimal | None = None
    min_low_price: Decimal | None = None
    max_low_price: Decimal | None = None

    avg_mid_price: Decimal | None = None
    min_mid_price: Decimal | None = None
    max_mid_price: Decimal | None = None

    avg_high_price: Decimal | None = None
    min_high_price: Decimal | None = None
    max_high_price: Decimal | None = None

    avg_market_price: Decimal | None = None
    min_market_price: Decimal | None = None
    max_market_price: Decimal | None = None

    avg_direct_low_price: Decimal | None = None
    min_direct_low_price: Decimal | None = None
    max_direct_low_price: Decimal | None = None


class SubtypeTimeline(CamelModel):
    subtype_id: int
    sub_type_name: str
    timeline: list[PriceTimelinePoint] = []


class ProductPriceTimeline(CamelModel):
    product_id: int
    interval: TimelineInterval
    start: datetime
    end: datetime
    subtypes: list[SubtypeTimeline] = []


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def as_utc(value: datetime) -> datetime:
    """Naive datetimes (as SQLite returns them) are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_interval(text: str) -> TimelineInterval:
    try:
        return TimelineInterval(text)
    except ValueError:
        allowed = ", ".join(i.value for i in TimelineInterval)
        raise ValueError(
            f"Unsupported interval {text!r}; expected one of: {allowed}"
        ) from None


def truncate_to_bucket(value: datetime, interval: TimelineInterval) -> datetime:
    """
    Floor a timestamp to the start of its bucket, in UTC.

    Hour intervals align to multiples of N hours since midnight, weeks start
    on Monday and months on the 1st.
    """
    ts = as_utc(value)
    midnight = ts.replace(hour=0, minute=0, second=0, microsecond=0)

    if interval in _HOURLY_INTERVALS:
        step = _HOURLY_INTERVALS[interval]
        return midnight.replace(hour=ts.hour - ts.hour % step)
    if interval == TimelineInterval.ONE_DAY:
        return midnight
    if interval == TimelineInterval.ONE_WEEK:
        return midnight - timedelta(days=midnight.weekday())
    if interval == TimelineInterval.ONE_MONTH:
        return midnight.replace(day=1)
    raise ValueError(f"Unsupported interval: {interval!r}")


def average(values: Sequence[Decimal]) -> Decimal | None:
    """Mean rounded half-up to cents; None for an empty sequence."""
    if not values:
        return None
    return (sum(values, Decimal(0)) / len(values)).quantize(CENT, rounding=ROUND_HALF_UP)


def aggregate_bucket(bucket: datetime, rows: Sequence[ProductPrice]) -> PriceTimelinePoint:
    stats: dict[str, Decimal | None] = {}
    for name in PRICE_FIELDS:
        values = [v for v in (getattr(r, name) for r in rows) if v is not None]
        stats[f"avg_{name}"] = average(values)
        stats[f"min_{name}"] = min(values) if values else None
        stats[f"max_{name}"] = max(values) if values else None
    return PriceTimelinePoint(bucket=bucket, data_points=len(rows), **stats)


def build_points(
    rows: Iterable[ProductPrice], interval: TimelineInterval
) -> list[PriceTimelinePoint]:
    buckets: dict[datetime, list[ProductPrice]] = defaultdict(list)
    for row in rows:
        buckets[truncate_to_bucket(row.recorded_at, interval)].append(row)
    return [aggregate_bucket(b, buckets[b]) for b in sorted(buckets)]


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------


async def get_price_timeline(
    session: AsyncSession,
    product_id: int,
    start: datetime,
    end: datetime | None = None,
    interval: TimelineInterval = TimelineInterval.ONE_DAY,
) -> ProductPriceTimeline:
    """
    Bucketed price history for every subtype of a product.

    Args:
        session:    Async SQLAlchemy session.
        product_id: TCGplayer product ID.
        start:      Inclusive lower bound.
        end:        Exclusive upper bound; defaults to now.
        interval:   Bucket width.

    Raises:
        InvalidRangeError: start >= end.
        NotFoundError: the product does not exist.
    """
    start = as_utc(start)
    end = as_utc(end) if end is not None else datetime.now(timezone.utc)
    if start >= end:
        raise InvalidRangeError(
            f"Start {start.isoformat()} must be before end {end.isoformat()}"
        )

    product = await session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")

    timeline = ProductPriceTimeline(
        product_id=product_id, interval=interval, start=start, end=end
    )

    subtype_rows = await session.execute(
        select(ProductSubtype)
        .where(ProductSubtype.product_id == product_id)
        .order_by(ProductSubtype.id)
    )
    subtypes = subtype_rows.scalars().all()
    if not subtypes:
        return timeline

    price_rows = await session.execute(
        select(ProductPrice)
        .where(
            ProductPrice.product_subtype_id.in_([s.id for s in subtypes]),
            ProductPrice.recorded_at >= start,
            ProductPrice.recorded_at < end,
        )
        .order_by(ProductPrice.recorded_at.asc(), ProductPrice.id.asc())
    )
    by_subtype: dict[int, list[ProductPrice]] = defaultdict(list)
    for row in price_rows.scalars().all():
        by_subtype[row.product_subtype_id].append(row)

    timeline.subtypes = [
        SubtypeTimeline(
            subtype_id=s.id,
            sub_type_name=s.sub_type_name,
            timeline=build_points(by_subtype.get(s.id, []), interval),
        )
        for s in subtypes
    ]

    logger.debug(
        "price_timeline_query",
        product_id=product_id,
        interval=interval.value,
        start=start.isoformat(),
        end=end.isoformat(),
        subtypes=len(subtypes),
        rows_found=sum(len(v) for v in by_subtype.values()),
    )
    return timeline
