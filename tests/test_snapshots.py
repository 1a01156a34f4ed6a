"""
Tests for latest-price and sparkline queries (tcgprices/engine/snapshots.py).
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from tcgprices.engine.snapshots import get_latest_prices, get_sparklines
from tcgprices.pipeline.prices import PriceSeeder
from tcgprices.pipeline.tcgcsv import TcgcsvPrice

UTC = timezone.utc
NOW = datetime(2025, 1, 10, 12, tzinfo=UTC)


async def _record(session_factory, payloads, recorded_at: datetime, *rows: dict) -> None:
    prices = [TcgcsvPrice.model_validate(payloads["price"](**row)) for row in rows]
    async with session_factory() as session:
        async with session.begin():
            await PriceSeeder(session_factory).write_batch(session, prices, recorded_at)


@pytest.mark.asyncio
async def test_latest_prices_pick_newest_row(session_factory, seeded_catalog, payloads) -> None:
    await _record(session_factory, payloads, NOW - timedelta(days=2), {"market_price": 1.0})
    await _record(session_factory, payloads, NOW - timedelta(days=1), {"market_price": 1.5, "low_price": 1.1})

    async with session_factory() as session:
        latest = await get_latest_prices(session, [9001, 424242])

    assert latest[424242] == []
    [normal] = latest[9001]
    assert normal.sub_type_name == "Normal"
    assert normal.market_price == Decimal("1.50")
    assert normal.low_price == Decimal("1.10")
    assert normal.recorded_at == NOW - timedelta(days=1)


@pytest.mark.asyncio
async def test_latest_prices_without_rows(session, seeded_catalog) -> None:
    latest = await get_latest_prices(session, [9001])
    assert latest == {9001: []}


@pytest.mark.asyncio
async def test_sparklines_daily_average_within_window(session_factory, seeded_catalog, payloads) -> None:
    await _record(session_factory, payloads, NOW - timedelta(days=10), {"market_price": 99.0})
    await _record(session_factory, payloads, datetime(2025, 1, 8, 1, tzinfo=UTC), {"market_price": 2.0})
    await _record(session_factory, payloads, datetime(2025, 1, 8, 20, tzinfo=UTC), {"market_price": 3.0})
    await _record(session_factory, payloads, datetime(2025, 1, 9, 6, tzinfo=UTC), {"market_price": None})
    await _record(session_factory, payloads, datetime(2025, 1, 10, 6, tzinfo=UTC), {"market_price": 4.0})

    async with session_factory() as session:
        sparklines = await get_sparklines(session, [9001], days=7, now=NOW)

    [normal] = sparklines[9001]
    assert [(p.day, p.market_price) for p in normal.sparkline_data] == [
        (date(2025, 1, 8), Decimal("2.50")),
        (date(2025, 1, 10), Decimal("4.00")),
    ]


@pytest.mark.asyncio
async def test_sparklines_reject_non_positive_days(session) -> None:
    with pytest.raises(ValueError):
        await get_sparklines(session, [9001], days=0)


@pytest.mark.asyncio
async def test_sparklines_serialise_camel_case_keys(session_factory, seeded_catalog, payloads) -> None:
    await _record(session_factory, payloads, datetime(2025, 1, 10, 6, tzinfo=UTC), {"market_price": 4.0})

    async with session_factory() as session:
        sparklines = await get_sparklines(session, [9001], days=3, now=NOW)

    dumped = sparklines[9001][0].model_dump(by_alias=True)
    assert dumped["subTypeName"] == "Normal"
    assert dumped["sparklineData"] == [
        {"date": date(2025, 1, 10), "marketPrice": Decimal("4.00")}
    ]
