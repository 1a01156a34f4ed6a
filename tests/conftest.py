"""
TCG Price Tracker: Shared pytest Fixtures

Provides:
- A file-backed aiosqlite database per test with the full schema and
  foreign keys enforced
- Session factory / session fixtures
- Builders for tcgcsv.com JSON payloads
- A seeded catalog (category 3, group 100, product 9001)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, AsyncGenerator, Callable

import pytest
import pytest_asyncio
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tcgprices.models import Base
from tcgprices.pipeline.catalog import CatalogSeeder
from tcgprices.pipeline.tcgcsv import TcgcsvCategory, TcgcsvGroup, TcgcsvProduct

TEST_BASE_URL = "https://tcgcsv.test"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

# SQLite only autoincrements a single-column INTEGER PRIMARY KEY, so the
# composite-key price table is created by hand.
PRODUCT_PRICE_DDL = """
    CREATE TABLE product_price (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        product_subtype_id INTEGER NOT NULL REFERENCES product_subtype(id),
        recorded_at TIMESTAMP NOT NULL,
        low_price NUMERIC(10, 2),
        mid_price NUMERIC(10, 2),
        high_price NUMERIC(10, 2),
        market_price NUMERIC(10, 2),
        direct_low_price NUMERIC(10, 2)
    )
"""


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """SQLite database with every table; product_price via raw DDL."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'tcgprices.db'}", echo=False
    )

    @event.listens_for(engine.sync_engine, "connect")
    def enforce_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    tables = [t for t in Base.metadata.sorted_tables if t.name != "product_price"]

    async with engine.begin() as conn:
        await conn.run_sync(lambda sync_conn: Base.metadata.create_all(sync_conn, tables=tables))
        await conn.execute(text(PRODUCT_PRICE_DDL))

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------


def envelope(results: list[dict[str, Any]]) -> dict[str, Any]:
    return {"success": True, "errors": [], "results": results, "totalItems": len(results)}


def category_payload(category_id: int = 3, name: str = "Pokemon") -> dict[str, Any]:
    return {
        "categoryId": category_id,
        "name": name,
        "displayName": name,
        "modifiedOn": "2025-01-01T00:00:00",
    }


def group_payload(
    group_id: int = 100, category_id: int = 3, name: str = "Base Set"
) -> dict[str, Any]:
    return {
        "groupId": group_id,
        "name": name,
        "abbreviation": "BS",
        "isSupplemental": False,
        "publishedOn": "1999-01-09T00:00:00",
        "modifiedOn": "2025-01-01T00:00:00",
        "categoryId": category_id,
    }


def product_payload(
    product_id: int = 9001,
    group_id: int = 100,
    category_id: int = 3,
    name: str = "Charizard",
    number: str | None = "004/102",
    presale: dict[str, Any] | None = None,
    extended: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    extended_data = list(extended or [])
    if number is not None:
        extended_data.append({"name": "Number", "displayName": "Card Number", "value": number})
    payload: dict[str, Any] = {
        "productId": product_id,
        "name": name,
        "cleanName": name,
        "imageUrl": f"https://img.test/{product_id}.jpg",
        "categoryId": category_id,
        "groupId": group_id,
        "url": f"https://www.tcgplayer.com/product/{product_id}",
        "modifiedOn": "2025-01-01T00:00:00",
        "imageCount": 1,
        "extendedData": extended_data,
    }
    if presale is not None:
        payload["presaleInfo"] = presale
    return payload


def price_payload(
    product_id: int = 9001,
    sub_type_name: str = "Normal",
    market_price: float | None = 2.50,
    **prices: float | None,
) -> dict[str, Any]:
    return {
        "productId": product_id,
        "subTypeName": sub_type_name,
        "lowPrice": prices.get("low_price"),
        "midPrice": prices.get("mid_price"),
        "highPrice": prices.get("high_price"),
        "marketPrice": market_price,
        "directLowPrice": prices.get("direct_low_price"),
    }


@pytest.fixture
def payloads() -> dict[str, Callable[..., dict[str, Any]]]:
    """Payload builders, exposed as a fixture so test modules need no imports."""
    return {
        "envelope": envelope,
        "category": category_payload,
        "group": group_payload,
        "product": product_payload,
        "price": price_payload,
    }


# ---------------------------------------------------------------------------
# Seeded catalog
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def seeded_catalog(session_factory: async_sessionmaker[AsyncSession]) -> None:
    """Category 3 / group 100 / product 9001, written through the real upserts."""
    seeder = CatalogSeeder(session_factory, client=None)  # type: ignore[arg-type]
    async with session_factory() as session:
        async with session.begin():
            await seeder.upsert_categories(
                session, [TcgcsvCategory.model_validate(category_payload())]
            )
            await seeder.upsert_groups(
                session, [TcgcsvGroup.model_validate(group_payload())]
            )
            await seeder.write_product_batch(
                session, [TcgcsvProduct.model_validate(product_payload())]
            )
