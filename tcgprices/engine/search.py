"""
TCG Price Tracker: Product Search & Category Listing

Read-side catalog queries behind the card browser.

Search rules:
    - search_text is split on whitespace; every token must match at least
      one of product name, clean name, group name or card number
      (case-insensitive substring).
    - category_id, when given, restricts results to that category.
    - Results are ordered by product_id and paged; total_count counts every
      match, not just the current page.
    - Each result carries the names of its known subtypes.
"""

from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime

import structlog
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tcgprices.engine.timeline import CamelModel
from tcgprices.models.catalog import Product, ProductCategory, ProductGroup
from tcgprices.models.price import ProductSubtype

logger = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE: int = 20
MAX_PAGE_SIZE: int = 100


# ---------------------------------------------------------------------------
# Result Models
# ---------------------------------------------------------------------------


class CategorySummary(CamelModel):
    category_id: int
    name: str
    display_name: str | None = None
    modified_on: datetime | None = None


class GroupSummary(CamelModel):
    name: str | None = None
    abbreviation: str | None = None


class ProductSearchResult(CamelModel):
    product_id: int
    name: str
    clean_name: str | None = None
    card_number: str | None = None
    image_url: str | None = None
    category_id: int | None = None
    group_id: int
    url: str | None = None
    modified_on: datetime | None = None
    image_count: int | None = None
    group: GroupSummary
    subtypes: list[str] = []


class Pagination(CamelModel):
    page: int
    page_size: int
    total_count: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


class ProductSearchPage(CamelModel):
    data: list[ProductSearchResult] = []
    pagination: Pagination


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def _token_condition(token: str):
    return or_(
        Product.name.icontains(token, autoescape=True),
        Product.clean_name.icontains(token, autoescape=True),
        ProductGroup.name.icontains(token, autoescape=True),
        Product.card_number.icontains(token, autoescape=True),
    )


async def search_products(
    session: AsyncSession,
    search_text: str | None = None,
    category_id: int | None = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> ProductSearchPage:
    """
    Page through products matching every search token.

    An empty or missing search_text matches all products.

    Raises:
        ValueError: page < 1, page_size outside 1..MAX_PAGE_SIZE, or a
            non-positive category_id.
    """
    if page < 1:
        raise ValueError(f"page must be >= 1, got {page}")
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        raise ValueError(f"page_size must be between 1 and {MAX_PAGE_SIZE}, got {page_size}")
    if category_id is not None and category_id < 1:
        raise ValueError(f"category_id must be positive, got {category_id}")

    conditions = []
    if category_id is not None:
        conditions.append(Product.category_id == category_id)
    tokens = (search_text or "").split()
    if tokens:
        conditions.append(and_(*(_token_condition(t) for t in tokens)))

    joined = select(
        Product,
        ProductGroup.name.label("group_name"),
        ProductGroup.abbreviation.label("group_abbreviation"),
    ).outerjoin(
        ProductGroup, Product.group_id == ProductGroup.group_id
    )
    counted = select(func.count()).select_from(Product).outerjoin(
        ProductGroup, Product.group_id == ProductGroup.group_id
    )
    if conditions:
        joined = joined.where(*conditions)
        counted = counted.where(*conditions)

    total_count = (await session.execute(counted)).scalar_one()
    rows = (
        await session.execute(
            joined.order_by(Product.product_id)
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
    ).all()

    product_ids = [row.Product.product_id for row in rows]
    subtypes: dict[int, list[str]] = defaultdict(list)
    if product_ids:
        subtype_rows = await session.execute(
            select(ProductSubtype.product_id, ProductSubtype.sub_type_name)
            .where(ProductSubtype.product_id.in_(product_ids))
            .order_by(ProductSubtype.id)
        )
        for product_id, sub_type_name in subtype_rows.all():
            subtypes[product_id].append(sub_type_name)

    data = [
        ProductSearchResult(
            product_id=row.Product.product_id,
            name=row.Product.name,
            clean_name=row.Product.clean_name,
            card_number=row.Product.card_number,
            image_url=row.Product.image_url,
            category_id=row.Product.category_id,
            group_id=row.Product.group_id,
            url=row.Product.url,
            modified_on=row.Product.modified_on,
            image_count=row.Product.image_count,
            group=GroupSummary(name=row.group_name, abbreviation=row.group_abbreviation),
            subtypes=subtypes.get(row.Product.product_id, []),
        )
        for row in rows
    ]

    total_pages = math.ceil(total_count / page_size)
    logger.debug(
        "product_search_query",
        tokens=len(tokens),
        category_id=category_id,
        page=page,
        page_size=page_size,
        total_count=total_count,
    )
    return ProductSearchPage(
        data=data,
        pagination=Pagination(
            page=page,
            page_size=page_size,
            total_count=total_count,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_previous_page=page > 1,
        ),
    )


async def list_categories(session: AsyncSession) -> list[CategorySummary]:
    result = await session.execute(
        select(ProductCategory).order_by(ProductCategory.category_id)
    )
    return [
        CategorySummary(
            category_id=c.category_id,
            name=c.name,
            display_name=c.display_name,
            modified_on=c.modified_on,
        )
        for c in result.scalars().all()
    ]
