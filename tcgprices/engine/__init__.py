from tcgprices.engine.search import list_categories, search_products
from tcgprices.engine.snapshots import get_latest_prices, get_sparklines
from tcgprices.engine.timeline import (
    get_price_timeline,
    parse_interval,
    truncate_to_bucket,
)

__all__ = [
    "get_latest_prices",
    "get_price_timeline",
    "get_sparklines",
    "list_categories",
    "parse_interval",
    "search_products",
    "truncate_to_bucket",
]
