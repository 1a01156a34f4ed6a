"""
Catalog and price-history models.
"""

from tcgprices.models.base import Base
from tcgprices.models.catalog import (
    ExtendedData,
    PresaleInfo,
    Product,
    ProductCategory,
    ProductGroup,
)
from tcgprices.models.price import ProductPrice, ProductSubtype

__all__ = [
    "Base",
    "ExtendedData",
    "PresaleInfo",
    "Product",
    "ProductCategory",
    "ProductGroup",
    "ProductPrice",
    "ProductSubtype",
]
