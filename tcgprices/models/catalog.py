"""
TCG Price Tracker: Catalog Models

Category → Group → Product hierarchy mirrored from tcgcsv.com. Every primary
key is the upstream TCGplayer ID: stable, never regenerated. Re-ingesting a
known ID updates the row in place.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BOOLEAN, INTEGER, TIMESTAMP, ForeignKey, Index, String, Text, false
from sqlalchemy.orm import Mapped, mapped_column

from tcgprices.models.base import Base


class ProductCategory(Base):
    """A game / product line (e.g. Pokemon = 3)."""

    __tablename__ = "product_category"

    category_id: Mapped[int] = mapped_column(
        INTEGER,
        primary_key=True,
        autoincrement=False,
        comment="TCGplayer category ID",
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String, nullable=True)
    modified_on: Mapped[datetime | None] = mapped_column(
        TIMESTAMP, nullable=True, comment="Upstream modification time"
    )

    def __repr__(self) -> str:
        return f"<ProductCategory id={self.category_id} name={self.name!r}>"


class ProductGroup(Base):
    """A set or expansion within a category."""

    __tablename__ = "product_group"

    group_id: Mapped[int] = mapped_column(
        INTEGER,
        primary_key=True,
        autoincrement=False,
        comment="TCGplayer group ID",
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    abbreviation: Mapped[str | None] = mapped_column(String, nullable=True)
    is_supplemental: Mapped[bool | None] = mapped_column(
        BOOLEAN, nullable=True, default=False, server_default=false()
    )
    published_on: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    modified_on: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    category_id: Mapped[int | None] = mapped_column(
        INTEGER,
        ForeignKey("product_category.category_id", ondelete="CASCADE"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<ProductGroup id={self.group_id} name={self.name!r} "
            f"category={self.category_id}>"
        )


class Product(Base):
    """An individual sellable item (usually a single card)."""

    __tablename__ = "product"

    product_id: Mapped[int] = mapped_column(
        INTEGER,
        primary_key=True,
        autoincrement=False,
        comment="TCGplayer product ID",
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    clean_name: Mapped[str | None] = mapped_column(String, nullable=True)
    card_number: Mapped[str | None] = mapped_column(
        String,
        nullable=True,
        comment="Format varies by game: '003/142' (Pokemon), 'OP11-001' (One Piece)",
    )
    image_url: Mapped[str | None] = mapped_column(String, nullable=True)
    category_id: Mapped[int | None] = mapped_column(INTEGER, nullable=True)
    group_id: Mapped[int] = mapped_column(
        INTEGER,
        ForeignKey("product_group.group_id", ondelete="CASCADE"),
        nullable=False,
    )
    url: Mapped[str | None] = mapped_column(String, nullable=True)
    modified_on: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    image_count: Mapped[int | None] = mapped_column(
        INTEGER, nullable=True, default=0, server_default="0"
    )

    __table_args__ = (Index("ix_product_group_id", "group_id"),)

    def __repr__(self) -> str:
        return f"<Product id={self.product_id} name={self.name!r} group={self.group_id}>"


class PresaleInfo(Base):
    """One-to-one presale details for a product."""

    __tablename__ = "presale_info"

    product_id: Mapped[int] = mapped_column(
        INTEGER,
        ForeignKey("product.product_id", ondelete="CASCADE"),
        primary_key=True,
        autoincrement=False,
    )
    is_presale: Mapped[bool] = mapped_column(
        BOOLEAN, nullable=False, default=False, server_default=false()
    )
    released_on: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)


class ExtendedData(Base):
    """
    Free-form attribute rows (rarity, number, HP, ...) for a product.

    Replaced wholesale on every ingestion pass, never merged.
    """

    __tablename__ = "extended_data"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        INTEGER,
        ForeignKey("product.product_id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String, nullable=True)
    value: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (Index("ix_extended_data_product_id", "product_id"),)
