"""
TCG Price Tracker: Subtype & Price Models

ProductSubtype is a sale variant (Normal, Holofoil, ...) discovered lazily
from the price feed. ProductPrice is an append-only time series: rows are
inserted once per subtype per ingestion run and never updated.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BOOLEAN,
    DECIMAL,
    INTEGER,
    TIMESTAMP,
    ForeignKey,
    Index,
    PrimaryKeyConstraint,
    String,
    UniqueConstraint,
    func,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column

from tcgprices.models.base import Base


class ProductSubtype(Base):
    """
    A priced variant of a product.

    Unique on (product_id, sub_type_name). Created on first observation and
    never removed, even if the variant later disappears from the feed.
    """

    __tablename__ = "product_subtype"

    id: Mapped[int] = mapped_column(INTEGER, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(
        INTEGER,
        ForeignKey("product.product_id", ondelete="CASCADE"),
        nullable=False,
    )
    sub_type_name: Mapped[str] = mapped_column(
        String, nullable=False, comment="e.g. 'Normal', 'Holofoil', '1st Edition'"
    )
    is_active: Mapped[bool] = mapped_column(
        BOOLEAN, nullable=False, default=True, server_default=true()
    )
    first_seen_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)
    last_seen_at: Mapped[datetime | None] = mapped_column(TIMESTAMP, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "product_id", "sub_type_name", name="uq_product_subtype_product_name"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ProductSubtype id={self.id} product={self.product_id} "
            f"name={self.sub_type_name!r}>"
        )


class ProductPrice(Base):
    """
    One immutable price observation for a subtype.

    The primary key includes recorded_at so the table can be turned into a
    time-partitioned hypertable.
    """

    __tablename__ = "product_price"

    id: Mapped[int] = mapped_column(INTEGER, autoincrement=True)
    product_subtype_id: Mapped[int] = mapped_column(
        INTEGER,
        ForeignKey("product_subtype.id", ondelete="CASCADE"),
        nullable=False,
    )
    recorded_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
        comment="Upstream snapshot time this observation belongs to",
    )
    low_price: Mapped[Decimal | None] = mapped_column(DECIMAL(10, 2), nullable=True)
    mid_price: Mapped[Decimal | None] = mapped_column(DECIMAL(10, 2), nullable=True)
    high_price: Mapped[Decimal | None] = mapped_column(DECIMAL(10, 2), nullable=True)
    market_price: Mapped[Decimal | None] = mapped_column(DECIMAL(10, 2), nullable=True)
    direct_low_price: Mapped[Decimal | None] = mapped_column(
        DECIMAL(10, 2), nullable=True
    )

    __table_args__ = (
        PrimaryKeyConstraint("id", "recorded_at", name="pk_product_price"),
        Index("ix_product_price_subtype_recorded", "product_subtype_id", "recorded_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ProductPrice subtype={self.product_subtype_id} "
            f"market={self.market_price} at={self.recorded_at}>"
        )
