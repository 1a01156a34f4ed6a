"""Initial schema: catalog tables, product_subtype, product_price

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- product_category ---
    op.create_table(
        "product_category",
        sa.Column("category_id", sa.INTEGER(), autoincrement=False, nullable=False, comment="TCGplayer category ID"),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("modified_on", sa.TIMESTAMP(), nullable=True, comment="Upstream modification time"),
        sa.PrimaryKeyConstraint("category_id"),
    )

    # --- product_group ---
    op.create_table(
        "product_group",
        sa.Column("group_id", sa.INTEGER(), autoincrement=False, nullable=False, comment="TCGplayer group ID"),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("abbreviation", sa.String(), nullable=True),
        sa.Column("is_supplemental", sa.BOOLEAN(), server_default=sa.false(), nullable=True),
        sa.Column("published_on", sa.TIMESTAMP(), nullable=True),
        sa.Column("modified_on", sa.TIMESTAMP(), nullable=True),
        sa.Column(
            "category_id",
            sa.INTEGER(),
            sa.ForeignKey("product_category.category_id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.PrimaryKeyConstraint("group_id"),
    )

    # --- product ---
    op.create_table(
        "product",
        sa.Column("product_id", sa.INTEGER(), autoincrement=False, nullable=False, comment="TCGplayer product ID"),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("clean_name", sa.String(), nullable=True),
        sa.Column("card_number", sa.String(), nullable=True),
        sa.Column("image_url", sa.String(), nullable=True),
        sa.Column("category_id", sa.INTEGER(), nullable=True),
        sa.Column(
            "group_id",
            sa.INTEGER(),
            sa.ForeignKey("product_group.group_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("url", sa.String(), nullable=True),
        sa.Column("modified_on", sa.TIMESTAMP(), nullable=True),
        sa.Column("image_count", sa.INTEGER(), server_default="0", nullable=True),
        sa.PrimaryKeyConstraint("product_id"),
    )
    op.create_index("ix_product_group_id", "product", ["group_id"])

    # --- presale_info ---
    op.create_table(
        "presale_info",
        sa.Column(
            "product_id",
            sa.INTEGER(),
            sa.ForeignKey("product.product_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("is_presale", sa.BOOLEAN(), server_default=sa.false(), nullable=False),
        sa.Column("released_on", sa.TIMESTAMP(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("product_id"),
    )

    # --- extended_data ---
    op.create_table(
        "extended_data",
        sa.Column("id", sa.INTEGER(), sa.Identity(), nullable=False),
        sa.Column(
            "product_id",
            sa.INTEGER(),
            sa.ForeignKey("product.product_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("value", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_extended_data_product_id", "extended_data", ["product_id"])

    # --- product_subtype ---
    op.create_table(
        "product_subtype",
        sa.Column("id", sa.INTEGER(), sa.Identity(), nullable=False),
        sa.Column(
            "product_id",
            sa.INTEGER(),
            sa.ForeignKey("product.product_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sub_type_name", sa.String(), nullable=False, comment="e.g. 'Normal', 'Holofoil', '1st Edition'"),
        sa.Column("is_active", sa.BOOLEAN(), server_default=sa.true(), nullable=False),
        sa.Column("first_seen_at", sa.TIMESTAMP(), nullable=True),
        sa.Column("last_seen_at", sa.TIMESTAMP(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "sub_type_name", name="uq_product_subtype_product_name"),
    )

    # --- product_price (append-only, partition-ready) ---
    op.create_table(
        "product_price",
        sa.Column("id", sa.INTEGER(), sa.Identity(), nullable=False),
        sa.Column(
            "product_subtype_id",
            sa.INTEGER(),
            sa.ForeignKey("product_subtype.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "recorded_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
            comment="Upstream snapshot time this observation belongs to",
        ),
        sa.Column("low_price", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("mid_price", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("high_price", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("market_price", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("direct_low_price", sa.DECIMAL(10, 2), nullable=True),
        sa.PrimaryKeyConstraint("id", "recorded_at", name="pk_product_price"),
    )
    op.create_index(
        "ix_product_price_subtype_recorded",
        "product_price",
        ["product_subtype_id", "recorded_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_product_price_subtype_recorded", table_name="product_price")
    op.drop_table("product_price")
    op.drop_table("product_subtype")
    op.drop_index("ix_extended_data_product_id", table_name="extended_data")
    op.drop_table("extended_data")
    op.drop_table("presale_info")
    op.drop_index("ix_product_group_id", table_name="product")
    op.drop_table("product")
    op.drop_table("product_group")
    op.drop_table("product_category")
