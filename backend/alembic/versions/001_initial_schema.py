"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

QTY = sa.Numeric(18, 3)


def upgrade() -> None:
    # Items table (catalog, read-only for the ledger)
    op.create_table(
        "items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sku", sa.String(64), unique=True, nullable=False, index=True),
        sa.Column("name", sa.String(255), unique=True, nullable=False),
        sa.Column("unit", sa.String(20), nullable=True),
        sa.Column("kind", sa.Enum("PART", "MACHINE", "OTHER", name="itemkind"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Locations table
    op.create_table(
        "locations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(50), unique=True, nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("kind", sa.String(50), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Stock balances (cache of the movement journal)
    op.create_table(
        "stocks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False, index=True),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False, index=True),
        sa.Column("qty", QTY, nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("item_id", "location_id", name="uq_stocks_item_location"),
    )

    # Movement journal
    op.create_table(
        "movements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("type", sa.Enum("IN", "OUT", "TRANSFER", "ADJUST", name="movementtype"), nullable=False, index=True),
        sa.Column("reference_code", sa.String(64), nullable=False),
        sa.Column("note", sa.String(500), nullable=True),
        sa.Column("posted", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("reference_code", name="uq_movements_reference_code"),
    )

    op.create_table(
        "movement_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("movement_id", sa.Integer(), sa.ForeignKey("movements.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False, index=True),
        sa.Column("from_location_id", sa.Integer(), sa.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=True, index=True),
        sa.Column("to_location_id", sa.Integer(), sa.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=True, index=True),
        sa.Column("qty", QTY, nullable=False),
        sa.Column("note", sa.String(500), nullable=True),
        sa.CheckConstraint("qty > 0", name="ck_movement_lines_qty_positive"),
        sa.CheckConstraint(
            "from_location_id IS NOT NULL OR to_location_id IS NOT NULL",
            name="ck_movement_lines_has_location",
        ),
    )

    # Stock counts
    op.create_table(
        "stock_counts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("reference_code", sa.String(64), nullable=False),
        sa.Column("status", sa.Enum("draft", "posted", name="stockcountstatus"), nullable=False, index=True),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False, index=True),
        sa.Column("note", sa.String(1000), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("posted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("posted_by", sa.Integer(), nullable=True),
        sa.Column("movement_id", sa.Integer(), sa.ForeignKey("movements.id", ondelete="RESTRICT"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("reference_code", name="uq_stock_counts_reference_code"),
    )

    op.create_table(
        "stock_count_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("stock_count_id", sa.Integer(), sa.ForeignKey("stock_counts.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False, index=True),
        sa.Column("counted_qty", QTY, nullable=False, server_default="0"),
        sa.UniqueConstraint("stock_count_id", "item_id", name="uq_stock_count_lines_count_item"),
    )

    # Audit log
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("action", sa.String(50), nullable=False, index=True),
        sa.Column("entity_type", sa.String(50), nullable=False, index=True),
        sa.Column("entity_id", sa.String(50), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True, index=True),
        sa.Column("user_role", sa.String(20), nullable=True),
        sa.Column("before", sa.JSON(), nullable=True),
        sa.Column("after", sa.JSON(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
    )


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("stock_count_lines")
    op.drop_table("stock_counts")
    op.drop_table("movement_lines")
    op.drop_table("movements")
    op.drop_table("stocks")
    op.drop_table("locations")
    op.drop_table("items")
    sa.Enum(name="stockcountstatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="movementtype").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="itemkind").drop(op.get_bind(), checkfirst=True)
