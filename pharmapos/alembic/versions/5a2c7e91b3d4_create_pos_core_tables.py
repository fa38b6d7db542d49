"""create pos core tables

Revision ID: 5a2c7e91b3d4
Revises:
Create Date: 2026-10-12
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5a2c7e91b3d4"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")

payment_method = sa.Enum("cash", "card", "insurance", "credit", name="payment_method")
sale_status = sa.Enum("pending", "completed", "cancelled", "refunded", name="sale_status")
discount_type = sa.Enum("percentage", "fixed", name="discount_type")
tax_basis = sa.Enum("pre_discount", "post_discount", name="tax_basis")
timeline_action = sa.Enum("created", "completed", "voided", "refunded", name="timeline_action")
# SQLAlchemy persiste le NOM des membres d'enum
movement_type = sa.Enum("sale", "sale_void", "sale_refund", "receipt", "adjustment", name="movement_type")
movement_direction = sa.Enum("inbound", "outbound", name="movement_direction")


def upgrade() -> None:
    op.create_table(
        "medicines",
        sa.Column("id", PK, primary_key=True),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("generic_name", sa.String(255)),
        sa.Column("strength", sa.String(64)),
        sa.Column("dosage_form", sa.String(64)),
        sa.Column("barcode", sa.String(64)),
        sa.Column("unit_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("cost_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("tax_exempt", sa.Boolean(), nullable=False),
        sa.Column("stock_quantity", sa.Integer(), nullable=False),
        sa.Column("reorder_level", sa.Integer(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("sku", name="uq_medicines_sku"),
        sa.UniqueConstraint("barcode", name="uq_medicines_barcode"),
    )

    op.create_table(
        "sales",
        sa.Column("id", PK, primary_key=True),
        sa.Column("sale_id", sa.String(64), nullable=False),
        sa.Column("patient_id", sa.BigInteger()),
        sa.Column("payment_method", payment_method, nullable=False),
        sa.Column("status", sale_status, nullable=False),
        sa.Column("subtotal", sa.Numeric(14, 2), nullable=False),
        sa.Column("discount_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("tax_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("grand_total", sa.Numeric(14, 2), nullable=False),
        sa.Column("discount_type", discount_type, nullable=False),
        sa.Column("discount_value", sa.Numeric(14, 2), nullable=False),
        sa.Column("tax_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("tax_basis", tax_basis, nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("created_by", sa.String(128), nullable=False),
        sa.Column("void_reason", sa.Text()),
        sa.Column("voided_by", sa.String(128)),
        sa.Column("voided_at", sa.DateTime(timezone=True)),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("sale_id", name="uq_sales_sale_id"),
    )
    op.create_index("ix_sales_patient_id", "sales", ["patient_id"])
    op.create_index("ix_sales_status_created", "sales", ["status", "created_at"])

    op.create_table(
        "sale_items",
        sa.Column("id", PK, primary_key=True),
        sa.Column("sale_id", sa.BigInteger(), sa.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False),
        sa.Column("medicine_id", sa.BigInteger(), sa.ForeignKey("medicines.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("cost_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("discount_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("taxable", sa.Boolean(), nullable=False),
        sa.Column("discount_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("total_price", sa.Numeric(14, 2), nullable=False),
    )
    op.create_index("ix_sale_items_sale_id", "sale_items", ["sale_id"])
    op.create_index("ix_sale_items_medicine_id", "sale_items", ["medicine_id"])

    op.create_table(
        "sale_timeline",
        sa.Column("id", PK, primary_key=True),
        sa.Column("sale_id", sa.BigInteger(), sa.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False),
        sa.Column("action", timeline_action, nullable=False),
        sa.Column("reason", sa.Text()),
        sa.Column("actor", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_sale_timeline_sale_time", "sale_timeline", ["sale_id", "created_at"])

    op.create_table(
        "stock_movements",
        sa.Column("id", PK, primary_key=True),
        sa.Column("medicine_id", sa.BigInteger(), sa.ForeignKey("medicines.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("movement_type", movement_type, nullable=False),
        sa.Column("direction", movement_direction, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("previous_stock", sa.Integer(), nullable=False),
        sa.Column("new_stock", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.BigInteger(), sa.ForeignKey("sales.id", ondelete="RESTRICT")),
        sa.Column("reason", sa.String(255)),
        sa.Column("actor", sa.String(128), nullable=False),
        sa.Column("idempotency_key", sa.String(64)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("idempotency_key", name="uq_stock_movements_idempotency_key"),
    )
    op.create_index("ix_stock_movements_medicine_id", "stock_movements", ["medicine_id"])
    op.create_index("ix_stock_movements_sale_id", "stock_movements", ["sale_id"])
    op.create_index("ix_stock_movements_medicine_time", "stock_movements", ["medicine_id", "created_at"])

    op.create_table(
        "sale_number_series",
        sa.Column("id", PK, primary_key=True),
        sa.Column("prefix", sa.String(16), nullable=False),
        sa.Column("date_key", sa.Integer(), nullable=False),
        sa.Column("next_seq", sa.Integer(), nullable=False),
        sa.UniqueConstraint("prefix", "date_key", name="uq_sale_number_series_prefix_date"),
    )


def downgrade() -> None:
    op.drop_table("sale_number_series")
    op.drop_index("ix_stock_movements_medicine_time", table_name="stock_movements")
    op.drop_index("ix_stock_movements_sale_id", table_name="stock_movements")
    op.drop_index("ix_stock_movements_medicine_id", table_name="stock_movements")
    op.drop_table("stock_movements")
    op.drop_index("ix_sale_timeline_sale_time", table_name="sale_timeline")
    op.drop_table("sale_timeline")
    op.drop_index("ix_sale_items_medicine_id", table_name="sale_items")
    op.drop_index("ix_sale_items_sale_id", table_name="sale_items")
    op.drop_table("sale_items")
    op.drop_index("ix_sales_status_created", table_name="sales")
    op.drop_index("ix_sales_patient_id", table_name="sales")
    op.drop_table("sales")
    op.drop_table("medicines")

    bind = op.get_bind()
    for enum in (
        movement_direction,
        movement_type,
        timeline_action,
        tax_basis,
        discount_type,
        sale_status,
        payment_method,
    ):
        enum.drop(bind, checkfirst=True)
