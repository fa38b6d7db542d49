"""add pos nonneg constraints

Revision ID: 8f3b6d20c4a1
Revises: 5a2c7e91b3d4
Create Date: 2026-10-14
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "8f3b6d20c4a1"
down_revision: Union[str, Sequence[str], None] = "5a2c7e91b3d4"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# table -> [(nom, expression)]
CHECKS: dict[str, list[tuple[str, str]]] = {
    "medicines": [
        ("ck_medicine_stock_nonneg", "stock_quantity >= 0"),
        ("ck_medicine_reorder_nonneg", "reorder_level >= 0"),
        ("ck_medicine_unit_price_nonneg", "unit_price >= 0"),
        ("ck_medicine_cost_price_nonneg", "cost_price >= 0"),
    ],
    "sales": [
        ("ck_sale_subtotal_nonneg", "subtotal >= 0"),
        ("ck_sale_discount_nonneg", "discount_amount >= 0"),
        ("ck_sale_tax_nonneg", "tax_amount >= 0"),
        ("ck_sale_grand_total_nonneg", "grand_total >= 0"),
    ],
    "sale_items": [
        ("ck_sale_item_qty_pos", "quantity > 0"),
        ("ck_sale_item_unit_price_nonneg", "unit_price >= 0"),
        ("ck_sale_item_discount_0_100", "discount_percentage >= 0 AND discount_percentage <= 100"),
    ],
    "stock_movements": [
        ("ck_stock_movement_qty_pos", "quantity > 0"),
        ("ck_stock_movement_new_stock_nonneg", "new_stock >= 0"),
    ],
}


def _add_check_if_missing(table_name: str, constraint_name: str, check_sql: str) -> None:
    # Idempotent Postgres
    op.execute(
        f"""
        DO $$
        BEGIN
            IF NOT EXISTS (
                SELECT 1
                FROM pg_constraint c
                JOIN pg_class t ON t.oid = c.conrelid
                WHERE t.relname = '{table_name}'
                  AND c.conname = '{constraint_name}'
            ) THEN
                ALTER TABLE {table_name}
                ADD CONSTRAINT {constraint_name}
                CHECK ({check_sql});
            END IF;
        END $$;
        """
    )


def upgrade() -> None:
    if op.get_bind().dialect.name == "postgresql":
        # --- SAFETY FIX : un stock négatif existant ferait échouer la contrainte
        op.execute("UPDATE medicines SET stock_quantity = 0 WHERE stock_quantity < 0;")

        for table_name, checks in CHECKS.items():
            for constraint_name, check_sql in checks:
                _add_check_if_missing(table_name, constraint_name, check_sql)
        return

    # SQLite : ALTER TABLE ADD CONSTRAINT impossible, on passe par batch (recopie de table)
    for table_name, checks in CHECKS.items():
        with op.batch_alter_table(table_name) as batch:
            for constraint_name, check_sql in checks:
                batch.create_check_constraint(constraint_name, check_sql)


def downgrade() -> None:
    if op.get_bind().dialect.name == "postgresql":
        for table_name, checks in CHECKS.items():
            for constraint_name, _ in reversed(checks):
                op.execute(f"ALTER TABLE {table_name} DROP CONSTRAINT IF EXISTS {constraint_name};")
        return

    for table_name, checks in CHECKS.items():
        with op.batch_alter_table(table_name) as batch:
            for constraint_name, _ in reversed(checks):
                batch.drop_constraint(constraint_name, type_="check")
