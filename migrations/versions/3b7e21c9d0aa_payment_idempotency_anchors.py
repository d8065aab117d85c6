"""payment idempotency anchors, promo redemption bound, append-only ledger

Revision ID: 3b7e21c9d0aa
Revises:
Create Date: 2026-10-19 09:12:40.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3b7e21c9d0aa'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


_UNIQUE = (
    ("paymentrecord", "paymentrecord_gateway_order_id_key", "gateway_order_id"),
    ("paymentrecord", "paymentrecord_gateway_payment_id_key", "gateway_payment_id"),
    ("orders", "orders_payment_record_id_key", "payment_record_id"),
    ("orders", "orders_order_number_key", "order_number"),
)


def upgrade():
    for table, name, column in _UNIQUE:
        op.execute(
            f"""
            DO $$
            BEGIN
                IF NOT EXISTS (
                    SELECT 1
                    FROM pg_constraint
                    WHERE conname = '{name}'
                    AND conrelid = '{table}'::regclass
                ) THEN
                    ALTER TABLE {table}
                    ADD CONSTRAINT {name} UNIQUE ({column});
                END IF;
            END;
            $$;
            """
        )

    op.create_check_constraint(
        "promocode_used_count_within_max_uses", "promocode", sa.text("used_count <= max_uses"))
    op.create_check_constraint(
        "product_stock_qty_non_negative", "product", sa.text("stock_qty >= 0"))

    op.execute(
        """
        CREATE OR REPLACE FUNCTION rawmaterialledger_reject_change() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'rawmaterialledger is append-only';
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        CREATE TRIGGER rawmaterialledger_append_only
        BEFORE UPDATE OR DELETE ON rawmaterialledger
        FOR EACH ROW EXECUTE FUNCTION rawmaterialledger_reject_change();
        """
    )


def downgrade():
    op.execute("DROP TRIGGER IF EXISTS rawmaterialledger_append_only ON rawmaterialledger;")
    op.execute("DROP FUNCTION IF EXISTS rawmaterialledger_reject_change();")
    op.drop_constraint("product_stock_qty_non_negative", "product", type_="check")
    op.drop_constraint("promocode_used_count_within_max_uses", "promocode", type_="check")
    for table, name, _ in reversed(_UNIQUE):
        op.execute(f"ALTER TABLE {table} DROP CONSTRAINT IF EXISTS {name};")
