"""add batch / expiry on medicines and receipts

Revision ID: 9c7e2b4a61f8
Revises: 4f2a9c1d7e30
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "9c7e2b4a61f8"
down_revision: Union[str, Sequence[str], None] = "4f2a9c1d7e30"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CK_BATCH = "ck_stock_tx_batch_receipt_only"
IX_EXPIRY = "ix_medicines_expiry_date"


def upgrade() -> None:
    with op.batch_alter_table("medicines") as batch:
        batch.add_column(sa.Column("batch_number", sa.String(64)))
        batch.add_column(sa.Column("expiry_date", sa.Date()))
        batch.create_index(IX_EXPIRY, ["expiry_date"])

    with op.batch_alter_table("stock_transactions") as batch:
        batch.add_column(sa.Column("batch_number", sa.String(64)))
        batch.add_column(sa.Column("expiry_date", sa.Date()))
        batch.create_check_constraint(
            CK_BATCH,
            "transaction_type = 'receipt' OR (batch_number IS NULL AND expiry_date IS NULL)",
        )


def downgrade() -> None:
    with op.batch_alter_table("stock_transactions") as batch:
        batch.drop_constraint(CK_BATCH, type_="check")
        batch.drop_column("expiry_date")
        batch.drop_column("batch_number")

    with op.batch_alter_table("medicines") as batch:
        batch.drop_index(IX_EXPIRY)
        batch.drop_column("expiry_date")
        batch.drop_column("batch_number")
