"""pharmacy ledger schema (medicines, vendors, patients, prescriptions, stock_transactions)

Revision ID: 4f2a9c1d7e30
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4f2a9c1d7e30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")

TRANSACTION_TYPES = ("receipt", "dispense", "adjustment", "return")
PRESCRIPTION_STATUSES = ("draft", "finalized", "dispensed", "cancelled")
VENDOR_STATUSES = ("active", "inactive")


def upgrade() -> None:
    op.create_table(
        "patients",
        sa.Column("id", PK, primary_key=True),
        sa.Column("patient_code", sa.String(32), nullable=False, unique=True),
        sa.Column("name", sa.String(200), nullable=False, index=True),
        sa.Column("contact_number", sa.String(32), index=True),
        sa.Column("email", sa.String(255)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "medicines",
        sa.Column("id", PK, primary_key=True),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("generic_name", sa.String(200)),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("current_stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("low_stock_threshold", sa.Integer()),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("current_stock >= 0", name="ck_medicine_stock_nonneg"),
        sa.CheckConstraint("unit_price >= 0", name="ck_medicine_price_nonneg"),
        sa.CheckConstraint(
            "low_stock_threshold IS NULL OR low_stock_threshold >= 0",
            name="ck_medicine_threshold_nonneg",
        ),
    )

    op.create_table(
        "vendors",
        sa.Column("id", PK, primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("contact_person", sa.String(200)),
        sa.Column("phone", sa.String(32)),
        sa.Column("email", sa.String(255)),
        sa.Column("address", sa.Text()),
        sa.Column("status", sa.Enum(*VENDOR_STATUSES, name="vendor_status"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "prescriptions",
        sa.Column("id", PK, primary_key=True),
        sa.Column(
            "patient_id",
            sa.BigInteger(),
            sa.ForeignKey("patients.id", ondelete="RESTRICT"),
            nullable=False,
            index=True,
        ),
        sa.Column("doctor_id", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.Enum(*PRESCRIPTION_STATUSES, name="prescription_status"), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("created_by", sa.BigInteger()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finalized_at", sa.DateTime(timezone=True)),
        sa.Column("dispensed_at", sa.DateTime(timezone=True)),
        sa.Column("dispensed_by", sa.BigInteger()),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_prescriptions_status_created", "prescriptions", ["status", "created_at"])

    op.create_table(
        "prescription_items",
        sa.Column("id", PK, primary_key=True),
        sa.Column(
            "prescription_id",
            sa.BigInteger(),
            sa.ForeignKey("prescriptions.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("medicine_id", sa.BigInteger(), sa.ForeignKey("medicines.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("dosage", sa.String(100)),
        sa.Column("frequency", sa.String(100)),
        sa.Column("duration", sa.String(100)),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.UniqueConstraint("prescription_id", "sequence", name="uq_prescription_item_seq"),
        sa.CheckConstraint("quantity > 0", name="ck_prescription_item_qty_pos"),
        sa.CheckConstraint("unit_price >= 0", name="ck_prescription_item_price_nonneg"),
    )

    op.create_table(
        "stock_transactions",
        sa.Column("id", PK, primary_key=True),
        sa.Column(
            "medicine_id",
            sa.BigInteger(),
            sa.ForeignKey("medicines.id", ondelete="RESTRICT"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "transaction_type",
            sa.Enum(*TRANSACTION_TYPES, name="stock_transaction_type"),
            nullable=False,
        ),
        sa.Column("quantity_delta", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("vendor_id", sa.BigInteger(), sa.ForeignKey("vendors.id", ondelete="RESTRICT"), index=True),
        sa.Column(
            "prescription_id",
            sa.BigInteger(),
            sa.ForeignKey("prescriptions.id", ondelete="RESTRICT"),
            index=True,
        ),
        sa.Column(
            "corrects_transaction_id",
            sa.BigInteger(),
            sa.ForeignKey("stock_transactions.id", ondelete="RESTRICT"),
        ),
        sa.Column("reason", sa.String(255)),
        sa.Column("actor_id", sa.BigInteger(), nullable=False),
        sa.Column("idempotency_key", sa.String(64), unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("quantity_delta <> 0", name="ck_stock_tx_delta_nonzero"),
        sa.CheckConstraint("balance_after >= 0", name="ck_stock_tx_balance_nonneg"),
        sa.CheckConstraint(
            "transaction_type <> 'receipt' OR vendor_id IS NOT NULL",
            name="ck_stock_tx_receipt_vendor",
        ),
    )
    op.create_index("ix_stock_tx_medicine_time", "stock_transactions", ["medicine_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_stock_tx_medicine_time", table_name="stock_transactions")
    op.drop_table("stock_transactions")
    op.drop_table("prescription_items")
    op.drop_index("ix_prescriptions_status_created", table_name="prescriptions")
    op.drop_table("prescriptions")
    op.drop_table("vendors")
    op.drop_table("medicines")
    op.drop_table("patients")

    # types ENUM Postgres (no-op ailleurs)
    bind = op.get_bind()
    for name in ("stock_transaction_type", "prescription_status", "vendor_status"):
        sa.Enum(name=name).drop(bind, checkfirst=True)
