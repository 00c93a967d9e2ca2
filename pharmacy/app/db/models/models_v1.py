from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String,
    Integer,
    BigInteger,
    Date,
    DateTime,
    Boolean,
    ForeignKey,
    Numeric,
    Text,
    Enum,
    UniqueConstraint,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pharmacy.app.db.base import Base
from pharmacy.app.db.models.core_types import (
    BigIntPK,
    TransactionType,
    PrescriptionStatus,
    VendorStatus,
)


def _enum(enum_cls, name: str) -> Enum:
    # stocke les valeurs ("return") et non les noms python ("return_")
    return Enum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])


# ---------- MASTER DATA ----------
class Patient(Base):
    __tablename__ = "patients"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    patient_code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    contact_number: Mapped[str | None] = mapped_column(String(32), index=True)
    email: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)


class Medicine(Base):
    __tablename__ = "medicines"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    generic_name: Mapped[str | None] = mapped_column(String(200))
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)

    # Dérivé du ledger : seul services.inventory.apply_delta le modifie
    current_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    low_stock_threshold: Mapped[int | None] = mapped_column(Integer)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # lot en rayon : repris de la dernière réception qui les renseigne
    batch_number: Mapped[str | None] = mapped_column(String(64))
    expiry_date: Mapped[date | None] = mapped_column(Date, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("current_stock >= 0", name="ck_medicine_stock_nonneg"),
        CheckConstraint("unit_price >= 0", name="ck_medicine_price_nonneg"),
        CheckConstraint(
            "low_stock_threshold IS NULL OR low_stock_threshold >= 0",
            name="ck_medicine_threshold_nonneg",
        ),
    )


class Vendor(Base):
    __tablename__ = "vendors"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    contact_person: Mapped[str | None] = mapped_column(String(200))
    phone: Mapped[str | None] = mapped_column(String(32))
    email: Mapped[str | None] = mapped_column(String(255))
    address: Mapped[str | None] = mapped_column(Text)
    status: Mapped[VendorStatus] = mapped_column(
        _enum(VendorStatus, "vendor_status"),
        default=VendorStatus.active,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )


# ---------- PRESCRIPTIONS ----------
class Prescription(Base):
    __tablename__ = "prescriptions"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    patient_id: Mapped[int] = mapped_column(
        ForeignKey("patients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    doctor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[PrescriptionStatus] = mapped_column(
        _enum(PrescriptionStatus, "prescription_status"),
        default=PrescriptionStatus.draft,
        nullable=False,
    )
    notes: Mapped[str | None] = mapped_column(Text)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)

    created_by: Mapped[int | None] = mapped_column(BigInteger)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    dispensed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    dispensed_by: Mapped[int | None] = mapped_column(BigInteger)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    patient: Mapped[Patient] = relationship()
    items: Mapped[list["PrescriptionItem"]] = relationship(
        back_populates="prescription",
        cascade="all, delete-orphan",
        order_by="PrescriptionItem.sequence",
    )

    __table_args__ = (Index("ix_prescriptions_status_created", "status", "created_at"),)


class PrescriptionItem(Base):
    __tablename__ = "prescription_items"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    prescription_id: Mapped[int] = mapped_column(
        ForeignKey("prescriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    medicine_id: Mapped[int] = mapped_column(ForeignKey("medicines.id", ondelete="RESTRICT"), nullable=False)
    dosage: Mapped[str | None] = mapped_column(String(100))
    frequency: Mapped[str | None] = mapped_column(String(100))
    duration: Mapped[str | None] = mapped_column(String(100))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    prescription: Mapped[Prescription] = relationship(back_populates="items")
    medicine: Mapped[Medicine] = relationship()

    __table_args__ = (
        UniqueConstraint("prescription_id", "sequence", name="uq_prescription_item_seq"),
        CheckConstraint("quantity > 0", name="ck_prescription_item_qty_pos"),
        CheckConstraint("unit_price >= 0", name="ck_prescription_item_price_nonneg"),
    )


# ---------- INVENTORY LEDGER ----------
class StockTransaction(Base):
    __tablename__ = "stock_transactions"
    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    medicine_id: Mapped[int] = mapped_column(
        ForeignKey("medicines.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    transaction_type: Mapped[TransactionType] = mapped_column(
        _enum(TransactionType, "stock_transaction_type"),
        nullable=False,
    )
    quantity_delta: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)

    vendor_id: Mapped[int | None] = mapped_column(ForeignKey("vendors.id", ondelete="RESTRICT"), index=True)
    prescription_id: Mapped[int | None] = mapped_column(
        ForeignKey("prescriptions.id", ondelete="RESTRICT"),
        index=True,
    )
    corrects_transaction_id: Mapped[int | None] = mapped_column(
        ForeignKey("stock_transactions.id", ondelete="RESTRICT")
    )
    reason: Mapped[str | None] = mapped_column(String(255))

    # réceptions uniquement
    batch_number: Mapped[str | None] = mapped_column(String(64))
    expiry_date: Mapped[date | None] = mapped_column(Date)

    actor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    idempotency_key: Mapped[str | None] = mapped_column(String(64), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    medicine: Mapped[Medicine] = relationship()
    vendor: Mapped[Vendor | None] = relationship()

    __table_args__ = (
        CheckConstraint("quantity_delta <> 0", name="ck_stock_tx_delta_nonzero"),
        CheckConstraint("balance_after >= 0", name="ck_stock_tx_balance_nonneg"),
        CheckConstraint(
            "transaction_type <> 'receipt' OR vendor_id IS NOT NULL",
            name="ck_stock_tx_receipt_vendor",
        ),
        CheckConstraint(
            "transaction_type = 'receipt' OR (batch_number IS NULL AND expiry_date IS NULL)",
            name="ck_stock_tx_batch_receipt_only",
        ),
        Index("ix_stock_tx_medicine_time", "medicine_id", "created_at"),
    )
