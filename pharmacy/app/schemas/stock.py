from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from pharmacy.app.db.models.core_types import AlertSeverity, TransactionType
from pharmacy.services.inventory import MAX_QUANTITY


class StockTransactionCreate(BaseModel):
    """Saisie manuelle : les dispensations passent uniquement par les ordonnances."""

    medicine_id: int
    transaction_type: Literal["receipt", "adjustment", "return"]
    quantity_delta: int = Field(ge=-MAX_QUANTITY, le=MAX_QUANTITY)
    vendor_id: int | None = None
    corrects_transaction_id: int | None = None
    reason: str | None = Field(default=None, max_length=255)
    # réceptions uniquement
    batch_number: str | None = Field(default=None, max_length=64)
    expiry_date: date | None = None


class StockTransactionRead(BaseModel):
    id: int
    medicine_id: int
    transaction_type: TransactionType
    quantity_delta: int
    balance_after: int
    vendor_id: int | None
    prescription_id: int | None
    corrects_transaction_id: int | None
    reason: str | None
    batch_number: str | None = None
    expiry_date: date | None = None
    actor_id: int
    created_at: datetime

    class Config:
        from_attributes = True


class StockAlertRead(BaseModel):
    medicine_id: int
    medicine_name: str
    current_stock: int
    threshold: int | None
    severity: AlertSeverity
    expiry_date: date | None = None
    days_to_expiry: int | None = None

    class Config:
        from_attributes = True


class StockSummaryRead(BaseModel):
    total_medicines: int
    low_stock_count: int
    out_of_stock_count: int
    expired_count: int
    expiring_count: int
    total_stock_value: Decimal

    class Config:
        from_attributes = True


class StockRebuildRequest(BaseModel):
    medicine_ids: list[int] | None = None
