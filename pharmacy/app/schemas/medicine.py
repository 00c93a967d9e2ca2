from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class MedicineCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    generic_name: str | None = Field(default=None, max_length=200)
    unit_price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    low_stock_threshold: int | None = Field(default=None, ge=0)
    active: bool = True


class MedicineUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    generic_name: str | None = Field(default=None, max_length=200)
    unit_price: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    low_stock_threshold: int | None = Field(default=None, ge=0)
    active: bool | None = None


class MedicineRead(BaseModel):
    id: int
    name: str
    generic_name: str | None
    unit_price: Decimal
    current_stock: int  # READ ONLY : dérivé du ledger
    low_stock_threshold: int | None
    active: bool
    batch_number: str | None = None
    expiry_date: date | None = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
