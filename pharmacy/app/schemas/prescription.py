from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from pharmacy.app.db.models.core_types import PrescriptionStatus
from pharmacy.services.inventory import MAX_QUANTITY


class PrescriptionItemCreate(BaseModel):
    medicine_id: int
    # positivité contrôlée par le service (InvalidQuantity)
    quantity: int = Field(le=MAX_QUANTITY)
    dosage: str | None = Field(default=None, max_length=100)
    frequency: str | None = Field(default=None, max_length=100)
    duration: str | None = Field(default=None, max_length=100)


class PrescriptionCreate(BaseModel):
    patient_id: int
    doctor_id: int
    notes: str | None = None
    items: list[PrescriptionItemCreate] = Field(default_factory=list)
    # crée directement une ordonnance finalisée (même transaction)
    finalize: bool = False


class PrescriptionItemRead(BaseModel):
    id: int
    sequence: int
    medicine_id: int
    dosage: str | None
    frequency: str | None
    duration: str | None
    quantity: int
    unit_price: Decimal

    class Config:
        from_attributes = True


class PrescriptionRead(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    status: PrescriptionStatus
    notes: str | None
    total_amount: Decimal
    created_by: int | None
    created_at: datetime
    finalized_at: datetime | None
    dispensed_at: datetime | None
    dispensed_by: int | None
    cancelled_at: datetime | None
    items: list[PrescriptionItemRead]

    class Config:
        from_attributes = True
