from datetime import date
from decimal import Decimal

from pydantic import BaseModel


class PeriodRowRead(BaseModel):
    period: str
    prescriptions: int
    units: int
    revenue: Decimal

    class Config:
        from_attributes = True


class ActorRowRead(BaseModel):
    actor_id: int
    dispensings: int
    units: int
    prescriptions: int

    class Config:
        from_attributes = True


class DispensingReportRead(BaseModel):
    date_from: date
    date_to: date
    period: str
    rows: list[PeriodRowRead]
    by_actor: list[ActorRowRead]
    total_prescriptions: int
    total_units: int
    total_revenue: Decimal

    class Config:
        from_attributes = True
