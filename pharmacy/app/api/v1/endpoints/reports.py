from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from pharmacy.app.api.deps import get_db
from pharmacy.app.api.response import ok
from pharmacy.app.schemas.report import DispensingReportRead
from pharmacy.services.reports import dispensing_report

router = APIRouter(prefix="/reports")


@router.get("/dispensing")
def get_dispensing_report(
    date_from: date | None = None,
    date_to: date | None = None,
    period: str = "month",
    db: Session = Depends(get_db),
):
    """
    Dispensations par période (READ ONLY)
    - bornes incluses, 30 derniers jours par défaut
    - period : day | week | month | year
    """
    report = dispensing_report(db, date_from=date_from, date_to=date_to, period=period)
    return ok(DispensingReportRead.model_validate(report))
