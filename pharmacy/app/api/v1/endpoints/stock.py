from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from pharmacy.app.api.deps import get_actor_id, get_db
from pharmacy.app.api.response import ok
from pharmacy.app.db.models.core_types import AlertSeverity
from pharmacy.app.schemas.stock import StockAlertRead, StockRebuildRequest, StockSummaryRead
from pharmacy.services.alerts import compute_alerts
from pharmacy.services.inventory import all_medicine_ids, rebuild_current_stock, stock_summary
from pharmacy.services.locks import medicine_key, stock_guard
from pharmacy.services.uow import unit_of_work

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stock")


@router.get("/alerts")
def get_stock_alerts(
    severity: AlertSeverity | None = None,
    search: str | None = None,
    db: Session = Depends(get_db),
):
    """
    Alertes (READ ONLY)
    - recalculées à chaque appel, jamais stockées
    - expired, out, low, expiring ; puis par nom
    """
    alerts = compute_alerts(db, severity=severity, search=search)
    return ok([StockAlertRead.model_validate(a) for a in alerts])


@router.get("/summary")
def get_stock_summary(db: Session = Depends(get_db)):
    return ok(StockSummaryRead.model_validate(stock_summary(db)))


@router.post("/rebuild")
def rebuild_stock(
    payload: StockRebuildRequest,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    """Maintenance : réaligne les compteurs sur le ledger."""
    ids = payload.medicine_ids if payload.medicine_ids is not None else all_medicine_ids(db)

    with stock_guard.hold([medicine_key(mid) for mid in ids]):
        with unit_of_work(db):
            corrections = rebuild_current_stock(db, ids)

    if corrections:
        logger.warning("stock rebuild by %s corrected %s counters", actor_id, len(corrections))
    return ok(
        {
            "checked": len(ids),
            "corrections": [
                {"medicine_id": mid, "before": before, "after": after}
                for mid, (before, after) in sorted(corrections.items())
            ],
        }
    )
