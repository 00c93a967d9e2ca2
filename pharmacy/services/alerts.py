from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from pharmacy.app.core.config import settings
from pharmacy.app.db.models.core_types import AlertSeverity
from pharmacy.app.db.models.models_v1 import Medicine
from pharmacy.services.errors import ValidationError

_SEVERITY_RANK = {
    AlertSeverity.expired: 0,
    AlertSeverity.out: 1,
    AlertSeverity.low: 2,
    AlertSeverity.expiring: 3,
}


@dataclass(frozen=True)
class StockAlert:
    medicine_id: int
    medicine_name: str
    current_stock: int
    threshold: int | None
    severity: AlertSeverity
    expiry_date: date | None = None
    days_to_expiry: int | None = None


def classify(current_stock: int, threshold: int | None) -> AlertSeverity | None:
    """
    out : stock == 0
    low : 0 < stock <= seuil
    Seuil absent (ou 0) : seule l'alerte "out" est possible.
    """
    if current_stock <= 0:
        return AlertSeverity.out
    if threshold is not None and current_stock <= threshold:
        return AlertSeverity.low
    return None


def classify_expiry(expiry_date: date | None, today: date, window_days: int) -> AlertSeverity | None:
    """
    expired  : péremption aujourd'hui ou passée
    expiring : péremption dans les `window_days` jours
    """
    if expiry_date is None:
        return None
    if expiry_date <= today:
        return AlertSeverity.expired
    if expiry_date <= today + timedelta(days=window_days):
        return AlertSeverity.expiring
    return None


def _stock_alerts(db: Session, search: str | None) -> list[StockAlert]:
    stmt = (
        select(Medicine.id, Medicine.name, Medicine.current_stock, Medicine.low_stock_threshold)
        .where(Medicine.active.is_(True))
        .where(Medicine.current_stock <= func.coalesce(Medicine.low_stock_threshold, 0))
    )
    if search:
        stmt = stmt.where(func.lower(Medicine.name).contains(search, autoescape=True))

    alerts = []
    for mid, name, qty, threshold in db.execute(stmt).all():
        level = classify(int(qty), threshold)
        if level is not None:
            alerts.append(StockAlert(int(mid), name, int(qty), threshold, level))
    return alerts


def _expiry_alerts(db: Session, search: str | None, today: date) -> list[StockAlert]:
    window = settings.EXPIRY_WARNING_DAYS
    # un lot épuisé ne périme plus rien en rayon
    stmt = (
        select(
            Medicine.id,
            Medicine.name,
            Medicine.current_stock,
            Medicine.low_stock_threshold,
            Medicine.expiry_date,
        )
        .where(Medicine.active.is_(True))
        .where(Medicine.current_stock > 0)
        .where(Medicine.expiry_date.is_not(None))
        .where(Medicine.expiry_date <= today + timedelta(days=window))
    )
    if search:
        stmt = stmt.where(func.lower(Medicine.name).contains(search, autoescape=True))

    alerts = []
    for mid, name, qty, threshold, expiry in db.execute(stmt).all():
        level = classify_expiry(expiry, today, window)
        if level is None:
            continue
        alerts.append(
            StockAlert(
                medicine_id=int(mid),
                medicine_name=name,
                current_stock=int(qty),
                threshold=threshold,
                severity=level,
                expiry_date=expiry,
                days_to_expiry=(expiry - today).days,
            )
        )
    return alerts


def compute_alerts(
    db: Session,
    *,
    severity: AlertSeverity | str | None = None,
    search: str | None = None,
    today: date | None = None,
) -> list[StockAlert]:
    """
    Alertes recalculées à la demande depuis les médicaments actifs.
    Aucune écriture, aucun état persisté : deux appels sans mouvement entre
    eux renvoient la même liste.

    Un médicament peut porter deux alertes (ex. low + expiring).
    Tri : expired, out, low, expiring ; puis par nom.
    """
    if severity is not None:
        try:
            severity = AlertSeverity(severity)
        except ValueError:
            raise ValidationError(f"Invalid severity {severity!r}") from None

    term = search.strip().lower() if search and search.strip() else None
    alerts = _stock_alerts(db, term) + _expiry_alerts(db, term, today or date.today())
    if severity is not None:
        alerts = [a for a in alerts if a.severity == severity]

    alerts.sort(key=lambda a: (_SEVERITY_RANK[a.severity], a.medicine_name.lower(), a.medicine_id))
    return alerts
