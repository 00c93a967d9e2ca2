"""
Rapport de dispensation par période, calculé depuis le ledger.

Seules les lignes `dispense` comptent : une ordonnance annulée ou jamais
dispensée n'apparaît pas. Le chiffre d'affaires d'une période est la somme
des totaux des ordonnances dispensées dans la période (chaque ordonnance
une seule fois, quel que soit son nombre de lignes).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from pharmacy.app.db.models.core_types import TransactionType
from pharmacy.app.db.models.models_v1 import Prescription, StockTransaction
from pharmacy.services.errors import ValidationError

PERIODS = ("day", "week", "month", "year")
DEFAULT_RANGE_DAYS = 30


@dataclass
class PeriodRow:
    period: str
    prescriptions: int = 0
    units: int = 0
    revenue: Decimal = Decimal("0.00")
    _seen: set = field(default_factory=set, repr=False)


@dataclass
class ActorRow:
    actor_id: int
    dispensings: int = 0
    units: int = 0
    prescriptions: int = 0
    _seen: set = field(default_factory=set, repr=False)


@dataclass
class DispensingReport:
    date_from: date
    date_to: date
    period: str
    rows: list[PeriodRow]
    by_actor: list[ActorRow]
    total_prescriptions: int
    total_units: int
    total_revenue: Decimal


def period_label(moment: datetime, period: str) -> str:
    if period == "day":
        return moment.strftime("%Y-%m-%d")
    if period == "week":
        year, week, _ = moment.isocalendar()
        return f"{year}-W{week:02d}"
    if period == "month":
        return moment.strftime("%Y-%m")
    return moment.strftime("%Y")


def _resolve_range(date_from: date | None, date_to: date | None) -> tuple[date, date]:
    date_to = date_to or datetime.utcnow().date()
    date_from = date_from or date_to - timedelta(days=DEFAULT_RANGE_DAYS - 1)
    if date_from > date_to:
        raise ValidationError(
            "date_from must be before date_to",
            details={"date_from": date_from.isoformat(), "date_to": date_to.isoformat()},
        )
    return date_from, date_to


def dispensing_report(
    db: Session,
    *,
    date_from: date | None = None,
    date_to: date | None = None,
    period: str = "month",
) -> DispensingReport:
    """
    Agrège les dispensations par période (day / week / month / year) et par
    acteur, bornes incluses, plus récente période d'abord.
    """
    if period not in PERIODS:
        raise ValidationError(f"Invalid period {period!r}", details={"allowed": list(PERIODS)})
    date_from, date_to = _resolve_range(date_from, date_to)

    stmt = (
        select(
            StockTransaction.created_at,
            StockTransaction.quantity_delta,
            StockTransaction.prescription_id,
            StockTransaction.actor_id,
            Prescription.total_amount,
        )
        .outerjoin(Prescription, Prescription.id == StockTransaction.prescription_id)
        .where(StockTransaction.transaction_type == TransactionType.dispense)
        .where(StockTransaction.created_at >= datetime.combine(date_from, time.min))
        .where(StockTransaction.created_at < datetime.combine(date_to + timedelta(days=1), time.min))
        .order_by(StockTransaction.created_at, StockTransaction.id)
    )

    by_period: dict[str, PeriodRow] = {}
    by_actor: dict[int, ActorRow] = {}
    counted: set[int] = set()
    total_units = 0
    total_revenue = Decimal("0")

    for created_at, delta, rx_id, actor_id, rx_total in db.execute(stmt).all():
        units = -int(delta)
        label = period_label(created_at, period)
        row = by_period.setdefault(label, PeriodRow(period=label))
        row.units += units
        total_units += units
        if rx_id is not None and rx_id not in row._seen:
            row._seen.add(rx_id)
            row.prescriptions += 1
            row.revenue += Decimal(rx_total or 0)
        if rx_id is not None and rx_id not in counted:
            counted.add(rx_id)
            total_revenue += Decimal(rx_total or 0)

        actor = by_actor.setdefault(int(actor_id), ActorRow(actor_id=int(actor_id)))
        actor.dispensings += 1
        actor.units += units
        if rx_id is not None and rx_id not in actor._seen:
            actor._seen.add(rx_id)
            actor.prescriptions += 1

    rows = sorted(by_period.values(), key=lambda r: r.period, reverse=True)
    for row in rows:
        row.revenue = row.revenue.quantize(Decimal("0.01"))

    return DispensingReport(
        date_from=date_from,
        date_to=date_to,
        period=period,
        rows=rows,
        by_actor=sorted(by_actor.values(), key=lambda a: (-a.units, a.actor_id)),
        total_prescriptions=len(counted),
        total_units=total_units,
        total_revenue=total_revenue.quantize(Decimal("0.01")),
    )
