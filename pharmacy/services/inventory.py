from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select, func, case
from sqlalchemy.orm import Session

from pharmacy.app.db.models.models_v1 import Medicine, StockTransaction
from pharmacy.app.core.config import settings
from pharmacy.services.errors import InsufficientStock, InvalidQuantity, NotFound

logger = logging.getLogger(__name__)

# plafond d'un mouvement ou d'une ligne d'ordonnance
MAX_QUANTITY = 1_000_000
# INTEGER sql
MAX_STOCK = 2_147_483_647


@dataclass(frozen=True)
class StockSummary:
    total_medicines: int
    low_stock_count: int
    out_of_stock_count: int
    total_stock_value: Decimal
    expired_count: int = 0
    expiring_count: int = 0


def current_stock(db: Session, medicine_id: int) -> int:
    """
    Stock courant projeté (compteur maintenu par le ledger).
    Lit toujours la base : reflète tout append déjà commité.
    """
    qty = db.execute(select(Medicine.current_stock).where(Medicine.id == medicine_id)).scalar_one_or_none()
    if qty is None:
        raise NotFound(f"Medicine {medicine_id} not found", details={"medicine_id": medicine_id})
    return int(qty)


def all_medicine_ids(db: Session) -> list[int]:
    return sorted(int(mid) for mid in db.execute(select(Medicine.id)).scalars().all())


def would_underflow(db: Session, medicine_id: int, requested_dispense_qty: int) -> bool:
    return current_stock(db, medicine_id) - int(requested_dispense_qty) < 0


def lock_medicines(db: Session, medicine_ids: Iterable[int]) -> dict[int, Medicine]:
    """
    Verrouille (FOR UPDATE) les médicaments par id croissant et recharge leurs
    valeurs depuis la base. À appeler sous le guard des mêmes médicaments.
    """
    ids = sorted({int(mid) for mid in medicine_ids if mid is not None})
    if not ids:
        return {}

    rows = (
        db.execute(
            select(Medicine)
            .where(Medicine.id.in_(ids))
            .order_by(Medicine.id.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        .scalars()
        .all()
    )
    found = {int(m.id): m for m in rows}
    missing = [mid for mid in ids if mid not in found]
    if missing:
        raise NotFound(f"Medicine {missing[0]} not found", details={"medicine_id": missing[0]})
    return found


def apply_delta(medicine: Medicine, delta: int) -> int:
    """Seul point d'écriture de current_stock. Refuse tout stock négatif."""
    new_stock = int(medicine.current_stock) + int(delta)
    if new_stock < 0:
        raise InsufficientStock(
            medicine_id=int(medicine.id),
            medicine_name=medicine.name,
            available=int(medicine.current_stock),
            requested=-int(delta),
        )
    if new_stock > MAX_STOCK:
        raise InvalidQuantity(
            f"Stock for {medicine.name} would exceed {MAX_STOCK}",
            details={"medicine_id": int(medicine.id), "current_stock": int(medicine.current_stock)},
        )
    medicine.current_stock = new_stock
    return new_stock


def ledger_balances(db: Session, medicine_ids: Iterable[int] | None = None) -> dict[int, int]:
    """SUM(quantity_delta) par médicament, source de vérité du stock."""
    stmt = select(
        StockTransaction.medicine_id,
        func.coalesce(func.sum(StockTransaction.quantity_delta), 0),
    ).group_by(StockTransaction.medicine_id)

    if medicine_ids is not None:
        ids = sorted({int(mid) for mid in medicine_ids if mid is not None})
        if not ids:
            return {}
        stmt = stmt.where(StockTransaction.medicine_id.in_(ids))

    return {int(mid): int(qty) for mid, qty in db.execute(stmt).all()}


def rebuild_current_stock(db: Session, medicine_ids: Iterable[int] | None = None) -> dict[int, tuple[int, int]]:
    """
    Réaligne current_stock sur les sommes du ledger.

    Propriétés :
    - déterministe
    - idempotent
    - verrouillage SQL (FOR UPDATE), à appeler sous le guard
    - ne commit pas : l'appelant décide

    Retourne {medicine_id: (ancien, nouveau)} pour les compteurs corrigés.
    """
    if medicine_ids is None:
        ids = all_medicine_ids(db)
    else:
        ids = sorted({int(mid) for mid in medicine_ids if mid is not None})
    if not ids:
        return {}

    medicines = lock_medicines(db, ids)
    balances = ledger_balances(db, ids)

    corrections: dict[int, tuple[int, int]] = {}
    for mid in ids:
        expected = balances.get(mid, 0)
        med = medicines[mid]
        if int(med.current_stock) != expected:
            corrections[mid] = (int(med.current_stock), expected)
            logger.warning(
                "stock drift on medicine %s: counter=%s ledger=%s",
                mid,
                med.current_stock,
                expected,
            )
            # un ledger négatif viole la contrainte : on clampe, l'écart reste visible dans le retour
            med.current_stock = max(expected, 0)
    return corrections


def stock_summary(db: Session, *, today: date | None = None) -> StockSummary:
    """
    Vue d'ensemble du stock actif : compteurs d'alerte et valorisation.
    Les compteurs de péremption ne portent que sur les médicaments en stock.
    """
    today = today or date.today()
    horizon = today + timedelta(days=settings.EXPIRY_WARNING_DAYS)
    threshold = func.coalesce(Medicine.low_stock_threshold, 0)
    in_stock = Medicine.current_stock > 0
    expired = in_stock & (Medicine.expiry_date <= today)
    expiring = in_stock & (Medicine.expiry_date > today) & (Medicine.expiry_date <= horizon)
    row = db.execute(
        select(
            func.count(Medicine.id),
            func.coalesce(
                func.sum(
                    case(
                        ((Medicine.current_stock > 0) & (Medicine.current_stock <= threshold), 1),
                        else_=0,
                    )
                ),
                0,
            ),
            func.coalesce(func.sum(case((Medicine.current_stock == 0, 1), else_=0)), 0),
            func.coalesce(func.sum(Medicine.current_stock * Medicine.unit_price), 0),
            func.coalesce(func.sum(case((expired, 1), else_=0)), 0),
            func.coalesce(func.sum(case((expiring, 1), else_=0)), 0),
        ).where(Medicine.active.is_(True))
    ).one()

    total, low, out, value, n_expired, n_expiring = row
    return StockSummary(
        total_medicines=int(total),
        low_stock_count=int(low),
        out_of_stock_count=int(out),
        total_stock_value=Decimal(str(value)).quantize(Decimal("0.01")),
        expired_count=int(n_expired),
        expiring_count=int(n_expiring),
    )
