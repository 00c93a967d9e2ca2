"""
Catalogue médicaments.

Le stock n'est jamais modifiable ici : un médicament naît à 0 et ne bouge
que via le ledger (receipt / adjustment ...).
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from sqlalchemy import select, func, or_
from sqlalchemy.orm import Session

from pharmacy.app.db.models.models_v1 import Medicine
from pharmacy.services.errors import DuplicateMedicine, NotFound, ValidationError
from pharmacy.services.search import like_pattern
from pharmacy.services.uow import unit_of_work

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"name", "generic_name", "unit_price", "low_stock_threshold", "active"}
# low_stock_threshold et generic_name acceptent null (effacement)
NOT_NULLABLE_FIELDS = {"unit_price", "active"}


def get_medicine(db: Session, medicine_id: int) -> Medicine:
    med = db.get(Medicine, medicine_id)
    if not med:
        raise NotFound(f"Medicine {medicine_id} not found", details={"medicine_id": medicine_id})
    return med


def _check_values(unit_price: Decimal | None, low_stock_threshold: int | None) -> None:
    if unit_price is not None and Decimal(unit_price) < 0:
        raise ValidationError("unit_price must be non-negative")
    if low_stock_threshold is not None and low_stock_threshold < 0:
        raise ValidationError("low_stock_threshold must be non-negative")


def _name_taken(db: Session, name: str, exclude_id: int | None = None) -> bool:
    stmt = select(Medicine.id).where(func.lower(Medicine.name) == name.strip().lower())
    if exclude_id is not None:
        stmt = stmt.where(Medicine.id != exclude_id)
    return db.execute(stmt).first() is not None


def create_medicine(
    db: Session,
    *,
    name: str,
    unit_price: Decimal,
    low_stock_threshold: int | None = None,
    generic_name: str | None = None,
    active: bool = True,
) -> Medicine:
    if not name or not name.strip():
        raise ValidationError("name is required")
    _check_values(unit_price, low_stock_threshold)

    with unit_of_work(db):
        if _name_taken(db, name):
            raise DuplicateMedicine(f"Medicine {name.strip()} already exists")
        med = Medicine(
            name=name.strip(),
            generic_name=generic_name,
            unit_price=Decimal(unit_price),
            current_stock=0,
            low_stock_threshold=low_stock_threshold,
            active=active,
        )
        db.add(med)

    db.refresh(med)
    logger.info("medicine #%s created (%s)", med.id, med.name)
    return med


def update_medicine(db: Session, medicine_id: int, changes: dict[str, Any]) -> Medicine:
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields not updatable: {', '.join(sorted(unknown))}")
    cleared = sorted(field for field in NOT_NULLABLE_FIELDS if field in changes and changes[field] is None)
    if cleared:
        raise ValidationError(f"Fields cannot be null: {', '.join(cleared)}", details={"fields": cleared})
    _check_values(changes.get("unit_price"), changes.get("low_stock_threshold"))

    with unit_of_work(db):
        med = get_medicine(db, medicine_id)
        if "name" in changes:
            name = (changes["name"] or "").strip()
            if not name:
                raise ValidationError("name is required")
            if _name_taken(db, name, exclude_id=med.id):
                raise DuplicateMedicine(f"Medicine {name} already exists")
            changes = {**changes, "name": name}
        for field, value in changes.items():
            setattr(med, field, value)

    db.refresh(med)
    return med


def list_medicines(
    db: Session,
    *,
    search: str | None = None,
    include_inactive: bool = False,
    limit: int = 100,
) -> list[Medicine]:
    stmt = select(Medicine).order_by(Medicine.name, Medicine.id).limit(max(1, min(limit, 500)))
    if not include_inactive:
        stmt = stmt.where(Medicine.active.is_(True))
    if search and search.strip():
        term = like_pattern(search.strip())
        stmt = stmt.where(
            or_(
                func.lower(Medicine.name).like(term, escape="\\"),
                func.lower(func.coalesce(Medicine.generic_name, "")).like(term, escape="\\"),
            )
        )
    return list(db.execute(stmt).scalars().all())
