from __future__ import annotations

import enum
import logging
from typing import Any

from sqlalchemy import select, func, or_
from sqlalchemy.orm import Session

from pharmacy.app.db.models.core_types import VendorStatus
from pharmacy.app.db.models.models_v1 import StockTransaction, Vendor
from pharmacy.services.errors import DuplicateVendor, NotFound, ValidationError, VendorHasHistory
from pharmacy.services.search import like_pattern
from pharmacy.services.uow import unit_of_work

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"name", "contact_person", "phone", "email", "address", "status"}
STATUS_FILTERS = {"active", "inactive", "all"}


class DeleteOutcome(str, enum.Enum):
    deleted = "deleted"
    deactivated = "deactivated"


def get_vendor(db: Session, vendor_id: int) -> Vendor:
    vendor = db.get(Vendor, vendor_id)
    if not vendor:
        raise NotFound(f"Vendor {vendor_id} not found", details={"vendor_id": vendor_id})
    return vendor


def _name_taken(db: Session, name: str, exclude_id: int | None = None) -> bool:
    stmt = select(Vendor.id).where(func.lower(Vendor.name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(Vendor.id != exclude_id)
    return db.execute(stmt).first() is not None


def create_vendor(
    db: Session,
    *,
    name: str,
    contact_person: str | None = None,
    phone: str | None = None,
    email: str | None = None,
    address: str | None = None,
) -> Vendor:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")

    with unit_of_work(db):
        if _name_taken(db, name):
            raise DuplicateVendor(f"Vendor {name} already exists")
        vendor = Vendor(
            name=name,
            contact_person=contact_person,
            phone=phone,
            email=email,
            address=address,
            status=VendorStatus.active,
        )
        db.add(vendor)

    db.refresh(vendor)
    logger.info("vendor #%s created (%s)", vendor.id, vendor.name)
    return vendor


def update_vendor(db: Session, vendor_id: int, changes: dict[str, Any]) -> Vendor:
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields not updatable: {', '.join(sorted(unknown))}")

    with unit_of_work(db):
        vendor = get_vendor(db, vendor_id)
        if "name" in changes:
            name = (changes["name"] or "").strip()
            if not name:
                raise ValidationError("name is required")
            if _name_taken(db, name, exclude_id=vendor.id):
                raise DuplicateVendor(f"Vendor {name} already exists")
            changes = {**changes, "name": name}
        if "status" in changes:
            try:
                changes = {**changes, "status": VendorStatus(changes["status"])}
            except ValueError:
                raise ValidationError(f"Invalid status {changes['status']!r}") from None
        for field, value in changes.items():
            setattr(vendor, field, value)

    db.refresh(vendor)
    return vendor


def list_vendors(
    db: Session,
    *,
    search: str | None = None,
    status: str = "all",
    limit: int = 100,
) -> list[Vendor]:
    if status not in STATUS_FILTERS:
        raise ValidationError(f"status must be one of {sorted(STATUS_FILTERS)}")

    stmt = select(Vendor).order_by(Vendor.name, Vendor.id).limit(max(1, min(limit, 500)))
    if status != "all":
        stmt = stmt.where(Vendor.status == VendorStatus(status))
    if search and search.strip():
        term = like_pattern(search.strip())
        stmt = stmt.where(
            or_(
                func.lower(Vendor.name).like(term, escape="\\"),
                func.lower(func.coalesce(Vendor.contact_person, "")).like(term, escape="\\"),
                func.lower(func.coalesce(Vendor.phone, "")).like(term, escape="\\"),
                func.lower(func.coalesce(Vendor.email, "")).like(term, escape="\\"),
            )
        )
    return list(db.execute(stmt).scalars().all())


def has_history(db: Session, vendor_id: int) -> bool:
    return (
        db.execute(select(StockTransaction.id).where(StockTransaction.vendor_id == vendor_id).limit(1)).first()
        is not None
    )


def delete_vendor(db: Session, vendor_id: int, *, hard: bool = False) -> DeleteOutcome:
    """
    Sans historique : suppression physique.
    Avec historique : passage en `inactive` (le ledger garde sa référence),
    sauf si `hard` est exigé -> VendorHasHistory.
    """
    with unit_of_work(db):
        vendor = get_vendor(db, vendor_id)
        if not has_history(db, vendor_id):
            db.delete(vendor)
            outcome = DeleteOutcome.deleted
        elif hard:
            raise VendorHasHistory(
                f"Vendor {vendor.name} is referenced by stock transactions",
                details={"vendor_id": vendor_id},
            )
        else:
            vendor.status = VendorStatus.inactive
            outcome = DeleteOutcome.deactivated

    logger.info("vendor #%s %s", vendor_id, outcome.value)
    return outcome
