"""
Ordonnances : création, finalisation, dispensation, annulation.

Cycle de vie :
    draft -> finalized -> dispensed
    draft | finalized -> cancelled   (terminal)

La dispensation est tout-ou-rien : tous les soldes sont vérifiés sous verrou
avant la première écriture ledger ; si une ligne manque de stock, rien
n'est écrit et le statut ne change pas.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from pharmacy.app.db.models.core_types import PrescriptionStatus, TransactionType
from pharmacy.app.db.models.models_v1 import Medicine, Patient, Prescription, PrescriptionItem
from pharmacy.services.errors import (
    AlreadyCancelled,
    AlreadyDispensed,
    AlreadyFinalized,
    CannotCancelDispensed,
    InsufficientStock,
    InvalidQuantity,
    NotFinalized,
    NotFound,
    PrescriptionCancelled,
    PrescriptionNotDraft,
    UnknownMedicine,
    ValidationError,
)
from pharmacy.services.inventory import MAX_QUANTITY, lock_medicines
from pharmacy.services.ledger import post_entry
from pharmacy.services.locks import medicine_key, prescription_key, stock_guard
from pharmacy.services.search import search_prescriptions
from pharmacy.services.uow import unit_of_work

logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 200


@dataclass
class ItemRequest:
    medicine_id: int
    quantity: int
    dosage: str | None = None
    frequency: str | None = None
    duration: str | None = None


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(Decimal("0.01"))


def _compute_total(items: Iterable[PrescriptionItem]) -> Decimal:
    return _money(sum((Decimal(it.quantity) * Decimal(it.unit_price) for it in items), Decimal("0")))


def _resolve_medicines(db: Session, medicine_ids: Iterable[int]) -> dict[int, Medicine]:
    ids = {int(mid) for mid in medicine_ids}
    rows = db.execute(select(Medicine).where(Medicine.id.in_(ids))).scalars().all()
    return {int(m.id): m for m in rows if m.active}


def get_prescription(db: Session, prescription_id: int) -> Prescription:
    rx = db.execute(
        select(Prescription)
        .where(Prescription.id == prescription_id)
        .options(selectinload(Prescription.items))
    ).scalar_one_or_none()
    if not rx:
        raise NotFound(
            f"Prescription {prescription_id} not found",
            details={"prescription_id": prescription_id},
        )
    return rx


def _lock_prescription(db: Session, prescription_id: int) -> Prescription:
    rx = db.execute(
        select(Prescription)
        .where(Prescription.id == prescription_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not rx:
        raise NotFound(
            f"Prescription {prescription_id} not found",
            details={"prescription_id": prescription_id},
        )
    return rx


def create_prescription(
    db: Session,
    *,
    patient_id: int,
    doctor_id: int,
    items: list[ItemRequest],
    notes: str | None = None,
    actor_id: int | None = None,
    finalize: bool = False,
) -> Prescription:
    """
    Crée un brouillon aux prix du catalogue courant. Avec `finalize`, le
    brouillon est finalisé dans la même transaction : en cas d'échec, rien
    n'est créé.
    """
    if not items:
        raise ValidationError("A prescription needs at least one item")
    for it in items:
        if isinstance(it.quantity, bool) or not isinstance(it.quantity, int) or it.quantity <= 0:
            raise InvalidQuantity(
                f"Quantity must be a positive integer (medicine {it.medicine_id})",
                details={"medicine_id": it.medicine_id, "quantity": it.quantity},
            )
        if it.quantity > MAX_QUANTITY:
            raise InvalidQuantity(
                f"Quantity must be at most {MAX_QUANTITY} (medicine {it.medicine_id})",
                details={"medicine_id": it.medicine_id, "quantity": it.quantity},
            )

    with unit_of_work(db):
        if not db.get(Patient, patient_id):
            raise NotFound(f"Patient {patient_id} not found", details={"patient_id": patient_id})

        catalog = _resolve_medicines(db, (it.medicine_id for it in items))
        for it in items:
            if int(it.medicine_id) not in catalog:
                raise UnknownMedicine(it.medicine_id)

        rx = Prescription(
            patient_id=patient_id,
            doctor_id=doctor_id,
            status=PrescriptionStatus.draft,
            notes=notes,
            created_by=actor_id,
            created_at=datetime.utcnow(),
        )
        for seq, it in enumerate(items, start=1):
            rx.items.append(
                PrescriptionItem(
                    sequence=seq,
                    medicine_id=it.medicine_id,
                    dosage=it.dosage,
                    frequency=it.frequency,
                    duration=it.duration,
                    quantity=it.quantity,
                    unit_price=catalog[int(it.medicine_id)].unit_price,
                )
            )
        # total provisoire, recalculé à la finalisation
        rx.total_amount = _compute_total(rx.items)
        if finalize:
            rx.status = PrescriptionStatus.finalized
            rx.finalized_at = datetime.utcnow()
        db.add(rx)

    logger.info(
        "prescription #%s created as %s (patient=%s, %s items)",
        rx.id,
        rx.status.value,
        patient_id,
        len(items),
    )
    return get_prescription(db, rx.id)


def finalize_prescription(db: Session, prescription_id: int) -> Prescription:
    """Fige les prix du catalogue courant et calcule le total."""
    with stock_guard.hold([prescription_key(prescription_id)]):
        with unit_of_work(db):
            rx = _lock_prescription(db, prescription_id)
            if rx.status != PrescriptionStatus.draft:
                raise AlreadyFinalized(
                    f"Prescription {prescription_id} is {rx.status.value}, not draft",
                    details={"prescription_id": prescription_id, "status": rx.status.value},
                )

            catalog = _resolve_medicines(db, (it.medicine_id for it in rx.items))
            for it in rx.items:
                med = catalog.get(int(it.medicine_id))
                if med is None:
                    raise UnknownMedicine(it.medicine_id)
                it.unit_price = med.unit_price

            rx.total_amount = _compute_total(rx.items)
            rx.status = PrescriptionStatus.finalized
            rx.finalized_at = datetime.utcnow()

    logger.info("prescription #%s finalized", prescription_id)
    return get_prescription(db, prescription_id)


def _check_dispensable(rx: Prescription) -> None:
    if rx.status == PrescriptionStatus.dispensed:
        raise AlreadyDispensed(
            f"Prescription {rx.id} was already dispensed",
            details={"prescription_id": rx.id},
        )
    if rx.status == PrescriptionStatus.cancelled:
        raise PrescriptionCancelled(
            f"Prescription {rx.id} is cancelled",
            details={"prescription_id": rx.id},
        )
    if rx.status != PrescriptionStatus.finalized:
        raise NotFinalized(
            f"Prescription {rx.id} must be finalized before dispensing",
            details={"prescription_id": rx.id, "status": rx.status.value},
        )


def dispense_prescription(
    db: Session,
    prescription_id: int,
    actor_id: int,
    *,
    timeout: float | None = None,
) -> Prescription:
    """
    Dispense toutes les lignes ou aucune.

    1) guard ordonnance puis médicaments (id croissant), FOR UPDATE
    2) statut relu sous verrou
    3) pré-contrôle des soldes dans l'ordre des lignes (demande cumulée
       par médicament) -> InsufficientStock sur la première ligne fautive
    4) une écriture `dispense` par ligne, statut `dispensed`, commit
    """
    if not actor_id:
        raise ValidationError("actor_id is required")

    rx = get_prescription(db, prescription_id)
    _check_dispensable(rx)
    medicine_ids = sorted({int(it.medicine_id) for it in rx.items})
    keys = [prescription_key(prescription_id)] + [medicine_key(mid) for mid in medicine_ids]

    with stock_guard.hold(keys, timeout=timeout):
        with unit_of_work(db):
            rx = _lock_prescription(db, prescription_id)
            _check_dispensable(rx)

            items = sorted(rx.items, key=lambda it: it.sequence)
            medicines = lock_medicines(db, medicine_ids)

            demand: dict[int, int] = defaultdict(int)
            for it in items:
                med = medicines[int(it.medicine_id)]
                demand[int(it.medicine_id)] += it.quantity
                if med.current_stock - demand[int(it.medicine_id)] < 0:
                    raise InsufficientStock(
                        medicine_id=int(med.id),
                        medicine_name=med.name,
                        available=int(med.current_stock),
                        requested=demand[int(it.medicine_id)],
                    )

            for it in items:
                post_entry(
                    db,
                    medicines[int(it.medicine_id)],
                    TransactionType.dispense,
                    -it.quantity,
                    actor_id,
                    prescription_id=rx.id,
                    reason=f"prescription #{rx.id} item {it.sequence}",
                )

            rx.status = PrescriptionStatus.dispensed
            rx.dispensed_at = datetime.utcnow()
            rx.dispensed_by = actor_id

    logger.info("prescription #%s dispensed by %s (%s items)", prescription_id, actor_id, len(items))
    return get_prescription(db, prescription_id)


def cancel_prescription(db: Session, prescription_id: int) -> Prescription:
    """Annulation sans aucune écriture ledger."""
    with stock_guard.hold([prescription_key(prescription_id)]):
        with unit_of_work(db):
            rx = _lock_prescription(db, prescription_id)
            if rx.status == PrescriptionStatus.dispensed:
                raise CannotCancelDispensed(
                    f"Prescription {prescription_id} was dispensed and cannot be cancelled",
                    details={"prescription_id": prescription_id},
                )
            if rx.status == PrescriptionStatus.cancelled:
                raise AlreadyCancelled(
                    f"Prescription {prescription_id} is already cancelled",
                    details={"prescription_id": prescription_id},
                )
            rx.status = PrescriptionStatus.cancelled
            rx.cancelled_at = datetime.utcnow()

    logger.info("prescription #%s cancelled", prescription_id)
    return get_prescription(db, prescription_id)


def delete_prescription(db: Session, prescription_id: int) -> None:
    with stock_guard.hold([prescription_key(prescription_id)]):
        with unit_of_work(db):
            rx = _lock_prescription(db, prescription_id)
            if rx.status != PrescriptionStatus.draft:
                raise PrescriptionNotDraft(
                    f"Only draft prescriptions can be deleted (status={rx.status.value})",
                    details={"prescription_id": prescription_id, "status": rx.status.value},
                )
            db.delete(rx)

    logger.info("prescription #%s deleted", prescription_id)


def list_prescriptions(
    db: Session,
    *,
    status: PrescriptionStatus | str | None = None,
    search: str | None = None,
    patient_id: int | None = None,
    limit: int = 50,
) -> list[Prescription]:
    if limit < 1:
        raise ValidationError("limit must be positive")

    stmt = select(Prescription).options(selectinload(Prescription.items))
    if status is not None:
        try:
            stmt = stmt.where(Prescription.status == PrescriptionStatus(status))
        except ValueError:
            raise ValidationError(f"Invalid status {status!r}") from None
    if patient_id is not None:
        stmt = stmt.where(Prescription.patient_id == patient_id)
    stmt = search_prescriptions(stmt, search)
    stmt = stmt.order_by(Prescription.created_at.desc(), Prescription.id.desc()).limit(min(limit, MAX_LIST_LIMIT))
    return list(db.execute(stmt).scalars().all())
