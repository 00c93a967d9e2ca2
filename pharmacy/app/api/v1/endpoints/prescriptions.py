from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pharmacy.app.api.deps import get_actor_id, get_db
from pharmacy.app.api.response import ok
from pharmacy.app.db.models.core_types import PrescriptionStatus
from pharmacy.app.schemas.prescription import PrescriptionCreate, PrescriptionRead
from pharmacy.services import prescriptions as rx_service
from pharmacy.services.prescriptions import ItemRequest

router = APIRouter(prefix="/prescriptions")


@router.get("")
def list_prescriptions(
    status: PrescriptionStatus | None = None,
    search: str | None = None,
    patient_id: int | None = None,
    limit: int = Query(default=50, ge=1),
    db: Session = Depends(get_db),
):
    rows = rx_service.list_prescriptions(db, status=status, search=search, patient_id=patient_id, limit=limit)
    return ok([PrescriptionRead.model_validate(rx) for rx in rows])


@router.get("/{prescription_id}")
def get_prescription(prescription_id: int, db: Session = Depends(get_db)):
    """Ordonnance complète avec ses lignes (sert aussi de source au rendu PDF externe)."""
    return ok(PrescriptionRead.model_validate(rx_service.get_prescription(db, prescription_id)))


@router.post("")
def create_prescription(
    payload: PrescriptionCreate,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    rx = rx_service.create_prescription(
        db,
        patient_id=payload.patient_id,
        doctor_id=payload.doctor_id,
        notes=payload.notes,
        items=[ItemRequest(**it.model_dump()) for it in payload.items],
        actor_id=actor_id,
        finalize=payload.finalize,
    )
    return ok(PrescriptionRead.model_validate(rx), status_code=201)


@router.post("/{prescription_id}/finalize")
def finalize_prescription(
    prescription_id: int,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    return ok(PrescriptionRead.model_validate(rx_service.finalize_prescription(db, prescription_id)))


@router.post("/{prescription_id}/dispense")
def dispense_prescription(
    prescription_id: int,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    rx = rx_service.dispense_prescription(db, prescription_id, actor_id)
    return ok(PrescriptionRead.model_validate(rx))


@router.post("/{prescription_id}/cancel")
def cancel_prescription(
    prescription_id: int,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    return ok(PrescriptionRead.model_validate(rx_service.cancel_prescription(db, prescription_id)))


@router.delete("/{prescription_id}")
def delete_prescription(
    prescription_id: int,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    rx_service.delete_prescription(db, prescription_id)
    return ok({"id": prescription_id, "deleted": True})
