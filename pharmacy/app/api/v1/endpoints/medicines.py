from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from pharmacy.app.api.deps import get_actor_id, get_db
from pharmacy.app.api.response import ok
from pharmacy.app.schemas.medicine import MedicineCreate, MedicineRead, MedicineUpdate
from pharmacy.services import catalog

router = APIRouter(prefix="/medicines")


@router.get("")
def list_medicines(
    search: str | None = None,
    include_inactive: bool = False,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    rows = catalog.list_medicines(db, search=search, include_inactive=include_inactive, limit=limit)
    return ok([MedicineRead.model_validate(m) for m in rows])


@router.get("/{medicine_id}")
def get_medicine(medicine_id: int, db: Session = Depends(get_db)):
    return ok(MedicineRead.model_validate(catalog.get_medicine(db, medicine_id)))


@router.post("")
def create_medicine(
    payload: MedicineCreate,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    med = catalog.create_medicine(
        db,
        name=payload.name,
        generic_name=payload.generic_name,
        unit_price=payload.unit_price,
        low_stock_threshold=payload.low_stock_threshold,
        active=payload.active,
    )
    return ok(MedicineRead.model_validate(med), status_code=201)


@router.put("/{medicine_id}")
def update_medicine(
    medicine_id: int,
    payload: MedicineUpdate,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    med = catalog.update_medicine(db, medicine_id, payload.model_dump(exclude_unset=True))
    return ok(MedicineRead.model_validate(med))
