from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from pharmacy.app.api.deps import get_actor_id, get_db
from pharmacy.app.api.response import ok
from pharmacy.app.schemas.vendor import VendorCreate, VendorRead, VendorUpdate
from pharmacy.services import vendors

router = APIRouter(prefix="/vendors")


@router.get("")
def list_vendors(
    search: str | None = None,
    status: str = "all",
    limit: int = 100,
    db: Session = Depends(get_db),
):
    rows = vendors.list_vendors(db, search=search, status=status, limit=limit)
    return ok([VendorRead.model_validate(v) for v in rows])


@router.get("/{vendor_id}")
def get_vendor(vendor_id: int, db: Session = Depends(get_db)):
    return ok(VendorRead.model_validate(vendors.get_vendor(db, vendor_id)))


@router.post("")
def create_vendor(
    payload: VendorCreate,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    v = vendors.create_vendor(db, **payload.model_dump())
    return ok(VendorRead.model_validate(v), status_code=201)


@router.put("/{vendor_id}")
def update_vendor(
    vendor_id: int,
    payload: VendorUpdate,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    v = vendors.update_vendor(db, vendor_id, payload.model_dump(exclude_unset=True))
    return ok(VendorRead.model_validate(v))


@router.delete("/{vendor_id}")
def delete_vendor(
    vendor_id: int,
    hard: bool = False,
    db: Session = Depends(get_db),
    actor_id: int = Depends(get_actor_id),
):
    outcome = vendors.delete_vendor(db, vendor_id, hard=hard)
    return ok({"id": vendor_id, "outcome": outcome.value})
