from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pharmacy.app.api.deps import get_db
from pharmacy.app.api.response import ok
from pharmacy.app.schemas.patient import PatientRead
from pharmacy.services.search import search_patients

router = APIRouter(prefix="/patients")


@router.get("/search")
def search(
    q: str | None = None,
    load_all: bool = Query(default=False, alias="all"),
    limit: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
):
    rows = search_patients(db, q, load_all=load_all, limit=limit)
    return ok([PatientRead.model_validate(p) for p in rows])
