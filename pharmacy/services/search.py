from __future__ import annotations

from sqlalchemy import select, func, or_, cast, String
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from pharmacy.app.db.models.models_v1 import Patient, Prescription

# plafonds fixes, non paramétrables par appel
PATIENT_SEARCH_LIMIT = 20
PATIENT_LOAD_ALL_LIMIT = 50


def like_pattern(term: str) -> str:
    """Motif LIKE "contient", insensible à la casse ; % et _ restent littéraux."""
    escaped = term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def search_patients(
    db: Session,
    query: str | None,
    *,
    load_all: bool = False,
    limit: int | None = None,
) -> list[Patient]:
    """
    Recherche partielle, insensible à la casse, sur nom / code patient / téléphone.

    - requête vide + load_all : page non filtrée (max 50)
    - requête non vide        : max 20
    - requête vide sans load_all : rien
    `limit` ne peut que réduire ces plafonds.
    """
    term = (query or "").strip()
    if not term and not load_all:
        return []

    cap = PATIENT_LOAD_ALL_LIMIT if (load_all and not term) else PATIENT_SEARCH_LIMIT
    if limit is not None and limit > 0:
        cap = min(cap, limit)

    stmt = select(Patient).order_by(Patient.name, Patient.id).limit(cap)
    if term:
        like = like_pattern(term)
        stmt = stmt.where(
            or_(
                func.lower(Patient.name).like(like, escape="\\"),
                func.lower(Patient.patient_code).like(like, escape="\\"),
                func.lower(func.coalesce(Patient.contact_number, "")).like(like, escape="\\"),
            )
        )
    return list(db.execute(stmt).scalars().all())


def search_prescriptions(stmt: Select, query: str | None) -> Select:
    """Filtre une requête Prescription par patient (nom, code), notes ou numéro."""
    term = (query or "").strip()
    if not term:
        return stmt
    like = like_pattern(term)
    return stmt.join(Patient, Patient.id == Prescription.patient_id).where(
        or_(
            func.lower(Patient.name).like(like, escape="\\"),
            func.lower(Patient.patient_code).like(like, escape="\\"),
            func.lower(func.coalesce(Prescription.notes, "")).like(like, escape="\\"),
            cast(Prescription.id, String) == term,
        )
    )
