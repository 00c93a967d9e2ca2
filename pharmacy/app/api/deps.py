from __future__ import annotations

from typing import Generator

from fastapi import Header, HTTPException

from pharmacy.app.db.session import SessionLocal


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_actor_id(x_actor_id: str | None = Header(default=None, alias="X-Actor-Id")) -> int:
    """
    Identité déjà vérifiée par la passerelle d'authentification (hors périmètre).
    On exige seulement un id utilisateur positif.
    """
    if not x_actor_id or not x_actor_id.strip().isdigit() or int(x_actor_id) <= 0:
        raise HTTPException(status_code=401, detail="Missing or invalid X-Actor-Id header")
    return int(x_actor_id)
