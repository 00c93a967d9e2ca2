from __future__ import annotations

from fastapi import APIRouter

from pharmacy.app.api.response import ok
from pharmacy.app.core.config import settings

router = APIRouter()


@router.get("/health")
def health():
    return ok({"status": "ok", "version": settings.VERSION})
