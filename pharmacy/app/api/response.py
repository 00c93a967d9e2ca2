from __future__ import annotations

from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def ok(data: Any = None, *, status_code: int = 200) -> JSONResponse:
    """
    Enveloppe succès :
    {"success": true, "data": ...}
    """
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"success": True, "data": data}),
    )


def err(
    msg: str = "Something went wrong",
    *,
    status_code: int = 400,
    code: str | None = None,
    details: Any = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """
    Enveloppe erreur :
    {"success": false, "error": {"code": "...", "msg": "...", "details": ...}}
    """
    payload = {
        "success": False,
        "error": {"code": code, "msg": msg, "details": details},
    }
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload), headers=headers)
