from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pharmacy.app.api.response import err
from pharmacy.services.errors import ConcurrencyConflict, InternalError, PharmacyError

logger = logging.getLogger(__name__)

INTERNAL_MSG = "Internal server error"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PharmacyError)
    async def pharmacy_error_handler(request: Request, exc: PharmacyError) -> JSONResponse:
        if isinstance(exc, InternalError):
            # détail déjà loggé côté service, rien ne fuit vers l'appelant
            return err(INTERNAL_MSG, status_code=500, code=exc.code)

        headers = None
        if isinstance(exc, ConcurrencyConflict):
            headers = {"Retry-After": "1"}
        return err(exc.msg, status_code=exc.status_code, code=exc.code, details=exc.details, headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        msg = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return err(msg, status_code=exc.status_code, code="HTTPError", headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
            for e in exc.errors()
        ]
        return err("Validation error", status_code=422, code="ValidationError", details=details)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return err(INTERNAL_MSG, status_code=500, code="InternalError")
