from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from pharmapos.services.errors import (
    ConcurrencyConflictError,
    DataIntegrityError,
    IdempotencyConflictError,
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    PosError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: list[tuple[type[PosError], int]] = [
    (ValidationError, 422),
    (InsufficientStockError, 409),
    (InvalidTransitionError, 409),
    (IdempotencyConflictError, 409),
    (ConcurrencyConflictError, 503),
    (NotFoundError, 404),
    (DataIntegrityError, 500),
]


def err(error: dict, status_code: int, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"status": False, "error": error}),
        headers=headers,
    )


def status_for(exc: PosError) -> int:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PosError)
    async def pos_error_handler(request: Request, exc: PosError) -> JSONResponse:
        status_code = status_for(exc)
        if status_code >= 500 and not isinstance(exc, ConcurrencyConflictError):
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        else:
            logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)

        headers = {"Retry-After": "1"} if isinstance(exc, ConcurrencyConflictError) else None
        return err(exc.to_dict(), status_code, headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return err({"code": "validation_error", "msg": "Validation error", "detail": exc.errors()}, 422)
