"""Mapping of domain errors to HTTP responses."""

from typing import Any, Dict, List, Tuple, Type

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from core.errors import (
    DocumentNotFound,
    ExtractionError,
    FishFarmError,
    ImportPreconditionError,
    InvalidTransition,
    ItemAlreadyReceived,
    ItemNotFound,
    PlanIncomplete,
    PlanLocked,
    PlanNotFound,
    RecordValidationError,
    StoreError,
    TransactionWriteFailure,
    Unauthenticated,
)
from core.observability.logging import get_logger


logger = get_logger(__name__)

# First match wins; subclasses precede their bases
STATUS_BY_ERROR: List[Tuple[Type[FishFarmError], int]] = [
    (Unauthenticated, 401),
    (ImportPreconditionError, 400),
    (RecordValidationError, 400),
    (ExtractionError, 400),
    (DocumentNotFound, 404),
    (PlanNotFound, 404),
    (ItemNotFound, 404),
    (InvalidTransition, 409),
    (PlanLocked, 409),
    (PlanIncomplete, 409),
    (ItemAlreadyReceived, 409),
    (TransactionWriteFailure, 500),
    (StoreError, 500),
]


def status_for(error: FishFarmError) -> int:
    for error_type, status in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 500


def error_body(error: FishFarmError) -> Dict[str, Any]:
    body: Dict[str, Any] = {"detail": str(error), "code": error.code}
    if isinstance(error, RecordValidationError):
        body["errors"] = error.messages
    elif isinstance(error, PlanIncomplete):
        body["errors"] = error.errors
    return body


async def handle_fish_farm_error(request: Request, exc: FishFarmError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error(
            "Request failed",
            extra_fields={"path": request.url.path, "code": exc.code, "error": str(exc)},
        )
    else:
        logger.warning(
            "Request rejected",
            extra_fields={"path": request.url.path, "code": exc.code, "status": status},
        )
    return JSONResponse(status_code=status, content=error_body(exc))


async def handle_model_error(request: Request, exc: ValidationError) -> JSONResponse:
    """Model validation failures inside services (e.g. an unparseable date)."""
    errors = [f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"detail": "; ".join(errors), "code": "RECORD_VALIDATION", "errors": errors},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(FishFarmError, handle_fish_farm_error)
    app.add_exception_handler(ValidationError, handle_model_error)
