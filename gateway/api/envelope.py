"""Response envelope and exception handlers for the HTTP boundary."""

import time
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from gateway.errors import AppError, ErrorCode
from gateway.utils.logging import get_logger

logger = get_logger(__name__)


def _meta(request: Request) -> dict[str, Any]:
    started_at = getattr(request.state, "started_at", None)
    processing_ms = round((time.perf_counter() - started_at) * 1000, 2) if started_at else None
    return {"processingTime": processing_ms, "requestId": getattr(request.state, "request_id", None)}


def success_response(request: Request, data: Any, status_code: int = 200) -> JSONResponse:
    """Wrap a payload in the success envelope."""
    if isinstance(data, BaseModel):
        payload = data.model_dump(mode="json", by_alias=True)
    else:
        payload = jsonable_encoder(data, by_alias=True)
    return JSONResponse(status_code=status_code, content={"success": True, "data": payload, "meta": _meta(request)})


def error_response(request: Request, error: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=error.http_status,
        content={"success": False, "error": jsonable_encoder(error.to_dict()), "meta": _meta(request)},
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    log = logger.error if exc.http_status >= 500 else logger.warning
    log(f"{request.method} {request.url.path} failed with {exc.code}: {exc.message}")
    return error_response(request, exc)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(part) for part in err.get("loc", ())[1:]), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    logger.warning(f"Validation failed for {request.url.path}: {errors}")
    return error_response(request, AppError(ErrorCode.VALIDATION_ERROR, "Invalid request", {"errors": errors}))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return error_response(request, AppError(ErrorCode.INTERNAL_SERVER_ERROR, "Internal server error"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
