"""
Custom exception handlers for FastAPI.
Every error leaves the API as ``{"status": "error", "type", "message", "details"?}``.
"""

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.status import HTTP_400_BAD_REQUEST, HTTP_500_INTERNAL_SERVER_ERROR

from receipt_api.core.config import settings
from receipt_api.core.errors import AppError, ErrorType
from receipt_api.core.observability import sentry_capture
from receipt_api.models.schemas import error_body

logger = logging.getLogger(__name__)


def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.type.value, exc.message)
    else:
        logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.type.value, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.type.value, exc.message, exc.details),
    )


def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = [
        {
            # Drop the "body"/"query"/"path" location prefix
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]) or "request",
            "message": err.get("msg", "Invalid value"),
            "value": err.get("input") if isinstance(err.get("input"), (str, int, float, bool)) else None,
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=HTTP_400_BAD_REQUEST,
        content=error_body(ErrorType.VALIDATION_ERROR.value, "Validation failed", details),
    )


def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    sentry_capture(exc)
    return JSONResponse(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(
            ErrorType.DATABASE_ERROR.value,
            "Database operation failed",
            # driver messages can leak schema details
            [{"field": "database", "message": str(getattr(exc, "orig", None) or exc)}] if settings.is_development else None,
        ),
    )


def generic_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    sentry_capture(exc)
    return JSONResponse(
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(
            ErrorType.PROCESSING_ERROR.value,
            str(exc) if settings.is_development else "Internal server error",
        ),
    )
