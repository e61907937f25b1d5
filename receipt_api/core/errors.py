"""Application error types.

Services raise :class:`AppError` with an :class:`ErrorType` and an HTTP
status code.  The API layer renders these uniformly (see
``receipt_api.api.error_handlers``); the worker uses the status code to
decide whether a failure is worth retrying.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorType(str, Enum):
    """Categories of errors surfaced through the API."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND_ERROR = "NOT_FOUND_ERROR"
    FILE_ERROR = "FILE_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    PROCESSING_ERROR = "PROCESSING_ERROR"
    OCR_ERROR = "OCR_ERROR"
    UNAUTHORIZED_ERROR = "UNAUTHORIZED_ERROR"
    RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"


class AppError(Exception):
    """Operational error with a type, message and HTTP status code."""

    def __init__(
        self,
        type: ErrorType,
        message: str,
        status_code: int,
        details: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        super().__init__(message)
        self.type = type
        self.message = message
        self.status_code = status_code
        self.details = details

    def __repr__(self) -> str:
        return f"AppError(type={self.type.value}, status_code={self.status_code}, message={self.message!r})"

    @property
    def retryable(self) -> bool:
        return self.status_code >= 500

    @classmethod
    def validation_error(cls, message: str, details: Optional[List[Dict[str, Any]]] = None) -> "AppError":
        return cls(ErrorType.VALIDATION_ERROR, message, 400, details)

    @classmethod
    def not_found(cls, message: str = "Resource not found") -> "AppError":
        return cls(ErrorType.NOT_FOUND_ERROR, message, 404)

    @classmethod
    def file_error(cls, message: str) -> "AppError":
        return cls(ErrorType.FILE_ERROR, message, 400)

    @classmethod
    def database_error(cls, message: str) -> "AppError":
        return cls(ErrorType.DATABASE_ERROR, message, 500)

    @classmethod
    def processing_error(cls, message: str) -> "AppError":
        return cls(ErrorType.PROCESSING_ERROR, message, 500)

    @classmethod
    def ocr_error(cls, message: str) -> "AppError":
        return cls(ErrorType.OCR_ERROR, message, 500)

    @classmethod
    def unauthorized(cls, message: str = "Invalid or missing API key") -> "AppError":
        return cls(ErrorType.UNAUTHORIZED_ERROR, message, 401)

    @classmethod
    def timeout(cls, message: str) -> "AppError":
        return cls(ErrorType.PROCESSING_ERROR, message, 504)
