"""Pydantic schemas for domain data and API payloads.

``ExtractedReceiptData`` is the shape produced by both extraction
engines (regex parser and hosted LLM) before persistence.  The
remaining models describe what crosses the API boundary.  They are
kept separate from the ORM models so the API can expose a different
shape than what is stored.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Domain schemas


class ReceiptItem(BaseModel):
    """Individual line item on a receipt."""

    name: str = "Unknown Item"
    quantity: float = 1
    price: float = 0
    total: float = 0


class ExtractedReceiptData(BaseModel):
    """Structured receipt fields produced by an extraction engine."""

    merchant_name: Optional[str] = None
    date: Optional[str] = Field(default=None, description="Transaction date, YYYY-MM-DD when known")
    total_amount: Optional[float] = None
    tax_amount: Optional[float] = None
    items: List[ReceiptItem] = Field(default_factory=list)
    payment_method: str = "Unknown"
    receipt_number: Optional[str] = None

    def is_insufficient(self) -> bool:
        """True when nothing useful was recovered from the text."""
        return not self.merchant_name and not self.total_amount and not self.items


class PdfValidation(BaseModel):
    """Outcome of validating an uploaded PDF."""

    is_valid: bool
    reason: Optional[str] = None
    version: Optional[str] = None
    page_count: Optional[int] = None


# ---------------------------------------------------------------------------
# API response schemas

T = TypeVar("T")


class SuccessResponse(BaseModel, Generic[T]):
    success: bool = True
    data: T


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class ErrorDetail(BaseModel):
    field: str
    message: str
    value: Any = None


class ErrorResponse(BaseModel):
    status: str = "error"
    type: str
    message: str
    details: Optional[List[ErrorDetail]] = None


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class ReceiptFileRead(BaseModel):
    id: int
    file_name: str
    file_path: str
    content_type: Optional[str] = None
    size_bytes: Optional[int] = None
    is_valid: bool
    invalid_reason: Optional[str] = None
    is_processed: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReceiptSummary(BaseModel):
    id: str
    merchant_name: Optional[str] = None
    purchased_at: Optional[datetime] = None
    total_amount: Optional[float] = None
    file_path: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReceiptRead(ReceiptSummary):
    receipt_file_id: Optional[int] = None
    tax_amount: Optional[float] = None
    payment_method: Optional[str] = None
    receipt_number: Optional[str] = None
    items: List[ReceiptItem] = Field(default_factory=list)
    extraction_method: Optional[str] = None
    text_source: Optional[str] = None
    updated_at: datetime


class UploadData(BaseModel):
    file: ReceiptFileRead


class ValidationData(BaseModel):
    file: ReceiptFileRead
    validation: PdfValidation


class ProcessedData(BaseModel):
    receipt: ReceiptRead
    extracted_items: List[ReceiptItem]


class QueuedData(BaseModel):
    file_id: int
    message_id: str


class ReceiptData(BaseModel):
    receipt: ReceiptRead


class ReceiptListData(BaseModel):
    receipts: List[ReceiptSummary]
    pagination: Pagination


class FileListData(BaseModel):
    files: List[ReceiptFileRead]
    pagination: Pagination


def build_pagination(total: int, page: int, limit: int) -> Pagination:
    pages = (total + limit - 1) // limit if limit else 0
    return Pagination(total=total, page=page, limit=limit, pages=pages)


def error_body(type: str, message: str, details: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    """Render the JSON body used for every error response."""
    body: Dict[str, Any] = {"status": "error", "type": type, "message": message}
    if details:
        body["details"] = details
    return body
