"""API routes for receipt upload, processing and retrieval."""

from __future__ import annotations

import logging
import uuid
from typing import Optional, Union

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from receipt_api.api.dependencies import get_db_session, get_processing_service
from receipt_api.core.errors import AppError
from receipt_api.core.observability import sentry_breadcrumb
from receipt_api.core.tasks import process_receipt_file
from receipt_api.models.schemas import (
    MessageResponse,
    PdfValidation,
    ProcessedData,
    QueuedData,
    ReceiptData,
    ReceiptFileRead,
    ReceiptListData,
    ReceiptRead,
    ReceiptSummary,
    SuccessResponse,
    UploadData,
    ValidationData,
    build_pagination,
)
from receipt_api.models.tables import Receipt
from receipt_api.services import receipt_service
from receipt_api.services.extraction_service import ExtractionOutcome
from receipt_api.services.processing_service import ReceiptProcessingService
from receipt_api.services.storage_service import StorageService, get_storage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["receipts"])


async def _read_upload(receipt: Optional[UploadFile]) -> tuple[Optional[str], Optional[str], bytes]:
    if receipt is None:
        raise AppError.validation_error("No file uploaded")
    try:
        data = await receipt.read()
    finally:
        await receipt.close()
    return receipt.filename, receipt.content_type, data


def _processed(receipt: Receipt, outcome: ExtractionOutcome) -> SuccessResponse[ProcessedData]:
    return SuccessResponse[ProcessedData](
        data=ProcessedData(receipt=ReceiptRead.model_validate(receipt), extracted_items=outcome.data.items)
    )


@router.post("/upload", response_model=SuccessResponse[UploadData], status_code=status.HTTP_201_CREATED)
async def upload_file(
    receipt: Optional[UploadFile] = File(default=None),
    service: ReceiptProcessingService = Depends(get_processing_service),
):
    """Store an uploaded PDF and record it for validation."""
    filename, content_type, data = await _read_upload(receipt)
    record = await service.upload(filename, content_type, data)
    return SuccessResponse[UploadData](data=UploadData(file=ReceiptFileRead.model_validate(record)))


@router.post("/validate/{file_id}", response_model=SuccessResponse[ValidationData])
async def validate_file(
    file_id: int,
    service: ReceiptProcessingService = Depends(get_processing_service),
):
    """Check that a stored upload is a readable PDF."""
    record, result = await service.validate(file_id)
    return SuccessResponse[ValidationData](
        data=ValidationData(file=ReceiptFileRead.model_validate(record), validation=PdfValidation.model_validate(result))
    )


@router.post(
    "/process/{file_id}",
    response_model=Union[SuccessResponse[ProcessedData], SuccessResponse[QueuedData]],
    status_code=status.HTTP_201_CREATED,
)
async def process_file(
    file_id: int,
    response: Response,
    background: bool = Query(False, description="Queue the file for the worker instead of processing inline"),
    service: ReceiptProcessingService = Depends(get_processing_service),
):
    """Extract receipt data from a validated file.

    With ``background=true`` the file is queued and 202 is returned with the
    message id; the worker records the outcome on the file row.
    """
    if background:
        await service.check_processable(file_id)
        message = process_receipt_file.send(file_id)
        sentry_breadcrumb("pipeline", "file queued", data={"file_id": file_id, "message_id": message.message_id})
        logger.info("[api] queued file_id=%s message_id=%s", file_id, message.message_id)
        response.status_code = status.HTTP_202_ACCEPTED
        return SuccessResponse[QueuedData](data=QueuedData(file_id=file_id, message_id=message.message_id))

    receipt, outcome = await service.process(file_id)
    return _processed(receipt, outcome)


@router.post("/receipts", response_model=SuccessResponse[ProcessedData], status_code=status.HTTP_201_CREATED)
async def create_receipt(
    receipt: Optional[UploadFile] = File(default=None),
    service: ReceiptProcessingService = Depends(get_processing_service),
):
    """Upload, validate and process a receipt PDF in one request."""
    filename, content_type, data = await _read_upload(receipt)
    saved, outcome = await service.upload_and_process(filename, content_type, data)
    return _processed(saved, outcome)


@router.get("/receipts", response_model=SuccessResponse[ReceiptListData])
async def list_receipts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db_session),
):
    rows, total = await receipt_service.list_receipts(db, page, limit)
    return SuccessResponse[ReceiptListData](
        data=ReceiptListData(
            receipts=[ReceiptSummary.model_validate(row) for row in rows],
            pagination=build_pagination(total, page, limit),
        )
    )


@router.get("/receipts/{receipt_id}", response_model=SuccessResponse[ReceiptData])
async def get_receipt(receipt_id: uuid.UUID, db: AsyncSession = Depends(get_db_session)):
    receipt = await receipt_service.get_receipt(db, str(receipt_id))
    return SuccessResponse[ReceiptData](data=ReceiptData(receipt=ReceiptRead.model_validate(receipt)))


@router.delete("/receipts/{receipt_id}", response_model=MessageResponse)
async def delete_receipt(
    receipt_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
    storage: StorageService = Depends(get_storage),
):
    await receipt_service.delete_receipt(db, storage, str(receipt_id))
    return MessageResponse(message="Receipt deleted successfully")
