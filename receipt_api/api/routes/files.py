"""API routes for uploaded file records."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from receipt_api.api.dependencies import get_db_session
from receipt_api.models.schemas import (
    FileListData,
    MessageResponse,
    ReceiptFileRead,
    SuccessResponse,
    UploadData,
    build_pagination,
)
from receipt_api.services import file_service
from receipt_api.services.storage_service import StorageService, get_storage

router = APIRouter(prefix="/files", tags=["files"])


@router.get("", response_model=SuccessResponse[FileListData])
async def list_files(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db_session),
):
    rows, total = await file_service.list_files(db, page, limit)
    return SuccessResponse[FileListData](
        data=FileListData(
            files=[ReceiptFileRead.model_validate(row) for row in rows],
            pagination=build_pagination(total, page, limit),
        )
    )


@router.get("/{file_id}", response_model=SuccessResponse[UploadData])
async def get_file(file_id: int, db: AsyncSession = Depends(get_db_session)):
    record = await file_service.get_file(db, file_id)
    return SuccessResponse[UploadData](data=UploadData(file=ReceiptFileRead.model_validate(record)))


@router.delete("/{file_id}", response_model=MessageResponse)
async def delete_file(
    file_id: int,
    db: AsyncSession = Depends(get_db_session),
    storage: StorageService = Depends(get_storage),
):
    """Delete a file record and its stored bytes; extracted receipts are kept."""
    await file_service.delete_file(db, storage, file_id)
    return MessageResponse(message="File deleted successfully")
