"""Uploaded file handling: upload checks, PDF validation and file records."""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

import fitz  # PyMuPDF
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from receipt_api.core.config import settings
from receipt_api.core.errors import AppError
from receipt_api.models.schemas import PdfValidation
from receipt_api.models.tables import Receipt, ReceiptFile
from receipt_api.services.storage_service import StorageService

logger = logging.getLogger(__name__)

PDF_SIGNATURE = b"%PDF-"
PDF_EOF_MARKER = b"%%EOF"
_HEADER_WINDOW = 1024
_VERSION_RE = re.compile(rb"%PDF-(\d+\.\d+)")


def _size_limit_message() -> str:
    return f"File size exceeds {settings.MAX_UPLOAD_SIZE // (1024 * 1024)}MB limit"


def check_upload(filename: Optional[str], content_type: Optional[str], data: bytes) -> None:
    """Reject uploads that are not PDFs, empty or too large."""
    if (content_type or "").split(";")[0].strip().lower() not in settings.ALLOWED_CONTENT_TYPES:
        raise AppError.file_error("Only PDF files are allowed")
    if not data:
        raise AppError.file_error("File is empty")
    if len(data) > settings.MAX_UPLOAD_SIZE:
        raise AppError.file_error(_size_limit_message())
    logger.debug("[files] upload accepted name=%s bytes=%d", filename, len(data))


def validate_pdf(data: bytes) -> PdfValidation:
    """Check that ``data`` is a readable PDF with at least one page.

    Bad content is reported through the returned :class:`PdfValidation`,
    never raised.
    """
    if not data:
        return PdfValidation(is_valid=False, reason="File is empty")
    if len(data) > settings.MAX_UPLOAD_SIZE:
        return PdfValidation(is_valid=False, reason=_size_limit_message())

    header = data[:_HEADER_WINDOW]
    if not header.startswith(PDF_SIGNATURE):
        return PdfValidation(is_valid=False, reason="Invalid PDF format: Missing PDF signature")
    match = _VERSION_RE.search(header)
    if not match:
        return PdfValidation(is_valid=False, reason="Invalid PDF format: Missing version number")
    version = match.group(1).decode("ascii")

    if PDF_EOF_MARKER not in data[-_HEADER_WINDOW:]:
        # Truncated trailers are common and usually still render
        logger.warning("[files] PDF has no %%EOF marker near the end of the file")

    try:
        with fitz.open(stream=data, filetype="pdf") as doc:
            page_count = doc.page_count
    except Exception as exc:
        return PdfValidation(is_valid=False, reason=f"Invalid PDF format: {exc}", version=version)
    if page_count < 1:
        return PdfValidation(is_valid=False, reason="Invalid PDF format: Document has no pages", version=version)
    return PdfValidation(is_valid=True, version=version, page_count=page_count)


async def save_file(
    db: AsyncSession,
    storage: StorageService,
    filename: Optional[str],
    content_type: Optional[str],
    data: bytes,
) -> ReceiptFile:
    """Store the upload and record it as an unvalidated file."""
    check_upload(filename, content_type, data)
    key = await storage.save(data, filename, content_type)
    record = ReceiptFile(
        file_name=filename or key,
        file_path=key,
        content_type=content_type,
        size_bytes=len(data),
        is_valid=False,
        is_processed=False,
    )
    try:
        db.add(record)
        await db.commit()
        await db.refresh(record)
    except SQLAlchemyError as exc:
        await db.rollback()
        await storage.discard(key)
        raise AppError.database_error("Failed to save file record") from exc
    logger.info("[files] recorded id=%s key=%s", record.id, key)
    return record


async def update_validation(db: AsyncSession, record: ReceiptFile, result: PdfValidation) -> ReceiptFile:
    record.is_valid = result.is_valid
    record.invalid_reason = None if result.is_valid else result.reason
    try:
        await db.commit()
        await db.refresh(record)
    except SQLAlchemyError as exc:
        await db.rollback()
        raise AppError.database_error("Failed to update file validation") from exc
    return record


async def mark_processed(
    db: AsyncSession,
    record: ReceiptFile,
    message: Optional[str] = None,
    processed: bool = True,
) -> ReceiptFile:
    """Record the processing outcome on the file row.

    ``message`` is stored in ``invalid_reason`` so failures stay visible
    through the files API.
    """
    record.is_processed = processed
    record.invalid_reason = message
    try:
        await db.commit()
        await db.refresh(record)
    except SQLAlchemyError as exc:
        await db.rollback()
        raise AppError.database_error("Failed to update file status") from exc
    return record


async def claim_for_processing(db: AsyncSession, file_id: int) -> bool:
    """Atomically flip ``is_processed`` so only one caller processes a file.

    Returns False when another request or worker already holds the file.
    A failed run hands the file back through :func:`mark_processed`.
    """
    try:
        result = await db.execute(
            update(ReceiptFile)
            .where(ReceiptFile.id == file_id, ReceiptFile.is_processed.is_(False))
            .values(is_processed=True)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise AppError.database_error("Failed to update file status") from exc
    return result.rowcount == 1


async def get_file(db: AsyncSession, file_id: int) -> ReceiptFile:
    try:
        record = await db.get(ReceiptFile, file_id)
    except SQLAlchemyError as exc:
        raise AppError.database_error("Failed to fetch file") from exc
    if record is None:
        raise AppError.not_found("File not found")
    return record


async def list_files(db: AsyncSession, page: int = 1, limit: int = 10) -> Tuple[List[ReceiptFile], int]:
    try:
        total = (await db.execute(select(func.count()).select_from(ReceiptFile))).scalar_one()
        result = await db.execute(
            select(ReceiptFile)
            .order_by(ReceiptFile.created_at.desc(), ReceiptFile.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
    except SQLAlchemyError as exc:
        raise AppError.database_error("Failed to fetch files") from exc
    return list(result.scalars().all()), total


async def delete_file(db: AsyncSession, storage: StorageService, file_id: int) -> None:
    """Delete a file record and its stored bytes.

    Receipts extracted from the file are kept; their link is cleared.
    """
    record = await get_file(db, file_id)
    key = record.file_path
    try:
        await db.execute(update(Receipt).where(Receipt.receipt_file_id == file_id).values(receipt_file_id=None))
        await db.delete(record)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise AppError.database_error("Failed to delete file") from exc
    await storage.discard(key)
    logger.info("[files] deleted id=%s key=%s", file_id, key)
