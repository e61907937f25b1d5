"""Upload → validate → extract → persist pipeline for receipt files.

Used by the HTTP routes and by the background worker, so both paths
share the same state transitions on ``receipt_file`` rows:

- upload: row created with ``is_valid=False`` and ``is_processed=False``
- validate: ``is_valid`` set, failure reason kept in ``invalid_reason``
- process: the file is claimed by flipping ``is_processed`` atomically, then
  a receipt row is created; on failure the flag is reset, the
  error message is written to ``invalid_reason`` and the error re-raised
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from receipt_api.core.errors import AppError
from receipt_api.core.observability import sentry_breadcrumb, sentry_set_tags
from receipt_api.models.schemas import PdfValidation
from receipt_api.models.tables import Receipt, ReceiptFile
from receipt_api.services import file_service, receipt_service
from receipt_api.services.extraction_service import ExtractionOutcome, ReceiptExtractionService
from receipt_api.services.storage_service import StorageService

logger = logging.getLogger(__name__)


class ReceiptProcessingService:
    def __init__(
        self,
        db: AsyncSession,
        storage: StorageService | None = None,
        extractor: ReceiptExtractionService | None = None,
    ) -> None:
        self.db = db
        self.storage = storage or StorageService()
        self.extractor = extractor or ReceiptExtractionService()

    async def upload(self, filename: Optional[str], content_type: Optional[str], data: bytes) -> ReceiptFile:
        record = await file_service.save_file(self.db, self.storage, filename, content_type, data)
        sentry_breadcrumb("pipeline", "file uploaded", data={"file_id": record.id, "bytes": len(data)})
        return record

    async def validate(self, file_id: int) -> Tuple[ReceiptFile, PdfValidation]:
        """Validate the stored bytes of a file and persist the verdict."""
        record = await file_service.get_file(self.db, file_id)
        data = await self.storage.read(record.file_path)
        result = await asyncio.to_thread(file_service.validate_pdf, data)
        record = await file_service.update_validation(self.db, record, result)
        logger.info("[pipeline] validated file_id=%s valid=%s reason=%s", file_id, result.is_valid, result.reason)
        return record, result

    async def check_processable(self, file_id: int) -> ReceiptFile:
        """Return the file if it is validated and not yet processed."""
        record = await file_service.get_file(self.db, file_id)
        if not record.is_valid:
            raise AppError.validation_error(record.invalid_reason or "File has not been validated")
        if record.is_processed:
            raise AppError.validation_error("File has already been processed")
        return record

    async def process(self, file_id: int) -> Tuple[Receipt, ExtractionOutcome]:
        """Extract and persist the receipt held by a validated file."""
        record = await self.check_processable(file_id)
        if not await file_service.claim_for_processing(self.db, file_id):
            raise AppError.validation_error("File has already been processed")
        await self.db.refresh(record)

        sentry_set_tags({"file_id": file_id})
        try:
            data = await self.storage.read(record.file_path)
            outcome = await self.extractor.extract(data)
            receipt = await receipt_service.save_receipt(self.db, record.file_path, outcome, receipt_file_id=record.id)
        except AppError as exc:
            logger.warning("[pipeline] processing failed file_id=%s: %s", file_id, exc.message)
            await file_service.mark_processed(self.db, record, message=exc.message, processed=False)
            raise
        except Exception:
            logger.exception("[pipeline] processing crashed file_id=%s", file_id)
            await file_service.mark_processed(self.db, record, message="Processing failed", processed=False)
            raise

        await file_service.mark_processed(self.db, record, message="Processed successfully")
        logger.info("[pipeline] processed file_id=%s receipt_id=%s", file_id, receipt.id)
        return receipt, outcome

    async def upload_and_process(
        self,
        filename: Optional[str],
        content_type: Optional[str],
        data: bytes,
    ) -> Tuple[Receipt, ExtractionOutcome]:
        record = await self.upload(filename, content_type, data)
        record, result = await self.validate(record.id)
        if not result.is_valid:
            raise AppError.validation_error(result.reason or "Invalid PDF file")
        return await self.process(record.id)
