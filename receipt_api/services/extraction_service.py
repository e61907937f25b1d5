"""Receipt extraction orchestration.

Pipeline for one PDF:

1. Text extraction (embedded text layer, Tesseract OCR as fallback)
2. Field extraction, engine picked by ``settings.EXTRACTION_MODE``:
   - ``llm``: hosted model only
   - ``regex``: local heuristics only
   - ``auto``: hosted model when an API key is configured, falling back
     to the regex parser when the model call fails
3. Sufficiency check (merchant, total or at least one item)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from receipt_api.core.config import settings
from receipt_api.core.errors import AppError
from receipt_api.core.observability import sentry_breadcrumb
from receipt_api.models.enums import ExtractionMethod, ExtractionMode, TextSource
from receipt_api.models.schemas import ExtractedReceiptData
from receipt_api.services.llm_service import LLMService
from receipt_api.services.ocr_service import OCRService
from receipt_api.services.receipt_parser import parse_receipt_text

logger = logging.getLogger(__name__)


@dataclass
class ExtractionOutcome:
    data: ExtractedReceiptData
    text: str
    text_source: TextSource
    method: ExtractionMethod


class ReceiptExtractionService:
    """Turns raw PDF bytes into :class:`ExtractedReceiptData`."""

    def __init__(
        self,
        ocr: OCRService | None = None,
        llm: LLMService | None = None,
        mode: ExtractionMode | str | None = None,
    ) -> None:
        self.ocr = ocr or OCRService()
        self.llm = llm or LLMService()
        self.mode = ExtractionMode((mode or settings.EXTRACTION_MODE or "auto").lower())

    async def extract_fields(self, text: str) -> tuple[ExtractedReceiptData, ExtractionMethod]:
        """Run the configured extraction engine over normalised text."""
        if self.mode == ExtractionMode.REGEX:
            return parse_receipt_text(text), ExtractionMethod.REGEX
        if self.mode == ExtractionMode.LLM:
            return await self.llm.extract_receipt_data(text), ExtractionMethod.LLM

        if not self.llm.configured:
            logger.info("[extraction] no LLM key configured; using regex parser")
            return parse_receipt_text(text), ExtractionMethod.REGEX
        try:
            return await self.llm.extract_receipt_data(text), ExtractionMethod.LLM
        except AppError as exc:
            logger.warning("[extraction] LLM extraction failed (%s); falling back to regex", exc.message)
            sentry_breadcrumb("extraction", "llm fallback", level="warning", data={"error": exc.message})
            return parse_receipt_text(text), ExtractionMethod.REGEX

    async def extract(self, data: bytes) -> ExtractionOutcome:
        extracted = await self.ocr.extract_text(data)
        if not extracted.text:
            raise AppError.processing_error("No text could be extracted from the PDF")
        sentry_breadcrumb(
            "extraction",
            "text extracted",
            data={"source": extracted.source.value, "chars": len(extracted.text)},
        )

        fields, method = await self.extract_fields(extracted.text)
        if fields.is_insufficient():
            raise AppError.processing_error("Insufficient data extracted from receipt")

        logger.info(
            "[extraction] done method=%s source=%s merchant=%r total=%s items=%d",
            method.value,
            extracted.source.value,
            fields.merchant_name,
            fields.total_amount,
            len(fields.items),
        )
        return ExtractionOutcome(data=fields, text=extracted.text, text_source=extracted.source, method=method)
