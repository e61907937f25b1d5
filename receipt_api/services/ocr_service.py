"""Receipt text extraction: PDF text layer first, Tesseract OCR second.

Digitally generated receipts carry an embedded text layer that is both
faster and more accurate than OCR, so it is tried first. When it is
missing or too short (scanned receipts, photos wrapped in a PDF) the
pages are rasterized and run through Tesseract via ``pytesseract``.

Tesseract is CPU heavy, so only one OCR run is in flight per process.
Each run executes in a worker thread and is bounded by
``OCR_TIMEOUT_SECONDS``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import List

import pytesseract
from PIL import Image

from receipt_api.core.config import settings
from receipt_api.core.errors import AppError
from receipt_api.models.enums import TextSource
from receipt_api.services import pdf_image_service
from receipt_api.utils.text import normalize_text

logger = logging.getLogger(__name__)

CHAR_WHITELIST = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz$.,/-: "

# Single in-flight OCR run per process
_ocr_lock = threading.Lock()


@dataclass
class ExtractedText:
    text: str
    source: TextSource
    page_count: int = 0


def tesseract_config() -> str:
    # Uniform block of text, keep column spacing between item and price
    return f'--psm 6 -c preserve_interword_spaces=1 -c "tessedit_char_whitelist={CHAR_WHITELIST}"'


class OCRService:
    """Extracts normalised text from PDF bytes."""

    def __init__(self) -> None:
        self.language = settings.OCR_LANGUAGE
        self.min_text_length = settings.OCR_MIN_TEXT_LENGTH
        self.timeout = settings.OCR_TIMEOUT_SECONDS
        self.initialized = False

    def initialize(self) -> None:
        """Verify the Tesseract binary is available."""
        if self.initialized:
            return
        if settings.TESSERACT_CMD:
            pytesseract.pytesseract.tesseract_cmd = settings.TESSERACT_CMD
        try:
            version = pytesseract.get_tesseract_version()
        except pytesseract.TesseractNotFoundError as exc:
            raise AppError.ocr_error("Failed to initialize OCR service: tesseract is not installed or not on PATH") from exc
        logger.info("[ocr] tesseract %s ready (lang=%s)", version, self.language)
        self.initialized = True

    def _recognize_pages(self, images: List[Image.Image]) -> str:
        # A timed-out run keeps the lock until tesseract exits
        if not _ocr_lock.acquire(timeout=self.timeout):
            raise AppError.timeout(f"OCR engine busy for more than {self.timeout:g} seconds")
        try:
            chunks = [
                pytesseract.image_to_string(
                    image, lang=self.language, config=tesseract_config(), timeout=self.timeout
                )
                for image in images
            ]
        finally:
            _ocr_lock.release()
        return "\n".join(chunks)

    async def run_ocr(self, data: bytes) -> tuple[str, int]:
        """Rasterize ``data`` and OCR every rendered page.

        Returns the raw recognised text and the number of pages read.
        """
        await asyncio.to_thread(self.initialize)
        images = await asyncio.to_thread(pdf_image_service.rasterize, data)
        try:
            raw = await asyncio.wait_for(asyncio.to_thread(self._recognize_pages, images), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise AppError.timeout(f"OCR timed out after {self.timeout:g} seconds") from exc
        except AppError:
            raise
        except Exception as exc:
            raise AppError.ocr_error(f"Failed to extract text from PDF: {exc}") from exc
        return raw, len(images)

    async def extract_text(self, data: bytes) -> ExtractedText:
        """Return normalised receipt text and where it came from."""
        embedded = normalize_text(await asyncio.to_thread(pdf_image_service.extract_text_layer, data))
        if len(embedded) >= self.min_text_length:
            logger.info("[ocr] using embedded text layer (%d chars)", len(embedded))
            return ExtractedText(text=embedded, source=TextSource.TEXT_LAYER)

        logger.info("[ocr] text layer too short (%d chars); running tesseract", len(embedded))
        raw, pages = await self.run_ocr(data)
        text = normalize_text(raw)
        logger.debug("[ocr] tesseract text: %s", text)
        return ExtractedText(text=text, source=TextSource.OCR, page_count=pages)
