import asyncio
import time

import pytest

from receipt_api.core.errors import AppError, ErrorType
from receipt_api.models.enums import TextSource
from receipt_api.services import ocr_service
from receipt_api.services.ocr_service import OCRService, tesseract_config


@pytest.fixture
def tesseract(monkeypatch):
    """Replace the Tesseract binary with an in-process stand-in."""
    calls = []

    def image_to_string(image, lang=None, config=None, timeout=0):
        calls.append({"mode": image.mode, "lang": lang, "config": config, "timeout": timeout})
        return "STORE\n  Total   5.00 \n\n"

    monkeypatch.setattr(ocr_service.pytesseract, "get_tesseract_version", lambda: "5.3.0")
    monkeypatch.setattr(ocr_service.pytesseract, "image_to_string", image_to_string)
    return calls


def test_tesseract_config_keeps_spacing_and_whitelist():
    config = tesseract_config()
    assert "--psm 6" in config
    assert "preserve_interword_spaces=1" in config
    assert "tessedit_char_whitelist=0123456789" in config


def test_text_layer_is_used_when_long_enough(receipt_pdf, tesseract):
    result = asyncio.run(OCRService().extract_text(receipt_pdf))
    assert result.source == TextSource.TEXT_LAYER
    assert result.text.splitlines()[0] == "CORNER MARKET"
    assert tesseract == []


def test_scanned_pdf_falls_back_to_ocr(blank_pdf, tesseract):
    result = asyncio.run(OCRService().extract_text(blank_pdf))
    assert result.source == TextSource.OCR
    assert result.text == "STORE\nTotal 5.00"
    assert result.page_count == 1
    assert tesseract[0]["mode"] == "L"
    assert tesseract[0]["lang"] == "eng"


def test_missing_tesseract_binary(monkeypatch, blank_pdf):
    def not_found():
        raise ocr_service.pytesseract.TesseractNotFoundError()

    monkeypatch.setattr(ocr_service.pytesseract, "get_tesseract_version", not_found)
    with pytest.raises(AppError) as err:
        asyncio.run(OCRService().extract_text(blank_pdf))
    assert err.value.type == ErrorType.OCR_ERROR
    assert err.value.message.startswith("Failed to initialize OCR service")


def test_engine_failure_is_wrapped(monkeypatch, blank_pdf, tesseract):
    def broken(image, lang=None, config=None, timeout=0):
        raise RuntimeError("engine crashed")

    monkeypatch.setattr(ocr_service.pytesseract, "image_to_string", broken)
    with pytest.raises(AppError) as err:
        asyncio.run(OCRService().extract_text(blank_pdf))
    assert err.value.type == ErrorType.OCR_ERROR
    assert err.value.message == "Failed to extract text from PDF: engine crashed"


def test_ocr_run_is_bounded_by_timeout(monkeypatch, blank_pdf, tesseract):
    def slow(image, lang=None, config=None, timeout=0):
        time.sleep(0.3)
        return "late"

    monkeypatch.setattr(ocr_service.pytesseract, "image_to_string", slow)
    service = OCRService()
    service.timeout = 0.05
    with pytest.raises(AppError) as err:
        asyncio.run(service.extract_text(blank_pdf))
    assert err.value.status_code == 504
    assert err.value.message.startswith("OCR timed out")


def test_tesseract_run_gets_its_own_timeout(blank_pdf, tesseract):
    service = OCRService()
    asyncio.run(service.extract_text(blank_pdf))
    assert tesseract[0]["timeout"] == service.timeout


def test_busy_engine_does_not_block_past_timeout(blank_pdf, tesseract):
    service = OCRService()
    service.timeout = 0.05
    ocr_service._ocr_lock.acquire()
    try:
        with pytest.raises(AppError) as err:
            asyncio.run(service.extract_text(blank_pdf))
        assert err.value.status_code == 504
    finally:
        ocr_service._ocr_lock.release()

    # the abandoned run gives up on the lock instead of running tesseract later
    assert tesseract == []
    service.timeout = 5
    assert asyncio.run(service.extract_text(blank_pdf)).text == "STORE\nTotal 5.00"
