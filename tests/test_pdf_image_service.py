import pytest

from receipt_api.core.errors import AppError, ErrorType
from receipt_api.services.pdf_image_service import extract_text_layer, rasterize


def test_extract_text_layer(receipt_pdf):
    text = extract_text_layer(receipt_pdf)
    assert "CORNER MARKET" in text
    assert "Total 12.42" in text


def test_extract_text_layer_of_scanned_pdf_is_blank(blank_pdf):
    assert extract_text_layer(blank_pdf).strip() == ""


def test_rasterize_returns_grayscale_pages(receipt_pdf):
    images = rasterize(receipt_pdf, dpi=72)
    assert len(images) == 1
    assert images[0].mode == "L"
    assert images[0].size == (595, 842)


def test_rasterize_respects_page_limit(make_pdf):
    data = make_pdf(["page one"], pages=3)
    assert len(rasterize(data, max_pages=2, dpi=36)) == 2
    # default limit renders only the first page
    assert len(rasterize(data, dpi=36)) == 1


def test_rasterize_rejects_garbage():
    with pytest.raises(AppError) as err:
        rasterize(b"this is not a pdf")
    assert err.value.type == ErrorType.PROCESSING_ERROR
    assert err.value.message.startswith("Failed to convert PDF to images")
