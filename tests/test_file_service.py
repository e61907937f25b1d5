import pytest

from receipt_api.core.errors import AppError, ErrorType
from receipt_api.services import file_service
from receipt_api.services.storage_service import StorageService


def test_check_upload_rejects_non_pdf():
    with pytest.raises(AppError) as err:
        file_service.check_upload("a.png", "image/png", b"data")
    assert err.value.message == "Only PDF files are allowed"


def test_check_upload_rejects_empty_and_large(monkeypatch):
    with pytest.raises(AppError) as err:
        file_service.check_upload("a.pdf", "application/pdf", b"")
    assert err.value.message == "File is empty"

    monkeypatch.setattr(file_service.settings, "MAX_UPLOAD_SIZE", 10 * 1024 * 1024)
    with pytest.raises(AppError) as err:
        file_service.check_upload("a.pdf", "application/pdf", b"x" * (10 * 1024 * 1024 + 1))
    assert err.value.message == "File size exceeds 10MB limit"


def test_check_upload_accepts_pdf_with_parameters():
    file_service.check_upload("a.pdf", "application/pdf; charset=binary", b"%PDF-1.4")


def test_validate_pdf_accepts_real_pdf(receipt_pdf):
    result = file_service.validate_pdf(receipt_pdf)
    assert result.is_valid
    assert result.reason is None
    assert result.page_count == 1
    assert result.version and "." in result.version


@pytest.mark.parametrize(
    "data, reason",
    [
        (b"", "File is empty"),
        (b"hello world", "Invalid PDF format: Missing PDF signature"),
        (b"%PDF-x\nstuff", "Invalid PDF format: Missing version number"),
    ],
)
def test_validate_pdf_reports_bad_content(data, reason):
    result = file_service.validate_pdf(data)
    assert not result.is_valid
    assert result.reason == reason


def test_validate_pdf_unreadable_body():
    result = file_service.validate_pdf(b"%PDF-1.4\nthis body is not a pdf\n%%EOF")
    assert not result.is_valid
    assert result.reason.startswith("Invalid PDF format: ")
    assert result.version == "1.4"


def test_validate_pdf_missing_eof_only_warns(receipt_pdf):
    trimmed = receipt_pdf.replace(b"%%EOF", b"")
    result = file_service.validate_pdf(trimmed)
    assert result.is_valid


def test_file_records_lifecycle(run_db, receipt_pdf):
    storage = StorageService()

    async def scenario(db):
        record = await file_service.save_file(db, storage, "scan one.pdf", "application/pdf", receipt_pdf)
        assert record.is_valid is False
        assert record.is_processed is False
        assert record.size_bytes == len(receipt_pdf)
        assert storage.exists(record.file_path)

        rows, total = await file_service.list_files(db, page=1, limit=10)
        assert total == 1
        assert rows[0].id == record.id

        result = file_service.validate_pdf(storage.load(record.file_path))
        updated = await file_service.update_validation(db, record, result)
        assert updated.is_valid is True

        await file_service.delete_file(db, storage, record.id)
        assert not storage.exists(record.file_path)
        with pytest.raises(AppError) as err:
            await file_service.get_file(db, record.id)
        assert err.value.type == ErrorType.NOT_FOUND_ERROR

    run_db(scenario)
