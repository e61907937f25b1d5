import uuid
from types import SimpleNamespace

from receipt_api.core.config import settings
from receipt_api.core.tasks import process_receipt_file


def _upload(client, data, name="receipt.pdf", content_type="application/pdf"):
    return client.post("/api/upload", files={"receipt": (name, data, content_type)})


def _uploaded_and_validated(client, data):
    file_id = _upload(client, data).json()["data"]["file"]["id"]
    resp = client.post(f"/api/validate/{file_id}")
    assert resp.status_code == 200
    return file_id


def test_root_and_health(client):
    assert client.get("/").json()["docs"] == "/api-docs"
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"
    assert client.head("/health").status_code == 200


def test_upload_records_file(client, receipt_pdf):
    resp = _upload(client, receipt_pdf, name="my receipt.pdf")
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    record = body["data"]["file"]
    assert record["file_name"] == "my receipt.pdf"
    assert record["file_path"].endswith("-my_receipt.pdf")
    assert record["is_valid"] is False
    assert record["is_processed"] is False

    stored = client.get(f"/uploads/{record['file_path']}")
    assert stored.status_code == 200
    assert stored.content == receipt_pdf


def test_upload_without_file(client):
    resp = client.post("/api/upload", files={"other": ("a.pdf", b"%PDF-1.4", "application/pdf")})
    assert resp.status_code == 400
    assert resp.json() == {"status": "error", "type": "VALIDATION_ERROR", "message": "No file uploaded"}


def test_upload_rejects_non_pdf(client):
    resp = _upload(client, b"GIF89a", name="cat.gif", content_type="image/gif")
    assert resp.status_code == 400
    assert resp.json()["type"] == "FILE_ERROR"
    assert resp.json()["message"] == "Only PDF files are allowed"


def test_validate_reports_invalid_pdf(client):
    file_id = _upload(client, b"plain text pretending to be a pdf").json()["data"]["file"]["id"]
    resp = client.post(f"/api/validate/{file_id}")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["validation"]["is_valid"] is False
    assert data["validation"]["reason"] == "Invalid PDF format: Missing PDF signature"
    assert data["file"]["invalid_reason"] == "Invalid PDF format: Missing PDF signature"

    resp = client.post(f"/api/process/{file_id}")
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid PDF format: Missing PDF signature"


def test_process_requires_validation(client, receipt_pdf):
    file_id = _upload(client, receipt_pdf).json()["data"]["file"]["id"]
    resp = client.post(f"/api/process/{file_id}")
    assert resp.status_code == 400
    assert resp.json()["message"] == "File has not been validated"


def test_process_unknown_file(client):
    resp = client.post("/api/process/9999")
    assert resp.status_code == 404
    assert resp.json()["type"] == "NOT_FOUND_ERROR"


def test_full_pipeline(client, receipt_pdf):
    file_id = _uploaded_and_validated(client, receipt_pdf)

    resp = client.post(f"/api/process/{file_id}")
    assert resp.status_code == 201
    data = resp.json()["data"]
    receipt = data["receipt"]
    assert receipt["merchant_name"] == "CORNER MARKET"
    assert receipt["total_amount"] == 12.42
    assert receipt["tax_amount"] == 0.92
    assert receipt["payment_method"] == "Visa"
    assert receipt["receipt_number"] == "A12345"
    assert receipt["purchased_at"].startswith("2024-03-15")
    assert receipt["extraction_method"] == "regex"
    assert receipt["text_source"] == "text_layer"
    assert receipt["receipt_file_id"] == file_id
    assert {item["name"] for item in data["extracted_items"]} == {"Coffee", "Bagel"}

    again = client.post(f"/api/process/{file_id}")
    assert again.status_code == 400
    assert again.json()["message"] == "File has already been processed"

    file_record = client.get(f"/api/files/{file_id}").json()["data"]["file"]
    assert file_record["is_processed"] is True

    listing = client.get("/api/receipts").json()["data"]
    assert listing["pagination"] == {"total": 1, "page": 1, "limit": 10, "pages": 1}
    assert listing["receipts"][0]["id"] == receipt["id"]

    detail = client.get(f"/api/receipts/{receipt['id']}")
    assert detail.status_code == 200
    assert len(detail.json()["data"]["receipt"]["items"]) == 2

    deleted = client.delete(f"/api/receipts/{receipt['id']}")
    assert deleted.json() == {"success": True, "message": "Receipt deleted successfully"}
    assert client.get(f"/api/receipts/{receipt['id']}").status_code == 404
    assert client.get("/api/files").json()["data"]["pagination"]["total"] == 0
    assert client.get(f"/uploads/{receipt['file_path']}").status_code == 404


def test_one_shot_receipt_creation(client, receipt_pdf):
    resp = client.post("/api/receipts", files={"receipt": ("r.pdf", receipt_pdf, "application/pdf")})
    assert resp.status_code == 201
    assert resp.json()["data"]["receipt"]["merchant_name"] == "CORNER MARKET"


def test_one_shot_rejects_invalid_pdf(client):
    resp = client.post("/api/receipts", files={"receipt": ("r.pdf", b"not a pdf", "application/pdf")})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid PDF format: Missing PDF signature"


def test_processing_failure_is_recorded_on_file(client, make_pdf):
    file_id = _uploaded_and_validated(client, make_pdf(["12345 67890 12345 67890", "12345 67890 12345 67890", "12345 67890 12345 67890"]))
    resp = client.post(f"/api/process/{file_id}")
    assert resp.status_code == 500
    assert resp.json()["type"] == "PROCESSING_ERROR"
    assert resp.json()["message"] == "Insufficient data extracted from receipt"

    record = client.get(f"/api/files/{file_id}").json()["data"]["file"]
    assert record["is_processed"] is False
    assert record["invalid_reason"] == "Insufficient data extracted from receipt"


def test_background_processing_queues_message(client, receipt_pdf, monkeypatch):
    sent = []

    def fake_send(file_id):
        sent.append(file_id)
        return SimpleNamespace(message_id="msg-1")

    monkeypatch.setattr(process_receipt_file, "send", fake_send)
    file_id = _uploaded_and_validated(client, receipt_pdf)

    resp = client.post(f"/api/process/{file_id}?background=true")
    assert resp.status_code == 202
    assert resp.json()["data"] == {"file_id": file_id, "message_id": "msg-1"}
    assert sent == [file_id]


def test_list_receipts_validates_paging(client):
    resp = client.get("/api/receipts?page=0&limit=500")
    assert resp.status_code == 400
    body = resp.json()
    assert body["type"] == "VALIDATION_ERROR"
    assert {detail["field"] for detail in body["details"]} == {"page", "limit"}


def test_receipt_id_must_be_uuid(client):
    assert client.get("/api/receipts/not-a-uuid").status_code == 400
    missing = client.get(f"/api/receipts/{uuid.uuid4()}")
    assert missing.status_code == 404
    assert missing.json()["message"] == "Receipt not found"


def test_api_key_is_enforced_when_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "API_KEY", "s3cret")
    resp = client.get("/api/receipts")
    assert resp.status_code == 401
    assert resp.json()["type"] == "UNAUTHORIZED_ERROR"
    assert client.get("/api/receipts", headers={"X-API-Key": "s3cret"}).status_code == 200
    # health stays public
    assert client.get("/health").status_code == 200


def test_deleting_file_keeps_extracted_receipt(client, receipt_pdf):
    file_id = _uploaded_and_validated(client, receipt_pdf)
    receipt = client.post(f"/api/process/{file_id}").json()["data"]["receipt"]

    resp = client.delete(f"/api/files/{file_id}")
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "File deleted successfully"}
    assert client.get(f"/api/files/{file_id}").status_code == 404

    kept = client.get(f"/api/receipts/{receipt['id']}")
    assert kept.status_code == 200
    assert kept.json()["data"]["receipt"]["receipt_file_id"] is None
    assert kept.json()["data"]["receipt"]["merchant_name"] == "CORNER MARKET"
