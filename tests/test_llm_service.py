import asyncio
import json
from types import SimpleNamespace

import pytest

from receipt_api.core.errors import AppError, ErrorType
from receipt_api.services import llm_service
from receipt_api.services.llm_service import LLMService, clean_response, validate_and_transform


class FakeCompletions:
    def __init__(self, content=None, exc=None, delay=0.0):
        self.content = content
        self.exc = exc
        self.delay = delay
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(**kwargs):
    completions = FakeCompletions(**kwargs)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def test_clean_response_strips_code_fences():
    assert clean_response('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert clean_response("  {}  ") == "{}"


def test_validate_and_transform_camel_case_with_defaults():
    data = validate_and_transform(
        {
            "merchantName": "Cafe Luna",
            "date": "2024-01-31",
            "totalAmount": "12.50",
            "taxAmount": 1,
            "items": [{"name": "Latte", "quantity": "2", "price": 3.5, "total": 7}, {"price": "oops"}],
            "paymentMethod": None,
            "receiptNumber": 42,
        }
    )
    assert data.merchant_name == "Cafe Luna"
    assert data.total_amount == 12.5
    assert data.tax_amount == 1.0
    assert data.payment_method == "Unknown"
    assert data.receipt_number == "42"
    assert data.items[0].quantity == 2
    fallback = data.items[1]
    assert (fallback.name, fallback.quantity, fallback.price, fallback.total) == ("Unknown Item", 1, 0, 0)


def test_validate_and_transform_snake_case():
    data = validate_and_transform({"merchant_name": "Shop", "total_amount": 5})
    assert data.merchant_name == "Shop"
    assert data.total_amount == 5.0
    assert data.items == []


def test_validate_and_transform_rejects_non_object():
    with pytest.raises(AppError) as err:
        validate_and_transform(["not", "a", "dict"])
    assert err.value.message == "Invalid data structure received from AI"


def test_extract_receipt_data_parses_fenced_json():
    payload = {"merchantName": "Cafe Luna", "totalAmount": 9.99, "items": []}
    client, completions = fake_client(content=f"```json\n{json.dumps(payload)}\n```")
    service = LLMService(client=client, model="test-model")

    data = asyncio.run(service.extract_receipt_data("CAFE LUNA\nTotal 9.99"))

    assert data.merchant_name == "Cafe Luna"
    assert data.total_amount == 9.99
    call = completions.calls[0]
    assert call["model"] == "test-model"
    assert call["response_format"] == {"type": "json_object"}
    assert "Total 9.99" in call["messages"][-1]["content"]


def test_extract_receipt_data_bad_json():
    client, _ = fake_client(content="definitely not json")
    with pytest.raises(AppError) as err:
        asyncio.run(LLMService(client=client).extract_receipt_data("text"))
    assert err.value.message == "Failed to parse receipt data from AI response"


def test_extract_receipt_data_wraps_client_errors():
    client, _ = fake_client(exc=RuntimeError("boom"))
    with pytest.raises(AppError) as err:
        asyncio.run(LLMService(client=client).extract_receipt_data("text"))
    assert err.value.message == "Failed to extract receipt data using AI: boom"
    assert err.value.status_code == 500


def test_extract_receipt_data_timeout():
    client, _ = fake_client(content="{}", delay=1.0)
    service = LLMService(client=client)
    service.timeout = 0.01
    with pytest.raises(AppError) as err:
        asyncio.run(service.extract_receipt_data("text"))
    assert err.value.status_code == 504
    assert err.value.type == ErrorType.PROCESSING_ERROR


def test_missing_api_key_is_reported(monkeypatch):
    monkeypatch.setattr(llm_service.settings, "OPENAI_API_KEY", None)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    service = LLMService()
    assert not service.configured
    with pytest.raises(AppError) as err:
        asyncio.run(service.extract_receipt_data("text"))
    assert err.value.message.startswith("LLM extraction is not configured")
