"""Receipt field extraction through the OpenAI chat completions API.

The model is prompted with the normalised receipt text and asked for a
single JSON object (camelCase keys, see ``utils.prompts``).  Its reply is
cleaned of markdown fences, parsed and mapped onto
:class:`ExtractedReceiptData` with defaults for anything missing.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from receipt_api.core.config import settings
from receipt_api.core.errors import AppError
from receipt_api.models.schemas import ExtractedReceiptData, ReceiptItem
from receipt_api.utils.helpers import coerce_number
from receipt_api.utils.prompts import get_default_extraction_prompt, get_system_prompt

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def clean_response(text: str) -> str:
    """Strip markdown code fences and surrounding whitespace."""
    return _FENCE_RE.sub("", (text or "").strip()).strip()


def _pick(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _transform_item(raw: Any) -> ReceiptItem:
    if not isinstance(raw, dict):
        return ReceiptItem()
    quantity = coerce_number(raw.get("quantity"))
    return ReceiptItem(
        name=_as_text(raw.get("name")) or "Unknown Item",
        quantity=quantity if quantity is not None else 1,
        price=coerce_number(raw.get("price")) or 0,
        total=coerce_number(raw.get("total")) or 0,
    )


def validate_and_transform(data: Any) -> ExtractedReceiptData:
    """Map a decoded model reply onto :class:`ExtractedReceiptData`.

    Accepts both camelCase and snake_case keys; numeric strings are coerced.
    """
    if not isinstance(data, dict):
        raise AppError.processing_error("Invalid data structure received from AI")

    raw_items = _pick(data, "items")
    items: List[ReceiptItem] = [_transform_item(item) for item in raw_items] if isinstance(raw_items, list) else []

    return ExtractedReceiptData(
        merchant_name=_as_text(_pick(data, "merchantName", "merchant_name", "merchant")),
        date=_as_text(_pick(data, "date", "purchaseDate", "purchase_date")),
        total_amount=coerce_number(_pick(data, "totalAmount", "total_amount", "total")),
        tax_amount=coerce_number(_pick(data, "taxAmount", "tax_amount", "tax")),
        items=items,
        payment_method=_as_text(_pick(data, "paymentMethod", "payment_method")) or "Unknown",
        receipt_number=_as_text(_pick(data, "receiptNumber", "receipt_number")),
    )


class LLMService:
    """Extracts receipt data from text using a hosted chat model."""

    def __init__(self, client: AsyncOpenAI | None = None, model: str | None = None) -> None:
        self.model = model or settings.LLM_MODEL
        self.timeout = settings.LLM_TIMEOUT_SECONDS
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None or settings.llm_configured

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not settings.llm_configured:
                raise AppError.processing_error(
                    "LLM extraction is not configured: set OPENAI_API_KEY or use EXTRACTION_MODE=regex"
                )
            self._client = AsyncOpenAI(
                api_key=settings.OPENAI_API_KEY,
                timeout=self.timeout,
                max_retries=settings.LLM_MAX_RETRIES,
            )
        return self._client

    async def _complete(self, text: str) -> str:
        client = self._get_client()
        response = await client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": get_system_prompt()},
                {"role": "user", "content": get_default_extraction_prompt(text)},
            ],
            response_format={"type": "json_object"},
            temperature=0,
        )
        return response.choices[0].message.content or ""

    async def extract_receipt_data(self, text: str) -> ExtractedReceiptData:
        """Return structured receipt fields for ``text``."""
        try:
            content = await asyncio.wait_for(self._complete(text), timeout=self.timeout)
        except AppError:
            raise
        except asyncio.TimeoutError as exc:
            raise AppError.timeout(f"AI extraction timed out after {self.timeout:g} seconds") from exc
        except Exception as exc:
            logger.error("[llm] request failed model=%s err=%s", self.model, exc)
            raise AppError.processing_error(f"Failed to extract receipt data using AI: {exc}") from exc

        cleaned = clean_response(content)
        logger.debug("[llm] raw reply: %s", cleaned)
        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError as exc:
            logger.error("[llm] unparseable reply: %s", cleaned[:500])
            raise AppError.processing_error("Failed to parse receipt data from AI response") from exc
        return validate_and_transform(parsed)
