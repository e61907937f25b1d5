"""Persistence of extracted receipts."""

from __future__ import annotations

import datetime as dt
import logging
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from receipt_api.core.errors import AppError
from receipt_api.models.tables import Receipt, ReceiptFile
from receipt_api.services.extraction_service import ExtractionOutcome
from receipt_api.services.storage_service import StorageService
from receipt_api.utils.helpers import parse_receipt_date

logger = logging.getLogger(__name__)


async def save_receipt(
    db: AsyncSession,
    file_path: str,
    outcome: ExtractionOutcome,
    receipt_file_id: Optional[int] = None,
) -> Receipt:
    """Insert a receipt row for an extraction outcome, filling defaults."""
    data = outcome.data
    receipt = Receipt(
        receipt_file_id=receipt_file_id,
        merchant_name=data.merchant_name or "Unknown Merchant",
        purchased_at=parse_receipt_date(data.date) or dt.datetime.utcnow(),
        total_amount=data.total_amount or 0,
        tax_amount=data.tax_amount or 0,
        payment_method=data.payment_method or "Unknown",
        receipt_number=data.receipt_number,
        items=[item.model_dump() for item in data.items],
        raw_text=outcome.text,
        extraction_method=outcome.method.value,
        text_source=outcome.text_source.value,
        file_path=file_path,
    )
    try:
        db.add(receipt)
        await db.commit()
        await db.refresh(receipt)
    except SQLAlchemyError as exc:
        await db.rollback()
        raise AppError.database_error("Failed to save receipt") from exc
    logger.info("[receipts] saved id=%s merchant=%r total=%s", receipt.id, receipt.merchant_name, receipt.total_amount)
    return receipt


async def list_receipts(db: AsyncSession, page: int = 1, limit: int = 10) -> Tuple[List[Receipt], int]:
    """Return one page of receipts, newest purchase first, and the total count."""
    try:
        total = (await db.execute(select(func.count()).select_from(Receipt))).scalar_one()
        result = await db.execute(
            select(Receipt)
            .order_by(Receipt.purchased_at.desc(), Receipt.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
    except SQLAlchemyError as exc:
        raise AppError.database_error("Failed to fetch receipts") from exc
    return list(result.scalars().all()), total


async def get_receipt(db: AsyncSession, receipt_id: str) -> Receipt:
    try:
        receipt = await db.get(Receipt, receipt_id)
    except SQLAlchemyError as exc:
        raise AppError.database_error("Failed to fetch receipt") from exc
    if receipt is None:
        raise AppError.not_found("Receipt not found")
    return receipt


async def delete_receipt(db: AsyncSession, storage: StorageService, receipt_id: str) -> None:
    """Delete a receipt together with its source file row and stored bytes."""
    receipt = await get_receipt(db, receipt_id)
    keys = {receipt.file_path}
    try:
        source = await db.get(ReceiptFile, receipt.receipt_file_id) if receipt.receipt_file_id else None
        await db.delete(receipt)
        if source is not None:
            keys.add(source.file_path)
            await db.delete(source)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise AppError.database_error("Failed to delete receipt") from exc
    for key in keys:
        await storage.discard(key)
    logger.info("[receipts] deleted id=%s", receipt_id)
