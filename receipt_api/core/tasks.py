"""Dramatiq task definitions for background processing.

OCR and hosted model calls can take long enough that clients may prefer
to queue a file instead of waiting on the request.  This module defines
the broker and the actor that runs the same processing pipeline as the
``POST /api/process/{file_id}`` route.

To run these tasks start a Dramatiq worker pointed at the worker module:

```bash
dramatiq receipt_api.worker --processes 1 --threads 2
```

The broker is Redis at ``settings.REDIS_URL``.  Under
``ENVIRONMENT=test`` an in-memory stub broker is used instead.
"""

from __future__ import annotations

import asyncio
import logging

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.brokers.stub import StubBroker
from dramatiq.middleware import AgeLimit, ShutdownNotifications, TimeLimit
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from receipt_api.core.config import settings
from receipt_api.core.database import build_engine
from receipt_api.core.errors import AppError
from receipt_api.core.observability import sentry_breadcrumb

logger = logging.getLogger(__name__)

MAX_RETRIES = 3


def _has_mw(broker: dramatiq.Broker, mw_cls: type) -> bool:
    return any(isinstance(m, mw_cls) for m in broker.middleware)


def _build_broker() -> dramatiq.Broker:
    if settings.is_test:
        return StubBroker()
    broker = RedisBroker(url=settings.REDIS_URL)
    if not _has_mw(broker, AgeLimit):
        broker.add_middleware(AgeLimit())
    if not _has_mw(broker, TimeLimit):
        broker.add_middleware(TimeLimit())
    if not _has_mw(broker, ShutdownNotifications):
        broker.add_middleware(ShutdownNotifications())
    logger.info("Dramatiq broker configured: %s", settings.REDIS_URL)
    return broker


broker = _build_broker()
dramatiq.set_broker(broker)


def should_retry(retries_so_far: int, exc: BaseException) -> bool:
    """Retry transient failures only; bad input fails the same way every time."""
    if isinstance(exc, AppError) and not exc.retryable:
        return False
    return retries_so_far < MAX_RETRIES


async def _process_file(file_id: int) -> str:
    # Each message runs in a fresh event loop, so it cannot share the
    # API's pooled engine.
    from receipt_api.services.processing_service import ReceiptProcessingService

    engine = build_engine(pooled=False)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    try:
        async with session_factory() as session:
            receipt, _ = await ReceiptProcessingService(session).process(file_id)
            return receipt.id
    finally:
        await engine.dispose()


@dramatiq.actor(retry_when=should_retry, min_backoff=5000, max_backoff=60000)
def process_receipt_file(file_id: int) -> None:
    """Background task: extract and persist the receipt held by ``file_id``."""
    sentry_breadcrumb("worker", "process_receipt_file", data={"file_id": file_id})
    logger.info("[worker] processing file_id=%s", file_id)
    try:
        receipt_id = asyncio.run(_process_file(file_id))
    except AppError as exc:
        logger.warning("[worker] file_id=%s failed: %s (retryable=%s)", file_id, exc.message, exc.retryable)
        raise
    logger.info("[worker] file_id=%s -> receipt %s", file_id, receipt_id)
