"""Common dependencies for FastAPI routes.

Database sessions, the storage backend, the processing pipeline and the
optional shared-secret check applied to every ``/api`` route.
"""

from __future__ import annotations

import hmac
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from receipt_api.core.config import settings
from receipt_api.core.database import get_db
from receipt_api.core.errors import AppError
from receipt_api.services.processing_service import ReceiptProcessingService
from receipt_api.services.storage_service import StorageService, get_storage


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Alias for `get_db` to be imported in routers."""
    async for session in get_db():
        yield session


async def require_api_key(x_api_key: Optional[str] = Header(default=None, alias="X-API-Key")) -> None:
    """Reject the request unless it carries the configured API key.

    No-op when ``API_KEY`` is unset.
    """
    expected = settings.API_KEY
    if not expected:
        return
    if not x_api_key or not hmac.compare_digest(x_api_key.encode(), expected.encode()):
        raise AppError.unauthorized()


def get_processing_service(
    db: AsyncSession = Depends(get_db_session),
    storage: StorageService = Depends(get_storage),
) -> ReceiptProcessingService:
    return ReceiptProcessingService(db, storage=storage)
