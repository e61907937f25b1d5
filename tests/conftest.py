from __future__ import annotations

import asyncio
import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Iterable

import pytest

# Point settings at throwaway storage before anything imports receipt_api
_TMP_ROOT = Path(tempfile.mkdtemp(prefix="receipt-api-tests-"))
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP_ROOT / 'test.db'}"
os.environ["STORAGE_BACKEND"] = "filesystem"
os.environ["STORAGE_DIRECTORY"] = str(_TMP_ROOT / "uploads")
os.environ["EXTRACTION_MODE"] = "regex"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("API_KEY", None)
os.environ.pop("SENTRY_DSN", None)

import fitz  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from receipt_api.core import database  # noqa: E402

# Every test drives the app through its own event loop; pooled aiosqlite
# connections must not outlive the loop that opened them.
database.engine = database.build_engine(pooled=False)
database.AsyncSessionLocal = async_sessionmaker(
    database.engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)

SAMPLE_RECEIPT_LINES = [
    "CORNER MARKET",
    "123 Main Street",
    "Date: 03/15/2024",
    "Receipt No: A12345",
    "Coffee 2 x 3.50 7.00",
    "Bagel 2.25",
    "Bagel 2.25",
    "Subtotal 11.50",
    "Sales Tax 0.92",
    "Total 12.42",
    "Paid by VISA",
]


def build_pdf(lines: Iterable[str] = (), pages: int = 1) -> bytes:
    """Render ``lines`` onto the first page of a new PDF."""
    doc = fitz.open()
    try:
        for index in range(pages):
            page = doc.new_page()
            if index == 0:
                for row, line in enumerate(lines):
                    page.insert_text((72, 72 + row * 16), line, fontsize=11)
        return doc.tobytes()
    finally:
        doc.close()


async def _reset_schema() -> None:
    from receipt_api.models import tables  # noqa: F401

    async with database.engine.begin() as conn:
        await conn.run_sync(database.Base.metadata.drop_all)
        await conn.run_sync(database.Base.metadata.create_all)


@pytest.fixture
def reset_db():
    asyncio.run(_reset_schema())
    uploads = Path(os.environ["STORAGE_DIRECTORY"])
    shutil.rmtree(uploads, ignore_errors=True)
    uploads.mkdir(parents=True, exist_ok=True)
    yield


@pytest.fixture
def run_db(reset_db) -> Callable:
    """Run ``fn(session)`` inside a fresh session on a fresh event loop."""

    def _run(fn):
        async def scenario():
            async with database.AsyncSessionLocal() as session:
                return await fn(session)

        return asyncio.run(scenario())

    return _run


@pytest.fixture
def make_pdf() -> Callable[..., bytes]:
    return build_pdf


@pytest.fixture
def receipt_pdf() -> bytes:
    return build_pdf(SAMPLE_RECEIPT_LINES)


@pytest.fixture
def blank_pdf() -> bytes:
    return build_pdf([])


@pytest.fixture
def client(reset_db):
    from fastapi.testclient import TestClient

    from receipt_api.api.main import app

    with TestClient(app) as test_client:
        yield test_client


def pytest_sessionfinish(session, exitstatus):
    shutil.rmtree(_TMP_ROOT, ignore_errors=True)
