"""SQLAlchemy ORM models for the receipt extraction API.

Two tables back the service: ``receipt_file`` tracks every uploaded
PDF through validation and processing, ``receipts`` holds the
structured data extracted from a processed file.  Line items are kept
in a JSON column on the receipt row.

The schema is created by ``init_db`` at startup; remember to recreate
the database during development when changing these models.
"""

from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Numeric,
    Text,
    JSON,
)
from sqlalchemy.orm import relationship

from receipt_api.core.database import Base


def _uuid_str() -> str:
    return str(uuid.uuid4())


class ReceiptFile(Base):
    """Uploaded PDF and its validation / processing state."""

    __tablename__ = "receipt_file"

    id = Column(Integer, primary_key=True, index=True)
    file_name = Column(String, nullable=False)
    file_path = Column(String, nullable=False)  # storage key
    content_type = Column(String, nullable=True)
    size_bytes = Column(Integer, nullable=True)
    is_valid = Column(Boolean, default=False, nullable=False)
    # Holds the validation failure reason or the last processing status message
    invalid_reason = Column(Text, nullable=True)
    is_processed = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=dt.datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow, nullable=False)

    receipts = relationship("Receipt", back_populates="receipt_file", passive_deletes=True)


class Receipt(Base):
    """Structured data extracted from a receipt file."""

    __tablename__ = "receipts"

    id = Column(String(36), primary_key=True, default=_uuid_str)
    receipt_file_id = Column(Integer, ForeignKey("receipt_file.id", ondelete="SET NULL"), nullable=True, index=True)
    merchant_name = Column(String, nullable=True, default="Unknown Merchant")
    purchased_at = Column(DateTime, nullable=True, default=dt.datetime.utcnow, index=True)
    total_amount = Column(Numeric(10, 2, asdecimal=False), nullable=True, default=0)
    tax_amount = Column(Numeric(10, 2, asdecimal=False), nullable=True, default=0)
    payment_method = Column(String, nullable=True, default="Unknown")
    receipt_number = Column(String, nullable=True)
    items = Column(JSON, nullable=True, default=list)
    raw_text = Column(Text, nullable=True)
    extraction_method = Column(String, nullable=True)
    text_source = Column(String, nullable=True)
    file_path = Column(String, nullable=False)
    created_at = Column(DateTime, default=dt.datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=dt.datetime.utcnow, onupdate=dt.datetime.utcnow, nullable=False)

    receipt_file = relationship("ReceiptFile", back_populates="receipts")
