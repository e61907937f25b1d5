"""Enumeration types used throughout the receipt extraction API.

Enumerations constrain the values stored in the database or passed
through the API and make pipeline decisions readable.
"""

from enum import Enum


class ExtractionMode(str, Enum):
    """How structured fields are derived from receipt text."""

    AUTO = "auto"
    LLM = "llm"
    REGEX = "regex"


class ExtractionMethod(str, Enum):
    """Engine that actually produced a stored receipt."""

    LLM = "llm"
    REGEX = "regex"


class TextSource(str, Enum):
    """Where the receipt text came from."""

    TEXT_LAYER = "text_layer"
    OCR = "ocr"


class StorageBackend(str, Enum):
    """Supported storage backends for uploaded files."""

    FILESYSTEM = "filesystem"
    MINIO = "minio"
