"""Configuration management.

This module defines a ``Settings`` class that reads configuration
values from environment variables and provides sensible defaults.
``.env`` support is implemented by loading files from the repository
root in a defined order.  You can override any value via environment
variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from dotenv import load_dotenv, find_dotenv

# -----------------------------------------------------------------------------
# .env loading
#
# Prefer a .env in the repository root but allow fallback to whatever
# python-dotenv discovers from the current working directory.  Files are
# loaded in order without overriding already-set variables.

_THIS_FILE = Path(__file__).resolve()
_REPO_ROOT = _THIS_FILE.parents[2]
_ROOT_ENV = _REPO_ROOT / ".env"

_candidate_envs: list[str] = []
if _ROOT_ENV.exists():
    _candidate_envs.append(str(_ROOT_ENV))

_FOUND_ENV = find_dotenv(usecwd=True)
if _FOUND_ENV and _FOUND_ENV not in _candidate_envs:
    _candidate_envs.append(_FOUND_ENV)

for _env_path in _candidate_envs:
    load_dotenv(dotenv_path=_env_path, override=False)


class Settings(BaseSettings):
    """Application settings.

    Values are loaded from the environment with sensible defaults.  Any
    attribute defined here can be overridden by setting the corresponding
    environment variable.
    """

    model_config = SettingsConfigDict(
        env_file=tuple(_candidate_envs) if _candidate_envs else (".env",),
        case_sensitive=True,
        extra="allow",
    )

    # API Settings
    API_PREFIX: str = "/api"
    PROJECT_NAME: str = "PDF Receipt Extraction API"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development")
    LOG_LEVEL: str = Field(default="INFO")

    # Database
    DATABASE_URL: str = Field(default="sqlite+aiosqlite:///./database/receipts.db")

    # Redis (background job broker)
    REDIS_URL: str = Field(default="redis://localhost:6379/0")

    # Optional shared secret; when set every /api request needs X-API-Key
    API_KEY: Optional[str] = Field(default=None)

    # File Upload
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024  # 10MB
    ALLOWED_CONTENT_TYPES: set[str] = {"application/pdf"}

    # Storage
    STORAGE_BACKEND: str = Field(default="filesystem")
    STORAGE_DIRECTORY: str = Field(default="./uploads")
    MINIO_ENDPOINT: str = Field(default="localhost:9000")
    MINIO_ACCESS_KEY: str = Field(default="minioadmin")
    MINIO_SECRET_KEY: str = Field(default="minioadmin")
    MINIO_BUCKET_NAME: str = Field(default="receipts")
    MINIO_USE_SSL: bool = Field(default=False)

    # PDF rasterization
    PDF_RENDER_DPI: int = Field(default=150)
    PDF_MAX_PAGES: int = Field(default=1)

    # OCR
    OCR_LANGUAGE: str = Field(default="eng")
    OCR_MIN_TEXT_LENGTH: int = Field(default=50)
    OCR_TIMEOUT_SECONDS: float = Field(default=60.0)
    TESSERACT_CMD: Optional[str] = Field(default=None)

    # Extraction: "auto" (LLM with regex fallback), "llm" or "regex"
    EXTRACTION_MODE: str = Field(default="auto")

    # OpenAI
    OPENAI_API_KEY: Optional[str] = Field(default=None)
    LLM_MODEL: str = Field(default="gpt-4o-mini")
    LLM_TIMEOUT_SECONDS: float = Field(default=60.0)
    LLM_MAX_RETRIES: int = Field(default=2)

    # CORS
    BACKEND_CORS_ORIGINS: list[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
    )

    # Sentry
    SENTRY_DSN: Optional[str] = Field(default=None)
    SENTRY_TRACES_SAMPLE_RATE: float = Field(default=0.0)
    SENTRY_PROFILES_SAMPLE_RATE: float = Field(default=0.0)
    SENTRY_RELEASE: Optional[str] = Field(default=None)

    @property
    def is_development(self) -> bool:
        return (self.ENVIRONMENT or "development").lower() == "development"

    @property
    def is_test(self) -> bool:
        return (self.ENVIRONMENT or "").lower() == "test"

    @property
    def llm_configured(self) -> bool:
        return bool(self.OPENAI_API_KEY or os.getenv("OPENAI_API_KEY"))


# Instantiate global settings
settings = Settings()


def storage_root() -> Path:
    """Return the absolute filesystem storage directory."""
    base_path = Path(settings.STORAGE_DIRECTORY)
    if not base_path.is_absolute():
        base_path = (Path.cwd() / base_path).resolve()
    return base_path
