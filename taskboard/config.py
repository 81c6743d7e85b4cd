"""Settings for the taskboard API."""

from __future__ import annotations

import os
from typing import List, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field

# Search for the nearest .env so running from subdirectories still loads it.
load_dotenv(find_dotenv(usecwd=True))


def normalize_database_url(url: str) -> str:
    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://") :]
    return url


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _cors_origins() -> List[str]:
    raw = _env("CORS_ORIGIN", "*")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


class Settings(BaseModel):
    api_title: str = "Taskboard API"
    api_version: str = "1.0.0"
    database_url: str = Field(
        default_factory=lambda: normalize_database_url(_env("DATABASE_URL", "sqlite:///./taskboard.db"))
    )
    jwt_secret: str = Field(default_factory=lambda: _env("JWT_SECRET", "dev-secret"))
    jwt_algorithm: str = Field(default_factory=lambda: _env("JWT_ALGORITHM", "HS256"))
    jwt_issuer: Optional[str] = Field(default_factory=lambda: _env("JWT_ISSUER"))
    jwt_audience: Optional[str] = Field(default_factory=lambda: _env("JWT_AUDIENCE"))
    cors_origins: List[str] = Field(default_factory=_cors_origins)
    log_level: str = Field(default_factory=lambda: _env("LOG_LEVEL", "INFO").upper())
    # Whole-transaction attempts for a reorder before giving up with a conflict.
    reorder_max_attempts: int = Field(default_factory=lambda: int(_env("REORDER_MAX_ATTEMPTS", "3")), ge=1)
    host: str = Field(default_factory=lambda: _env("HOST", "0.0.0.0"))
    port: int = Field(default_factory=lambda: int(_env("PORT", "8000")))


settings = Settings()
