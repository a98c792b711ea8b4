"""Configuration management for ImportMap."""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()


def _parse_cors_origins() -> list[str]:
    """Parse CORS origins from environment variable."""
    cors_env = os.getenv("CORS_ALLOW_ORIGINS")
    if cors_env:
        return cors_env.split(",")
    return ["*"]


def _parse_optional(name: str) -> Optional[str]:
    """Read an optional string setting, treating blanks as unset."""
    value = os.getenv(name, "").strip()
    return value or None


class Settings(BaseModel):
    """Application settings."""

    # Matching thresholds - these directly trade precision against recall
    acceptance_threshold: float = float(os.getenv("ACCEPTANCE_THRESHOLD", "0.72"))
    certainty_threshold: float = float(os.getenv("CERTAINTY_THRESHOLD", "0.97"))

    # Remote suggestion provider (unset means local heuristics only)
    suggestion_provider_url: Optional[str] = _parse_optional("SUGGESTION_PROVIDER_URL")
    suggestion_timeout_seconds: float = float(os.getenv("SUGGESTION_TIMEOUT_SECONDS", "8.0"))

    # Input defaults
    default_delimiter: str = os.getenv("DEFAULT_DELIMITER", "comma")
    default_has_header: bool = os.getenv("DEFAULT_HAS_HEADER", "true").lower() == "true"
    default_date_format: str = os.getenv("DEFAULT_DATE_FORMAT", "DD/MM/YYYY")

    # Server settings
    host: str = os.getenv("HOST", "127.0.0.1")
    port: int = int(os.getenv("PORT", "8000"))
    debug: bool = os.getenv("DEBUG", "false").lower() == "true"

    # CORS settings (comma-separated list of allowed origins, or * for all)
    cors_allow_origins: list[str] = _parse_cors_origins()

    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
