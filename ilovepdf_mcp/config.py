from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional, TextIO

import structlog
from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _s(v: Optional[str]) -> Optional[str]:
    """Strip whitespace from optional strings."""
    if v is None:
        return None
    vv = str(v).strip()
    return vv if vv else None


def _strip_trailing_slash(url: str) -> str:
    return (url or "").strip().rstrip("/")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="", extra="ignore", env_file=".env", env_file_encoding="utf-8", populate_by_name=True
    )
    # -----------------
    # Server
    # -----------------
    host: str = Field(default="0.0.0.0", alias="MCP_SERVER_HOST")
    port: int = Field(default=8765, alias="MCP_SERVER_PORT")

    # Root/application log level.
    # Allowed: CRITICAL, ERROR, WARNING, INFO, DEBUG, NOTSET
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Uvicorn log level (optional). If unset/blank, defaults to LOG_LEVEL (lower-cased).
    uvicorn_log_level: Optional[str] = Field(default=None, alias="UVICORN_LOG_LEVEL")

    # -----------------
    # Default credentials (used when a tool call does not carry its own keys)
    # -----------------
    public_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("ILOVEPDF_PUBLIC_KEY", "PUBLIC_KEY")
    )
    secret_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("ILOVEPDF_SECRET_KEY", "SECRET_KEY")
    )

    # Image tools need an iLoveIMG project; these take precedence over the iLovePDF pair for them.
    image_public_key: Optional[str] = Field(default=None, alias="ILOVEIMG_PUBLIC_KEY")
    image_secret_key: Optional[str] = Field(default=None, alias="ILOVEIMG_SECRET_KEY")

    # -----------------
    # Backends
    # -----------------
    document_api_base_url: str = Field(default="https://api.ilovepdf.com", alias="ILOVEPDF_API_BASE_URL")
    image_api_base_url: str = Field(default="https://api.iloveimg.com", alias="ILOVEIMG_API_BASE_URL")

    default_region: str = Field(default="us", alias="ILOVEPDF_DEFAULT_REGION")
    # The image backend only serves one region; every image task is started there.
    image_region: str = Field(default="eu", alias="ILOVEIMG_REGION")

    # -----------------
    # Lifetimes
    # -----------------
    token_validity_s: float = Field(default=2 * 60 * 60, alias="ILOVEPDF_TOKEN_VALIDITY_S")
    token_safety_margin_s: float = Field(default=5 * 60, alias="ILOVEPDF_TOKEN_SAFETY_MARGIN_S")
    # Server-side task lifetime. Soft default; a backend-reported expiry wins.
    task_expiry_s: float = Field(default=2 * 60 * 60, alias="ILOVEPDF_TASK_EXPIRY_S")

    # -----------------
    # HTTP transport
    # -----------------
    # Unset means no client-side timeout (uploads/processing of large files can be slow).
    http_timeout_s: Optional[float] = Field(default=None, alias="ILOVEPDF_HTTP_TIMEOUT_S")
    ssl_verify: bool = Field(default=True, alias="ILOVEPDF_SSL_VERIFY")

    @model_validator(mode="after")
    def _normalize(self) -> "Settings":
        # -----------------
        # Normalize/validate logging settings early
        # -----------------
        lvl = (self.log_level or "INFO").strip().upper()
        allowed = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"}
        if lvl not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(allowed)} (got {self.log_level!r})")
        self.log_level = lvl

        # If UVICORN_LOG_LEVEL is not set, mirror LOG_LEVEL (uvicorn expects lower-case names).
        if self.uvicorn_log_level and str(self.uvicorn_log_level).strip():
            self.uvicorn_log_level = str(self.uvicorn_log_level).strip().lower()
        else:
            self.uvicorn_log_level = lvl.lower()

        self.public_key = _s(self.public_key)
        self.secret_key = _s(self.secret_key)
        self.image_public_key = _s(self.image_public_key)
        self.image_secret_key = _s(self.image_secret_key)

        self.document_api_base_url = _strip_trailing_slash(self.document_api_base_url)
        self.image_api_base_url = _strip_trailing_slash(self.image_api_base_url)
        if not self.document_api_base_url or not self.image_api_base_url:
            raise ValueError("ILOVEPDF_API_BASE_URL and ILOVEIMG_API_BASE_URL must not be empty")

        self.default_region = (self.default_region or "us").strip().lower()
        self.image_region = (self.image_region or "eu").strip().lower()

        if self.token_safety_margin_s >= self.token_validity_s:
            raise ValueError("ILOVEPDF_TOKEN_SAFETY_MARGIN_S must be smaller than ILOVEPDF_TOKEN_VALIDITY_S")
        if self.task_expiry_s <= 0:
            raise ValueError("ILOVEPDF_TASK_EXPIRY_S must be positive")
        if self.http_timeout_s is not None and self.http_timeout_s <= 0:
            self.http_timeout_s = None

        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def configure_logging(stream: Optional[TextIO] = None) -> None:
    """Configure stdlib logging and structlog.

    The stdio transport owns stdout for protocol frames, so it passes sys.stderr.
    """
    settings = get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, stream=stream)

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )
