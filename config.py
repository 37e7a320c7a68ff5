"""
Runtime configuration and logging setup.

Settings are read from the environment once at startup and handed to the
application context; nothing else in the codebase calls os.getenv.
"""

import logging
import os
import sys
from typing import List

import structlog
from pydantic import BaseModel, Field


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "vidshare"

    access_token_secret: str = "dev-access-secret-change-me"
    access_token_expiry_minutes: int = Field(60, ge=1)
    refresh_token_secret: str = "dev-refresh-secret-change-me"
    refresh_token_expiry_days: int = Field(10, ge=1)

    upload_dir: str = Field(default_factory=lambda: os.path.join(os.getcwd(), "uploads"))
    media_base_url: str = "/static"

    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    max_page_size: int = Field(100, ge=1)

    log_level: str = "INFO"
    log_json: bool = False
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        origins = os.getenv("CORS_ORIGINS")
        return cls(
            database_url=os.getenv("DATABASE_URL", defaults.database_url),
            database_name=os.getenv("DATABASE_NAME", defaults.database_name),
            access_token_secret=os.getenv("ACCESS_TOKEN_SECRET", defaults.access_token_secret),
            access_token_expiry_minutes=int(
                os.getenv("ACCESS_TOKEN_EXPIRY_MINUTES", defaults.access_token_expiry_minutes)
            ),
            refresh_token_secret=os.getenv("REFRESH_TOKEN_SECRET", defaults.refresh_token_secret),
            refresh_token_expiry_days=int(
                os.getenv("REFRESH_TOKEN_EXPIRY_DAYS", defaults.refresh_token_expiry_days)
            ),
            upload_dir=os.getenv("UPLOAD_DIR", defaults.upload_dir),
            media_base_url=os.getenv("MEDIA_BASE_URL", defaults.media_base_url),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()] if origins else defaults.cors_origins,
            max_page_size=int(os.getenv("MAX_PAGE_SIZE", defaults.max_page_size)),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level),
            log_json=_env_bool("LOG_JSON", defaults.log_json),
            port=int(os.getenv("PORT", defaults.port)),
        )


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Route structlog through the stdlib logging module."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
