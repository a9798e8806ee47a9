"""Configuration utilities for the interview service.

This module loads application configuration with the following rules:
- Primary source: `aiohub_config.json` at the project root.
- Overrides: environment variables, then optional text files under `config/`.
- Validation: Pydantic models enforce required fields and value constraints.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator


CONFIG_DIR = Path("config")
ROOT_CONFIG = Path("aiohub_config.json")
logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def _read_config_file(rel_path: str) -> Optional[str]:
    path = CONFIG_DIR / rel_path
    try:
        if path.exists():
            return path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as e:
        # Recoverable: log and ignore unreadable override
        logger.warning("Failed to read override %s: %s", path, e)
        return None
    return None


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(key, default)


class DatabaseConfig(BaseModel):
    dsn: str
    auto_apply_migrations: bool = Field(default=False)

    @field_validator("dsn")
    @classmethod
    def dsn_must_be_non_empty(cls, v: str) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("database.dsn must be a non-empty string")
        return v


class AutosaveConfig(BaseModel):
    debounce_ms: int = Field(default=1000, ge=0)
    saved_reset_ms: int = Field(default=1000, ge=0)

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0

    @property
    def saved_reset_seconds(self) -> float:
        return self.saved_reset_ms / 1000.0


class RateLimitConfig(BaseModel):
    window_seconds: int = Field(default=60, gt=0)
    max_requests: int = Field(default=120, gt=0)


class AppConfig(BaseModel):
    database: DatabaseConfig
    autosave: AutosaveConfig
    rate_limit: RateLimitConfig


def _read_json_file(path: Path) -> dict:
    try:
        if path.exists():
            return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error("Failed to read JSON config %s: %s", path, e)
    return {}


def load_config() -> AppConfig:
    """Load configuration with validation.

    Precedence (highest first):
    1) Environment variables (TEST_DATABASE_URL before DATABASE_URL)
    2) Text files in `config/` (optional)
    3) aiohub_config.json at project root (primary base)
    4) Safe defaults for development
    """

    base = _read_json_file(ROOT_CONFIG)

    def _base(path: str, default: Optional[str] = None) -> Optional[str]:
        cur: object = base
        for key in path.split("."):
            if not isinstance(cur, dict) or key not in cur:
                return default
            cur = cur[key]
        return str(cur) if cur is not None else default

    # Database; TEST_DATABASE_URL lets test runs point at a throwaway DB
    dsn = (
        _env("TEST_DATABASE_URL")
        or _env("DATABASE_URL")
        or _read_config_file("database.url")
        or _base("database.dsn")
        or "sqlite+pysqlite:///:memory:"
    )
    auto_apply_text = (
        _env("AUTO_APPLY_MIGRATIONS")
        or _read_config_file("database.auto_apply_migrations")
        or _base("database.auto_apply_migrations", "false")
    )

    # Autosave timings (shared with the client controller defaults)
    debounce_text = _env("AUTOSAVE_DEBOUNCE_MS") or _read_config_file("autosave.debounce_ms") or _base("autosave.debounce_ms", "1000")
    saved_reset_text = _env("AUTOSAVE_SAVED_RESET_MS") or _read_config_file("autosave.saved_reset_ms") or _base("autosave.saved_reset_ms", "1000")

    # Rate limiting
    window_text = _env("RATE_LIMIT_WINDOW_SECONDS") or _read_config_file("rate_limit.window_seconds") or _base("rate_limit.window_seconds", "60")
    max_requests_text = _env("RATE_LIMIT_MAX_REQUESTS") or _read_config_file("rate_limit.max_requests") or _base("rate_limit.max_requests", "120")

    try:
        cfg = AppConfig(
            database=DatabaseConfig(
                dsn=dsn,
                auto_apply_migrations=str(auto_apply_text).strip().lower() in _TRUTHY,
            ),
            autosave=AutosaveConfig(
                debounce_ms=int(str(debounce_text).strip()),
                saved_reset_ms=int(str(saved_reset_text).strip()),
            ),
            rate_limit=RateLimitConfig(
                window_seconds=int(str(window_text).strip()),
                max_requests=int(str(max_requests_text).strip()),
            ),
        )
        return cfg
    except (PydanticValidationError, ValueError) as e:
        logger.error("Invalid application configuration: %s", e)
        raise


__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "AutosaveConfig",
    "RateLimitConfig",
    "load_config",
]
