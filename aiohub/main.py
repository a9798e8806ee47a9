from __future__ import annotations

import logging
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from sqlalchemy import text as sql_text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from aiohub.config import AppConfig, load_config
from aiohub.db.base import get_engine
from aiohub.db.migrations_runner import apply_migrations
from aiohub.http.problem import (
    handle_http_exception,
    handle_request_validation_error,
    handle_session_error,
    handle_unexpected_error,
)
from aiohub.http.request_id import RequestIdMiddleware
from aiohub.logging_setup import configure_logging
from aiohub.logic.errors import InterviewSessionError
from aiohub.logic.rate_limit import InMemoryRateLimitStore, RateLimiter, RateLimitStore
from aiohub.middleware.preconditions import PreconditionsMiddleware
from aiohub.routes import api_router

logger = logging.getLogger(__name__)


def _health_check(dsn: str) -> Callable[[], dict]:
    def check() -> dict:
        try:
            with get_engine(dsn).connect() as conn:
                conn.execute(sql_text("SELECT 1"))
            return {"status": "ok", "db": True}
        except SQLAlchemyError as e:
            logger.error("Health DB check failed", exc_info=True)
            return {"status": "degraded", "db": False, "reason": str(e)}

    return check


def create_app(config: Optional[AppConfig] = None, rate_limit_store: Optional[RateLimitStore] = None) -> FastAPI:
    """Build the interview service application.

    `rate_limit_store` lets multi-instance deployments share counters; the
    default is process-local.
    """
    configure_logging()
    cfg = config or load_config()
    app = FastAPI(title="AIO Hub Interview Service")
    app.state.config = cfg
    app.state.rate_limiter = RateLimiter(
        rate_limit_store or InMemoryRateLimitStore(),
        window_seconds=cfg.rate_limit.window_seconds,
        max_requests=cfg.rate_limit.max_requests,
    )
    # Bind the shared engine now so repositories use the configured DSN
    get_engine(cfg.database.dsn)

    # Pre-body checks run before routing and body parsing
    app.add_middleware(PreconditionsMiddleware)
    app.add_exception_handler(InterviewSessionError, handle_session_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
    app.add_middleware(RequestIdMiddleware)

    # Apply migrations on startup (guarded) to avoid import-time side effects
    @app.on_event("startup")
    def _apply_migrations() -> None:  # pragma: no cover - exercised via integration
        if not cfg.database.auto_apply_migrations:
            logger.info("AUTO_APPLY_MIGRATIONS disabled; skipping migrations at startup")
            return
        try:
            applied = apply_migrations(get_engine(cfg.database.dsn))
        except SQLAlchemyError:
            logger.error("Failed to apply migrations at startup", exc_info=True)
            raise
        logger.info("startup_migrations_applied count=%s", len(applied))

    app.include_router(api_router, prefix="/api/v1")

    health_check = _health_check(cfg.database.dsn)

    @app.get("/health")
    def health():  # pragma: no cover - trivial
        return health_check()

    return app


# Intentionally do not instantiate the app at import time to prevent side effects.
