"""FastAPI application entry point for RevalOS.

Health check with DB connectivity. Subject-scoped cycle routers.
Stdlib logging from ``src.*`` modules is rendered through structlog once
the app starts; importing the app leaves the root logger alone.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from src.api.cycles import router as cycles_router
from src.config.settings import Settings, get_settings

APP_VERSION = "0.1.0"

settings = get_settings()

_LOG_NAME_TO_LEVEL: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _renderer(cfg: Settings) -> structlog.types.Processor:
    if cfg.is_dev:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


# --- Structured logging ---
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _renderer(settings),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        _LOG_NAME_TO_LEVEL[settings.LOG_LEVEL.value],
    ),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger()


def configure_logging(cfg: Settings) -> logging.Logger:
    """Render ``logging.getLogger(__name__)`` records under ``src`` via structlog.

    Replaces any handler a previous call installed, so calling it twice
    does not duplicate output. Returns the configured ``src`` logger.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso"),
            ],
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(cfg),
            ],
        )
    )
    app_logger = logging.getLogger("src")
    app_logger.handlers = [handler]
    app_logger.setLevel(_LOG_NAME_TO_LEVEL[cfg.LOG_LEVEL.value])
    return app_logger


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    configure_logging(settings)
    logger.info("startup", version=APP_VERSION, environment=settings.ENVIRONMENT.value)
    yield


# --- FastAPI app ---
app = FastAPI(
    title="RevalOS API",
    description="Revalidation cycle lifecycle, evidence archiving and audit trail.",
    version=APP_VERSION,
    lifespan=lifespan,
)

# --- CORS middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.is_dev else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Routers ---
# Subject-scoped routers (all under /v1/subjects/{subject_id}/...)
app.include_router(cycles_router)


# --- Infrastructure Endpoints (global) ---


@app.get("/health")
async def health_check() -> dict:
    """Liveness check with component health checks.

    Returns 200 always (degraded status if components are down).
    """
    checks: dict[str, bool] = {"api": True}

    # Database connectivity check
    try:
        from src.db.session import async_session_factory
        async with async_session_factory() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception:
        checks["database"] = False

    all_ok = all(checks.values())

    return {
        "status": "ok" if all_ok else "degraded",
        "version": APP_VERSION,
        "environment": settings.ENVIRONMENT.value,
        "checks": checks,
    }


@app.get("/api/version")
async def get_version() -> dict[str, str]:
    """Return application name, version, and environment."""
    return {
        "name": "RevalOS",
        "version": APP_VERSION,
        "environment": settings.ENVIRONMENT.value,
    }
