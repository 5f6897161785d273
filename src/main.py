"""Campus Complaints FastAPI application entry point.

Creates the FastAPI app, configures middleware, includes routers, maps
domain errors to HTTP responses, and manages the lifecycle of the
backend services (document store, repository, notifier, notification
dispatcher, complaint service).
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from config.settings import settings
from src.api.router import api_router
from src.middleware.privacy import RequestLoggingMiddleware
from src.services.errors import (
    AccessDenied,
    CampusError,
    Conflict,
    NotFound,
    PersistenceError,
    ValidationError,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------


def _configure_logging() -> None:
    """Set up structlog with JSON or console rendering based on settings."""
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelNamesMapping()[settings.log_level.upper()],
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage startup and shutdown of the complaint services.

    On startup:
      1. Open the document store (Redis, or in-memory without a URL)
      2. Build the repository and seed development users
      3. Build the notifier (SMTP e-mail + SMS gateway)
      4. Build the notification dispatcher and the complaint service
      5. Store everything on ``app.state``

    On shutdown:
      - Wait for in-flight notification deliveries.
      - Close the store connection pool.
    """
    _configure_logging()
    logger.info("app.startup", env=settings.env)

    app.state.start_time = time.time()

    # -- 1. Store -----------------------------------------------------------
    from src.services.store import DocumentStore

    store = DocumentStore.from_url(settings.redis_url, namespace=settings.store_namespace)
    app.state.store = store

    # -- 2. Repository and seed data ----------------------------------------
    from src.data.seed import seed_users
    from src.services.repository import CampusRepository

    repository = CampusRepository(store)
    app.state.repository = repository

    if settings.seed_users_file:
        try:
            await seed_users(repository, Path(settings.seed_users_file))
        except Exception:
            logger.warning("app.seed_users_failed", exc_info=True)

    # -- 3. Notifier ----------------------------------------------------------
    from src.services.notifier import CampusNotifier, SMTPEmailSender

    notifier = CampusNotifier(
        email_sender=SMTPEmailSender(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            from_email=settings.from_email,
            use_tls=settings.smtp_use_tls,
            timeout=settings.notification_timeout_seconds,
        ),
        sms_provider=settings.sms_provider,
        sms_api_key=settings.sms_api_key,
        sms_sender_id=settings.sms_sender_id,
    )
    app.state.notifier = notifier

    # -- 4. Dispatcher and complaint service ----------------------------------
    from src.services.complaints import ComplaintService
    from src.services.fanout import NotificationDispatcher

    dispatcher = NotificationDispatcher(
        repository,
        notifier,
        concurrency=settings.notification_concurrency,
        timeout_seconds=settings.notification_timeout_seconds,
        background=settings.notification_background,
    )
    app.state.dispatcher = dispatcher
    app.state.complaint_service = ComplaintService(repository, dispatcher)

    logger.info("app.startup_complete")

    yield

    # -- Shutdown -----------------------------------------------------------
    logger.info("app.shutdown_start", pending_deliveries=dispatcher.pending)
    await dispatcher.drain()
    await store.close()
    logger.info("app.shutdown_complete")


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Campus Complaints API",
    description=(
        "Campus complaint management: students and staff file complaints, "
        "staff triage those in their school and department, admins oversee "
        "everything.  Status changes are announced in-app, by e-mail and by SMS."
    ),
    version="0.1.0",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

# -- CORS middleware --------------------------------------------------------
# SECURITY: allow_credentials=True must NOT be combined with allow_origins=["*"]
# per the CORS specification (browsers will reject it).
if settings.is_production:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-User-Id"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:8000", "http://127.0.0.1:8000"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "HEAD"],
        allow_headers=["Content-Type", "Accept", "Authorization", "X-User-Id"],
    )

# -- Custom middleware ------------------------------------------------------
app.add_middleware(RequestLoggingMiddleware)


# -- Domain error handlers --------------------------------------------------


def _error_response(
    request: Request,
    exc: CampusError,
    status_code: int,
    **extra: str,
) -> ORJSONResponse:
    logger.warning(
        "api.domain_error",
        error=exc.__class__.__name__,
        detail=exc.message,
        path=request.url.path,
        status=status_code,
    )
    return ORJSONResponse(status_code=status_code, content={"detail": exc.message, **extra})


@app.exception_handler(ValidationError)
async def _validation_error_handler(request: Request, exc: ValidationError) -> ORJSONResponse:
    if exc.field is not None:
        return _error_response(request, exc, 400, field=exc.field)
    return _error_response(request, exc, 400)


@app.exception_handler(AccessDenied)
async def _access_denied_handler(request: Request, exc: AccessDenied) -> ORJSONResponse:
    return _error_response(request, exc, 403)


@app.exception_handler(NotFound)
async def _not_found_handler(request: Request, exc: NotFound) -> ORJSONResponse:
    return _error_response(request, exc, 404)


@app.exception_handler(Conflict)
async def _conflict_handler(request: Request, exc: Conflict) -> ORJSONResponse:
    return _error_response(request, exc, 409)


@app.exception_handler(PersistenceError)
async def _persistence_error_handler(request: Request, exc: PersistenceError) -> ORJSONResponse:
    logger.error("api.persistence_error", detail=exc.message, path=request.url.path)
    return ORJSONResponse(status_code=500, content={"detail": "Internal server error"})


# -- Include routers -------------------------------------------------------
app.include_router(api_router)


@app.get("/api", response_class=ORJSONResponse)
async def api_info() -> dict:
    """API information endpoint."""
    return {
        "name": "Campus Complaints API",
        "version": app.version,
        "docs": "/docs",
        "health": "/api/v1/health",
        "endpoints": {
            "complaints": "/api/v1/complaints",
            "stats": "/api/v1/complaints/stats/summary",
            "notifications": "/api/v1/notifications",
            "health": "/api/v1/health",
        },
    }
