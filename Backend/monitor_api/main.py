"""
Main FastAPI application entry point.
"""

import logging
import sys
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from monitor_api.api.v1 import auth, config, health, jobs, nodes, users
from monitor_api.core.config import settings
from monitor_api.core.database import close_db, get_db_context, init_db, seed_default_admin
from monitor_api.core.exceptions import APIError, DatabaseError
from monitor_api.core.responses import error_body
from monitor_api.services.llm_client import close_llm_client, get_llm_client

API_PREFIX = "/api/v1"


# Configure stdlib logging as the structlog sink
handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
if settings.log.file:
    handlers.append(logging.FileHandler(settings.log.file, encoding="utf-8"))
logging.basicConfig(format="%(message)s", level=settings.log.level, handlers=handlers)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer() if settings.log.format == "json" else structlog.dev.ConsoleRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Starting application", version=settings.server.app_version, mode=settings.server.mode)

    if settings.database.auto_migrate:
        await init_db()
        logger.info("Database tables verified via init_db")

    async with get_db_context() as db:
        await seed_default_admin(db)

    # Created eagerly so runtime config changes reach it
    get_llm_client()

    logger.info(
        "Configuration loaded",
        app_name=settings.server.app_name,
        db_host=settings.database.host,
        db_name=settings.database.database,
        llm_enabled=settings.llm.enabled,
        llm_model=settings.llm.model,
        cors_origins=settings.server.cors_origins_list,
    )

    yield

    # Shutdown
    logger.info("Shutting down application")
    await close_llm_client()
    await close_db()


# Create FastAPI app
app = FastAPI(
    title=settings.server.app_name,
    version=settings.server.app_version,
    description="NPU job monitor - query API",
    docs_url="/docs" if settings.server.docs_enabled else None,
    redoc_url="/redoc" if settings.server.docs_enabled else None,
    lifespan=lifespan,
)


# ============================================================================
# Middleware
# ============================================================================

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.server.cors_origins_list,
    allow_credentials=settings.server.cors_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests and add request ID."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.time()

    if settings.log.requests:
        logger.info(
            "Request started",
            method=request.method,
            path=request.url.path,
            request_id=request_id,
        )

    try:
        response = await call_next(request)
    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            "Request failed",
            method=request.method,
            path=request.url.path,
            error=str(e),
            duration_ms=round(duration * 1000, 2),
            request_id=request_id,
        )
        raise

    response.headers["X-Request-ID"] = request_id

    if settings.log.requests:
        duration = time.time() - start_time
        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2),
            request_id=request_id,
            user_id=getattr(request.state, "user_id", None),
        )

    return response


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors as bad requests."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append(f"{field}: {error['msg']}")

    return JSONResponse(
        status_code=400,
        content=error_body(400, "; ".join(errors) or "invalid request"),
    )


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    """Handle service errors that escaped a router."""
    message = f"Database error: {exc.message}" if isinstance(exc, DatabaseError) else exc.message
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.status_code, message))


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Database error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content=error_body(500, f"Database error: {exc}"))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        error=str(exc),
        exc_info=exc,
    )

    return JSONResponse(
        status_code=500,
        content=error_body(500, str(exc) if settings.server.debug else "An internal error occurred"),
    )


# ============================================================================
# Routes
# ============================================================================

app.include_router(health.router)
app.include_router(health.router, prefix=API_PREFIX)
app.include_router(auth.router, prefix=API_PREFIX)
app.include_router(users.router, prefix=API_PREFIX)
app.include_router(nodes.router, prefix=API_PREFIX)
app.include_router(jobs.router, prefix=API_PREFIX)
app.include_router(config.router, prefix=API_PREFIX)
