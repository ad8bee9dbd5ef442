"""FastAPI application initialization."""

import asyncio
from contextlib import asynccontextmanager
from uuid import uuid4

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from familyhub import database, errors
from familyhub.api.auth import router as auth_router
from familyhub.api.health import router as health_router
from familyhub.api.middleware import CorrelationIdMiddleware
from familyhub.config import get_settings
from familyhub.errors import AuthError
from familyhub.services.auth_service import AuthService
from familyhub.services.logging_service import configure_logging, get_logger
from familyhub.services.session_store import PostgresSessionStore


async def _purge_expired_sessions_loop(interval_seconds: int) -> None:
    """Periodically delete expired sessions."""
    logger = get_logger("session_cleanup")
    auth_service = AuthService(PostgresSessionStore())

    while True:
        try:
            await asyncio.sleep(interval_seconds)
            await auth_service.cleanup_expired_sessions()
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.warning("session_cleanup_failed", error=str(e))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    logger = get_logger("main")

    try:
        await database.init_database()
        await database.run_migrations()
        logger.info("database_initialized")
    except Exception as e:
        logger.warning(
            "database_initialization_failed",
            error=str(e),
            note="Continuing without database - auth endpoints will return 500",
        )

    cleanup_task = None
    if settings.session_cleanup_interval_seconds > 0:
        cleanup_task = asyncio.create_task(
            _purge_expired_sessions_loop(settings.session_cleanup_interval_seconds)
        )
        logger.info(
            "session_cleanup_started",
            interval_seconds=settings.session_cleanup_interval_seconds,
        )

    logger.info("application_started", log_level=settings.log_level)

    yield

    # Shutdown
    if cleanup_task is not None:
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass
        logger.info("session_cleanup_stopped")

    try:
        await database.close_database()
    except Exception as e:
        logger.warning("database_close_failed", error=str(e))

    logger.info("application_shutdown")


app = FastAPI(
    title="FamilyHub - Auth API",
    description="Authentication and session lifecycle for the FamilyHub app",
    version="0.3.0",
    lifespan=lifespan,
)


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or str(uuid4())


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render service errors as the JSON error envelope."""
    correlation_id = _correlation_id(request)
    structlog.get_logger().info(
        "auth_error",
        code=exc.code,
        status_code=exc.status_code,
        path=request.url.path,
    )

    headers = {"X-Correlation-Id": correlation_id}
    if exc.status_code == 401:
        headers["WWW-Authenticate"] = "Bearer"

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_envelope(),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle malformed request bodies with the standard error envelope."""
    correlation_id = _correlation_id(request)
    logger = structlog.get_logger()

    errors_list = exc.errors()
    if errors_list:
        first_error = errors_list[0]
        field = ".".join(str(loc) for loc in first_error.get("loc", ["unknown"]))
        message = first_error.get("msg", "Validation failed")
        detail = f"Field '{field}': {message}"
    else:
        detail = "Request validation failed"

    logger.warning(
        "validation_error",
        correlation_id=correlation_id,
        detail=detail,
    )

    return JSONResponse(
        status_code=400,
        content={"error": {"code": errors.VALIDATION_ERROR, "message": detail}},
        headers={"X-Correlation-Id": correlation_id},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected failures (e.g. store outages) and return a generic 500."""
    correlation_id = _correlation_id(request)
    structlog.get_logger().error(
        "unhandled_exception",
        correlation_id=correlation_id,
        path=request.url.path,
        error_type=type(exc).__name__,
        exc_info=exc,
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": errors.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again.",
            }
        },
        headers={"X-Correlation-Id": correlation_id},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Correlation ID middleware for request tracking and observability
app.add_middleware(CorrelationIdMiddleware)

app.include_router(auth_router)
app.include_router(health_router)
