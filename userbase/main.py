"""
Main Application - FastAPI application setup.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest

from userbase.api.identity_routes import router as identity_router
from userbase.api.key_routes import router as key_router
from userbase.api.sponsorship_routes import router as sponsorship_router
from userbase.api.status_routes import router as status_router
from userbase.config import settings
from userbase.db.migration_runner import run_migrations
from userbase.db.session import close_engines
from userbase.exceptions import CryptoError, UpstreamServiceError, UserbaseError
from userbase.models.api import ErrorResponse
from userbase.observability import get_logger, metrics, setup_logging, setup_tracing
from userbase.observability.tracing import instrument_fastapi

# Setup logging before anything else
setup_logging()
logger = get_logger(__name__)

GENERIC_ERROR_MESSAGES = {
    UpstreamServiceError: "An upstream service failed; please try again later",
    CryptoError: "A cryptographic operation failed",
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    logger.info(
        "application_starting",
        service=settings.api_title,
        version=settings.api_version,
        environment=settings.environment,
        tracing_enabled=settings.tracing_enabled,
        metrics_enabled=settings.metrics_enabled,
    )

    if settings.run_migrations_on_startup:
        await asyncio.to_thread(run_migrations)

    yield

    logger.info("application_shutting_down")
    await close_engines()
    logger.info("database_engines_closed")


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=settings.api_description,
    lifespan=lifespan,
)


def render_error(exc: UserbaseError, production: bool) -> ErrorResponse:
    """
    Error body for a domain exception.

    In production, upstream and crypto failures carry a generic message and
    no details.
    """
    if production:
        for error_class, generic in GENERIC_ERROR_MESSAGES.items():
            if isinstance(exc, error_class):
                return ErrorResponse(error=exc.reason, message=generic)
    return ErrorResponse(error=exc.reason, message=exc.message, details=exc.details)


@app.exception_handler(UserbaseError)
async def userbase_exception_handler(request: Request, exc: UserbaseError) -> JSONResponse:
    metrics.record_error(exc.reason, request.url.path)
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request_error",
        path=request.url.path,
        method=request.method,
        status_code=exc.status_code,
        reason=exc.reason,
        error=exc.message,
    )
    body = render_error(exc, settings.is_production)
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(mode="json", exclude_none=True),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log detailed validation errors and answer 400 in the common error shape."""
    sanitized_errors = []
    for error in exc.errors():
        sanitized = {
            "type": error.get("type"),
            "loc": list(error.get("loc", ())),
            "msg": error.get("msg"),
        }
        if "ctx" in error:
            sanitized["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        sanitized_errors.append(sanitized)

    # request bodies can carry private keys, so only field locations are logged
    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        fields=[".".join(str(part) for part in e["loc"]) for e in sanitized_errors],
    )
    body = ErrorResponse(
        error="validation_error",
        message="Invalid request",
        details={"errors": sanitized_errors},
    )
    return JSONResponse(status_code=400, content=body.model_dump(mode="json"))


# Setup tracing
setup_tracing()
instrument_fastapi(app)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request logging middleware
@app.middleware("http")
async def logging_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Log all HTTP requests with timing."""
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")

    logger.info(
        "request_started",
        method=request.method,
        path=request.url.path,
        request_id=request_id,
    )

    endpoint = request.url.path
    method = request.method
    metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).inc()

    try:
        response = await call_next(request)
        duration = time.time() - start_time
        metrics.record_http_request(endpoint, method, response.status_code, duration)

        logger.info(
            "request_completed",
            method=method,
            path=endpoint,
            status_code=response.status_code,
            duration_seconds=duration,
            request_id=request_id,
        )
        return response
    except Exception as e:
        duration = time.time() - start_time
        metrics.record_http_request(endpoint, method, 500, duration)
        metrics.record_error(type(e).__name__, "http_request")

        logger.error(
            "request_failed",
            method=method,
            path=endpoint,
            error=str(e),
            duration_seconds=duration,
            request_id=request_id,
            exc_info=True,
        )
        raise
    finally:
        metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).dec()


# Register routes
app.include_router(identity_router)
app.include_router(sponsorship_router)
app.include_router(key_router)
app.include_router(status_router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "status": "running",
    }


@app.get("/metrics")
async def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    return PlainTextResponse(generate_latest())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "userbase.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
