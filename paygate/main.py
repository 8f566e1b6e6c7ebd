"""
Main Application - FastAPI application factory.

Run with:
    uvicorn --factory paygate.main:create_app
"""

import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest

from paygate.api.routes import router
from paygate.config import Settings, get_settings
from paygate.models.api import HealthResponse
from paygate.observability import get_logger, metrics, setup_logging, setup_tracing
from paygate.observability.tracing import instrument_fastapi
from paygate.services.square_provider import SquareProvider

logger = get_logger(__name__)


def create_app(settings: Settings | None = None, payment_gateway: Any | None = None) -> FastAPI:
    """
    Build the application.

    Settings are loaded and validated here, so a misconfigured deployment
    fails at startup instead of on the first payment.

    Args:
        settings: Pre-built settings (tests); read from the environment otherwise
        payment_gateway: Gateway to serve; a SquareProvider by default
    """
    settings = settings or get_settings()

    setup_logging(settings.log_level, settings.log_format)
    tracer_provider = setup_tracing(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "application_starting",
            service=settings.api_title,
            version=settings.api_version,
            square_environment=settings.square_environment,
            tracing_enabled=settings.tracing_enabled,
        )
        yield
        logger.info("application_shutting_down")
        if tracer_provider is not None:
            tracer_provider.shutdown()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description=settings.api_description,
        lifespan=lifespan,
    )
    app.state.settings = settings
    if payment_gateway is None:
        payment_gateway = SquareProvider.from_settings(settings)
    app.state.payment_gateway = payment_gateway

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Log validation errors and answer in the form's {success, error} shape."""
        sanitized_errors = [
            {"type": error.get("type"), "loc": error.get("loc"), "msg": error.get("msg")}
            for error in exc.errors()
        ]
        logger.warning(
            "validation_error",
            path=request.url.path,
            method=request.method,
            errors=sanitized_errors,
        )
        return JSONResponse(
            status_code=422,
            content={
                "success": False,
                "error": "Invalid payment request",
                "detail": sanitized_errors,
            },
        )

    instrument_fastapi(app, settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def logging_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Log all HTTP requests with timing."""
        start_time = time.time()
        request_id = request.headers.get("X-Request-ID", "unknown")
        endpoint = request.url.path
        method = request.method

        logger.info("request_started", method=method, path=endpoint, request_id=request_id)
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

    app.include_router(router)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(
            status="ok",
            version=settings.api_version,
            environment=settings.square_environment.lower(),
        )

    @app.get("/metrics")
    async def metrics_endpoint() -> Response:
        """Prometheus metrics in text format."""
        return PlainTextResponse(generate_latest())

    return app


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "paygate.main:create_app",
        factory=True,
        host=_settings.api_host,
        port=_settings.api_port,
        log_level=_settings.log_level.lower(),
    )
