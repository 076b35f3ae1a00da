import traceback
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from scanner.app.admission import AdmissionDecider, Reaper
from scanner.app.api.scan import router as scan_router
from scanner.app.core.config import Settings, settings as default_settings
from scanner.app.core.http_client import init_http_client
from scanner.app.core.logging import get_log_context, get_logger, setup_logging
from scanner.app.exceptions import AdmissionDeniedError, ScannerException
from scanner.app.middleware.request_id import RequestIdMiddleware, get_request_id
from scanner.app.middleware.request_size import RequestSizeLimitMiddleware
from scanner.app.providers.gemini import GeminiProvider
from scanner.app.providers.ocr_space import OCRSpaceProvider
from scanner.app.services.product_analyzer import ProductAnalyzer


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use instead of the environment-loaded ones

    Returns:
        Configured FastAPI application instance
    """
    settings = settings or default_settings

    setup_logging()
    logger = get_logger(__name__)

    # Admission state lives as long as the app; nothing outside it holds a reference
    decider = AdmissionDecider(settings.admission_config())
    reaper = Reaper(
        decider.window_counter,
        decider.cooldown_gate,
        interval=settings.admission_sweep_interval_seconds,
        clock=decider.clock,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan context manager.

        Opens the shared HTTP connection pool used by the vendor clients and
        runs the admission reaper for as long as the app is up.
        """
        async with init_http_client() as http_client:
            app.state.product_analyzer = ProductAnalyzer(
                ocr=OCRSpaceProvider(
                    base_url=settings.ocr_base_url,
                    api_key=settings.ocr_api_key,
                    language=settings.ocr_language,
                    http_client=http_client,
                    timeout=settings.ocr_timeout,
                ),
                gemini=GeminiProvider(
                    base_url=settings.gemini_base_url,
                    api_key=settings.gemini_api_key,
                    model=settings.gemini_model,
                    http_client=http_client,
                    timeout=settings.gemini_timeout,
                ),
                jpy_to_idr_rate=settings.jpy_to_idr_rate,
            )
            await reaper.start()

            logger.info(
                "Application startup complete",
                extra={
                    "admission": {
                        "max_requests": decider.config.max_requests,
                        "window_seconds": decider.config.window_seconds,
                        "block_seconds": decider.config.block_seconds,
                        "cooldown_seconds": decider.config.cooldown_seconds,
                        "allow_list_size": len(decider.config.allow_list),
                    },
                    "debug_mode": settings.debug,
                },
            )
            try:
                yield
            finally:
                await reaper.stop()

        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Halal Scanner",
        description="Japanese product label OCR and halal analysis with per-client admission control",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.admission = decider
    app.state.reaper = reaper
    app.state.settings = settings

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "Retry-After",
        ],
        max_age=600,
    )
    app.add_middleware(RequestSizeLimitMiddleware, max_body_size=settings.max_body_size_bytes)
    app.add_middleware(RequestIdMiddleware)

    app.include_router(scan_router)

    @app.get("/test")
    async def service_status() -> dict[str, Any]:
        """Report whether the service is up and its vendor keys are configured."""
        return {
            "message": "Server is running",
            "environment": {
                "gemini_api": "Configured" if settings.gemini_api_key else "Not configured",
                "ocr_api": "Configured" if settings.ocr_api_key else "Not configured",
            },
        }

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Liveness check with admission store sizes."""
        return {
            "status": "ok",
            "components": {
                "admission": {
                    "status": "ok",
                    "tracked_clients": len(decider.window_counter),
                    "cooling_down": len(decider.cooldown_gate),
                    "reaper_running": reaper.running,
                },
            },
        }

    @app.exception_handler(AdmissionDeniedError)
    async def admission_denied_handler(request: Request, exc: AdmissionDeniedError) -> JSONResponse:
        """Handle AdmissionDeniedError and return HTTP 403/429 response."""
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response(),
            headers=exc.headers(),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Render malformed request bodies in the service's error shape."""
        logger.info(
            f"Rejected malformed request: {len(exc.errors())} validation error(s)",
            extra=get_log_context(request_id=get_request_id(request), path=request.url.path),
        )
        return JSONResponse(
            status_code=422,
            content={
                "success": False,
                "error": "Invalid request body",
                "error_code": "invalid_request",
            },
        )

    @app.exception_handler(ScannerException)
    async def scanner_error_handler(request: Request, exc: ScannerException) -> JSONResponse:
        """Handle scan failures (bad image, upstream errors)."""
        logger.warning(
            f"Scan failed: {exc.message}",
            extra=get_log_context(
                request_id=get_request_id(request),
                error_code=exc.error_code,
                status_code=exc.status_code,
            ),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response(),
            headers=exc.headers(),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        Never returns a traceback to the client; the full details are logged
        server-side. Debug mode returns the exception message.
        """
        request_id = get_request_id(request)

        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
                "traceback": traceback.format_exc(),
            },
        )

        content = {
            "success": False,
            "error": str(exc) if settings.debug else "Internal server error",
            "error_code": "internal_error",
            "request_id": request_id,
        }
        return JSONResponse(status_code=500, content=content)

    return app


# Create the application instance
app = create_app()
