"""FastAPI application for the Browser Export HTTP server.

This module configures the FastAPI application with its lifespan (one shared
Chromium for the whole server), request tracking middleware and error
handling.
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from ..config import ExportConfig, load_config
from ..export.engine import ExportEngine, ExportEngineConfig
from .routes import ROUTE_DOCS, pdf_router, system_router
from .schemas import ErrorResponse

logger = logging.getLogger(__name__)

APP_TITLE = "Browser Export"
APP_DESCRIPTION = """
Export web pages to PDF with Headless Chromium.

`POST /v1/pdf` opens the given URL, optionally injects cookies and Web Storage
items, waits for the page to be rendered and downloads it as a PDF.
"""


def create_engine(config: ExportConfig) -> ExportEngine:
    return ExportEngine(ExportEngineConfig(
        browser_config=config.browser.to_browser_config(),
        timeout_in_seconds=config.server.timeout_in_seconds,
    ))


def create_app(config: Optional[ExportConfig] = None, engine: Optional[ExportEngine] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Server configuration (loaded from the environment if None)
        engine: Export engine to use; when given, the caller owns its lifecycle

    Returns:
        Configured FastAPI application instance
    """
    config = config or load_config()
    owns_engine = engine is None
    engine = engine or create_engine(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        if owns_engine:
            await engine.start()
        logger.info(f"Browser Export server ready (environment={config.environment})")
        try:
            yield
        finally:
            if owns_engine:
                await engine.stop()

    app = FastAPI(
        title=APP_TITLE,
        description=APP_DESCRIPTION,
        version=__version__,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.engine = engine
    app.state.route_docs = ROUTE_DOCS
    app.state.started_at = datetime.utcnow()

    @app.middleware("http")
    async def add_request_id_and_logging(request: Request, call_next):
        """Add request ID and logging middleware."""
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()
        logger.info(
            f"Request started: {request.method} {request.url.path}",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "client_host": request.client.host if request.client else None,
            }
        )

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id

            duration = time.time() - start_time
            logger.info(
                f"Request completed: {request.method} {request.url.path} - {response.status_code}",
                extra={
                    "request_id": request_id,
                    "status_code": response.status_code,
                    "duration_ms": round(duration * 1000, 2),
                }
            )

            return response

        except Exception as e:
            duration = time.time() - start_time
            logger.error(
                f"Request failed: {request.method} {request.url.path} - {str(e)}",
                extra={
                    "request_id": request_id,
                    "error": str(e),
                    "duration_ms": round(duration * 1000, 2),
                },
                exc_info=True
            )
            raise

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions with consistent error format."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=f"http_{exc.status_code}",
                message=str(exc.detail),
                request_id=getattr(request.state, "request_id", None),
                timestamp=datetime.utcnow()
            ).model_dump(mode='json')
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        request_id = getattr(request.state, "request_id", None)

        logger.error(
            f"Unhandled exception in request {request_id}: {str(exc)}",
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content={"message": str(exc)},
        )

    app.include_router(system_router)
    app.include_router(pdf_router)

    return app
