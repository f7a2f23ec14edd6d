"""PDF export engine for Browser Export.

This module drives Playwright's Chromium to print a rendered web page to PDF.

Main Components:
- Tracing: per-export step tracing (tracing.py)
- Paper: paper dimension resolution (paper.py)
- Deadline: one time budget shared by every step of an export (deadline.py)
- Browser Factory: engine lifecycle and isolated sessions
- Authentication: cookies and Web Storage injection
- Readiness: render readiness gates
- Export Engine: pipeline orchestration

Usage:
    from browser_export.export import ExportEngine

    async with ExportEngine().running() as engine:
        pdf = await engine.export_pdf({"url": "https://example.com"}, timeout_in_seconds=30)
"""

__all__ = [
    # Main components
    "ExportEngine",
    "ExportEngineConfig",
    "ExportRun",
    "ExportState",
    "export_document",
    "validate_timeout",
    "BrowserFactory",
    "BrowserConfig",
    "ExportSession",
    "ExportTracer",
    "Deadline",

    # Building blocks
    "authenticate",
    "await_ready",
    "wait_for_evaluation_context",
    "wait_for_idle_browser",
    "resolve_dimensions",
    "validate_payload",
    "check_authorized_url",
    "engine_scope",
    "run_in_session",
    "run_in_engine",
    "guard",

    # Errors
    "BrowserExportError",
    "PayloadValidationError",
    "AuthorizationError",
    "InvalidDimensionError",
    "EngineError",
    "EngineTimeoutError",
    "TransientContextError",
    "ExportTimeoutError",
]

from .errors import (
    BrowserExportError,
    PayloadValidationError,
    AuthorizationError,
    InvalidDimensionError,
    EngineError,
    EngineTimeoutError,
    TransientContextError,
    ExportTimeoutError,
)

from .engine import (
    ExportEngine,
    ExportEngineConfig,
    ExportRun,
    ExportState,
    export_document,
    validate_timeout,
)

from .browser_factory import (
    BrowserFactory,
    BrowserConfig,
    engine_scope,
    run_in_session,
    run_in_engine,
)

from .authentication import authenticate
from .authorization import check_authorized_url
from .deadline import Deadline, guard
from .paper import resolve_dimensions
from .readiness import await_ready, wait_for_evaluation_context, wait_for_idle_browser
from .schema import validate_payload
from .session import ExportSession
from .tracing import ExportTracer
