"""Export engine orchestrating the whole PDF export pipeline.

This module provides the ExportEngine class that validates payloads, resolves
paper dimensions and drives one isolated browser session per export through
authentication, navigation, readiness detection and PDF generation, all
bounded by a single deadline.

Two deployment modes are supported:

* per-process: ``ExportEngine.start()`` launches Chromium once and every
  export opens its own session on it,
* per-export: ``export_document()`` launches and stops Chromium for one call.
"""

import asyncio
import logging
import math
import time
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

from ..models.export import Dimensions, ExportPayload
from .authentication import authenticate
from .browser_factory import BrowserConfig, BrowserFactory, engine_scope, run_in_session
from .deadline import Deadline
from .errors import (
    EngineError,
    EngineTimeoutError,
    ExportTimeoutError,
    PayloadValidationError,
)
from .paper import resolve_dimensions
from .readiness import await_ready, wait_for_idle_browser
from .schema import validate_payload
from .session import ExportSession
from .tracing import ExportTracer

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_IN_SECONDS = 30


class ExportState(str, Enum):
    """States of one export."""
    VALIDATING = "validating"
    DIMENSIONS_RESOLVED = "dimensions_resolved"
    ENGINE_LAUNCHING = "engine_launching"
    SESSION_OPEN = "session_open"
    AUTHENTICATING = "authenticating"
    NAVIGATING = "navigating"
    IDLE_BROWSER_WAIT = "idle_browser_wait"
    SNAPSHOTTING = "snapshotting"
    DONE = "done"
    TIMED_OUT = "timed_out"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ExportState.DONE, ExportState.TIMED_OUT, ExportState.FAILED)


class ExportRun:
    """State of one export invocation."""

    def __init__(self, tracer: Optional[ExportTracer] = None):
        self.tracer = tracer or ExportTracer()
        self.state = ExportState.VALIDATING
        self.history: List[ExportState] = [ExportState.VALIDATING]
        self.started_at = time.monotonic()
        self.error: Optional[str] = None

    @property
    def export_id(self) -> str:
        return self.tracer.export_id

    @property
    def duration_ms(self) -> float:
        return (time.monotonic() - self.started_at) * 1000

    def transition(self, state: ExportState) -> None:
        # Terminal states are final; a discarded workflow may still report progress.
        if self.state.is_terminal:
            return
        self.state = state
        self.history.append(state)
        self.tracer.log.debug(f"export: state -> {state.value}")

    def fail(self, error: BaseException) -> None:
        self.error = str(error) or type(error).__name__
        if isinstance(error, ExportTimeoutError):
            self.transition(ExportState.TIMED_OUT)
        else:
            self.transition(ExportState.FAILED)

    def __repr__(self) -> str:
        return f"ExportRun(export_id={self.export_id}, state={self.state.value})"


def validate_timeout(timeout_in_seconds: Any) -> float:
    """Check that the timeout is a strictly positive, finite amount of seconds.

    Raises:
        PayloadValidationError: Otherwise
    """
    valid = (
        isinstance(timeout_in_seconds, (int, float))
        and not isinstance(timeout_in_seconds, bool)
        and math.isfinite(timeout_in_seconds)
        and timeout_in_seconds > 0
    )
    if not valid:
        raise PayloadValidationError(
            f"The timeout should be a strictly positive amount of seconds but {timeout_in_seconds} was given."
        )
    return float(timeout_in_seconds)


def prepare_export(payload: Any, timeout_in_seconds: Any, run: ExportRun) -> Tuple[ExportPayload, Dimensions, float]:
    """Validate inputs and resolve dimensions without touching the engine."""
    validated = validate_payload(payload)
    timeout = validate_timeout(timeout_in_seconds)
    dimensions = resolve_dimensions(validated.paper)
    run.transition(ExportState.DIMENSIONS_RESOLVED)
    run.tracer.debug(f"dimensions resolved to {dimensions.width}x{dimensions.height}px")
    return validated, dimensions, timeout


async def export_in_session(
    session: ExportSession,
    payload: ExportPayload,
    dimensions: Dimensions,
    deadline: Deadline,
    run: ExportRun,
) -> bytes:
    """Run the export steps against an open session and return the PDF bytes."""
    tracer = run.tracer
    run.transition(ExportState.SESSION_OPEN)

    if not payload.auth.is_empty:
        run.transition(ExportState.AUTHENTICATING)
    await authenticate(session, payload.authentication, payload.url, deadline, tracer)

    run.transition(ExportState.NAVIGATING)
    goto_tracer = tracer.child("gotoPage")
    # Readiness gates evaluate in the current document, so the new one has to
    # replace the previous page before any of them starts.
    await goto_tracer.step(
        "navigation",
        lambda: session.goto(payload.url, deadline.remaining_ms(), wait_until="commit"),
    )
    await asyncio.gather(
        goto_tracer.step("page load", lambda: session.wait_for_load(deadline.remaining_ms())),
        await_ready(session, dimensions, payload.waits, deadline, tracer),
    )

    run.transition(ExportState.IDLE_BROWSER_WAIT)
    await wait_for_idle_browser(session, deadline, tracer)

    run.transition(ExportState.SNAPSHOTTING)
    return await tracer.child("generatePdf").step("PDF generation", lambda: session.pdf(dimensions))


async def run_export(
    factory: BrowserFactory,
    payload: ExportPayload,
    dimensions: Dimensions,
    deadline: Deadline,
    run: ExportRun,
) -> bytes:
    """Open a session on the factory and export under the deadline.

    Raises:
        ExportTimeoutError: If the deadline is exceeded, including when an
            engine wait bounded by the remaining budget times out
    """
    async def workflow(session: ExportSession) -> bytes:
        return await export_in_session(session, payload, dimensions, deadline, run)

    try:
        return await deadline.guard(run_in_session(factory, workflow, run.tracer))
    except EngineTimeoutError as e:
        raise deadline.timeout_error() from e


async def export_document(
    payload: Any,
    timeout_in_seconds: Any,
    browser_config: Optional[BrowserConfig] = None,
    tracer: Optional[ExportTracer] = None,
) -> bytes:
    """Export a page to PDF with a browser launched for this call only.

    Args:
        payload: Export payload (decoded JSON or ExportPayload)
        timeout_in_seconds: Budget for the whole export, engine launch included
        browser_config: Browser launch configuration
        tracer: Tracer of the invocation (created if None)

    Returns:
        PDF bytes

    Raises:
        PayloadValidationError: If the payload or the timeout is invalid
        InvalidDimensionError: If a paper dimension is malformed
        ExportTimeoutError: If the export takes longer than the timeout
        EngineError: If the browser fails
    """
    run = ExportRun(tracer)
    tracer = run.tracer

    async def export() -> bytes:
        validated, dimensions, timeout = prepare_export(payload, timeout_in_seconds, run)
        deadline = Deadline(timeout)
        run.transition(ExportState.ENGINE_LAUNCHING)
        async with engine_scope(browser_config, tracer=tracer, timeout_ms=deadline.remaining_ms()) as factory:
            return await run_export(factory, validated, dimensions, deadline, run)

    try:
        pdf = await tracer.child("exportPdf").step("PDF export", export)
    except BaseException as e:
        run.fail(e)
        raise

    run.transition(ExportState.DONE)
    return pdf


class ExportEngineConfig:
    """Configuration for the export engine."""

    def __init__(
        self,
        browser_config: Optional[BrowserConfig] = None,
        timeout_in_seconds: float = DEFAULT_TIMEOUT_IN_SECONDS,
        max_error_history: int = 100,
    ):
        """Initialize export engine configuration.

        Args:
            browser_config: Browser launch configuration
            timeout_in_seconds: Budget used when an export does not give its own
            max_error_history: Number of failed exports kept in the statistics
        """
        self.browser_config = browser_config or BrowserConfig()
        self.timeout_in_seconds = timeout_in_seconds
        self.max_error_history = max_error_history


class ExportEngine:
    """Long-lived export engine sharing one browser between exports."""

    def __init__(self, config: Optional[ExportEngineConfig] = None):
        """Initialize export engine.

        Args:
            config: Engine configuration (uses defaults if None)
        """
        self.config = config or ExportEngineConfig()
        self.browser_factory: Optional[BrowserFactory] = None
        self._is_running = False

        self.stats: Dict[str, Any] = {
            'exports_attempted': 0,
            'exports_successful': 0,
            'exports_failed': 0,
            'exports_timeout': 0,
            'total_duration_ms': 0,
            'start_time': None,
            'errors': [],
        }

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def start(self) -> None:
        """Start the export engine and launch the browser."""
        if self._is_running:
            logger.warning("Export engine already running")
            return

        logger.info("Starting export engine")

        try:
            self.browser_factory = BrowserFactory(self.config.browser_config)
            await self.browser_factory.start()

            self.stats['start_time'] = datetime.utcnow()
            self._is_running = True

            logger.info("Export engine started successfully")

        except Exception as e:
            logger.error(f"Failed to start export engine: {e}")
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the export engine and close the browser."""
        if self.browser_factory is None and not self._is_running:
            return

        logger.info("Stopping export engine")

        if self.browser_factory:
            factory, self.browser_factory = self.browser_factory, None
            await factory.stop()

        self._is_running = False
        logger.info("Export engine stopped successfully")

    @asynccontextmanager
    async def running(self) -> AsyncGenerator['ExportEngine', None]:
        """Context manager for engine lifecycle.

        Yields:
            Started export engine that will be automatically stopped
        """
        await self.start()
        try:
            yield self
        finally:
            await self.stop()

    async def export_pdf(
        self,
        payload: Any,
        timeout_in_seconds: Optional[float] = None,
        tracer: Optional[ExportTracer] = None,
    ) -> bytes:
        """Export a page to PDF in a fresh session of the running browser.

        Args:
            payload: Export payload (decoded JSON or ExportPayload)
            timeout_in_seconds: Budget for the export (engine default if None)
            tracer: Tracer of the invocation (created if None)

        Returns:
            PDF bytes

        Raises:
            PayloadValidationError: If the payload or the timeout is invalid
            InvalidDimensionError: If a paper dimension is malformed
            ExportTimeoutError: If the export takes longer than the timeout
            EngineError: If the engine is not running or the browser fails
        """
        if timeout_in_seconds is None:
            timeout_in_seconds = self.config.timeout_in_seconds

        run = ExportRun(tracer)
        self.stats['exports_attempted'] += 1

        async def export() -> bytes:
            validated, dimensions, timeout = prepare_export(payload, timeout_in_seconds, run)
            if not self._is_running or self.browser_factory is None:
                raise EngineError("Export engine not started. Call start() first.", operation="export")
            deadline = Deadline(timeout)
            run.transition(ExportState.ENGINE_LAUNCHING)
            return await run_export(self.browser_factory, validated, dimensions, deadline, run)

        try:
            pdf = await run.tracer.child("exportPdf").step("PDF export", export)
        except Exception as e:
            run.fail(e)
            self._record_failure(run)
            raise

        run.transition(ExportState.DONE)
        self.stats['exports_successful'] += 1
        self.stats['total_duration_ms'] += run.duration_ms
        return pdf

    def _record_failure(self, run: ExportRun) -> None:
        if run.state == ExportState.TIMED_OUT:
            self.stats['exports_timeout'] += 1
        else:
            self.stats['exports_failed'] += 1
        self.stats['total_duration_ms'] += run.duration_ms

        self.stats['errors'].append({
            'export_id': run.export_id,
            'error': run.error,
            'state': run.state.value,
            'timestamp': datetime.utcnow().isoformat(),
        })
        if len(self.stats['errors']) > self.config.max_error_history:
            self.stats['errors'] = self.stats['errors'][-self.config.max_error_history:]

    def get_stats(self) -> Dict[str, Any]:
        """Get engine statistics.

        Returns:
            Dictionary with counters and derived metrics
        """
        stats = self.stats.copy()

        if stats['exports_attempted'] > 0:
            stats['success_rate'] = (stats['exports_successful'] / stats['exports_attempted']) * 100
            stats['average_duration_ms'] = stats['total_duration_ms'] / stats['exports_attempted']
        else:
            stats['success_rate'] = 0
            stats['average_duration_ms'] = 0

        if stats['start_time']:
            stats['runtime_seconds'] = (datetime.utcnow() - stats['start_time']).total_seconds()

        if self.browser_factory:
            stats['browser_running'] = self.browser_factory.is_running
            stats['browser_contexts'] = self.browser_factory.context_count
            stats['browser_version'] = self.browser_factory.get_browser_version()

        stats['is_running'] = self._is_running
        return stats

    def __repr__(self) -> str:
        return f"ExportEngine(running={self._is_running}, exports={self.stats['exports_attempted']})"
