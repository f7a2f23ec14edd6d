"""Browser factory for launching Chromium and opening isolated export sessions.

This module provides the BrowserFactory class that owns the Playwright driver
and the Chromium process (the engine), opens one isolated browser context per
export (the session), and guarantees that both are released exactly once on
every exit path.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, List, Optional, TypeVar

from playwright.async_api import (
    Browser,
    Error as PlaywrightError,
    Playwright,
    async_playwright,
)

from .errors import BrowserExportError, EngineError
from .session import ExportSession, engine_timeout, translate_engine_error
from .tracing import ExportTracer

T = TypeVar("T")

logger = logging.getLogger(__name__)


class BrowserConfig:
    """Configuration for browser launch and context setup."""

    def __init__(
        self,
        headless: bool = True,
        executable_path: Optional[Path] = None,
        args: Optional[List[str]] = None,
        ignore_https_errors: bool = False,
    ):
        """Initialize browser configuration.

        Args:
            headless: Run browser in headless mode (PDF generation requires it)
            executable_path: Chromium executable to use instead of Playwright's bundled one
            args: Extra command line arguments for Chromium
            ignore_https_errors: Ignore SSL/TLS certificate errors of exported pages
        """
        self.headless = headless
        self.executable_path = Path(executable_path) if executable_path else None
        self.args = args or []
        self.ignore_https_errors = ignore_https_errors

    def to_browser_options(self) -> Dict[str, Any]:
        """Convert to Playwright browser launch options."""
        options: Dict[str, Any] = {'headless': self.headless}

        if self.executable_path:
            options['executable_path'] = str(self.executable_path)

        if self.args:
            options['args'] = list(self.args)

        return options

    def to_context_options(self) -> Dict[str, Any]:
        """Convert to Playwright browser context options."""
        options = {}

        if self.ignore_https_errors:
            options['ignore_https_errors'] = True

        return options

    def __repr__(self) -> str:
        return f"BrowserConfig(headless={self.headless}, executable_path={self.executable_path})"


class BrowserFactory:
    """Owns one Chromium process and hands out isolated sessions."""

    def __init__(self, config: Optional[BrowserConfig] = None):
        """Initialize browser factory with configuration.

        Args:
            config: Browser configuration object
        """
        self.config = config or BrowserConfig()
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self._context_count = 0
        self._stopped = False

    async def start(self, timeout_ms: Optional[float] = None, tracer: Optional[ExportTracer] = None) -> None:
        """Start Playwright and launch Chromium.

        Args:
            timeout_ms: Maximum time to wait for the browser to launch
            tracer: Tracer of the invocation launching the engine

        Raises:
            EngineError: If the browser cannot be launched
        """
        if self._stopped:
            raise EngineError("Browser factory already stopped, create a new one", operation="launch")
        if self.playwright is not None:
            logger.warning("Browser factory already started")
            return

        tracer = (tracer or ExportTracer()).child("engine")
        logger.info(f"Starting browser factory (headless={self.config.headless})")

        async def launch() -> None:
            self.playwright = await async_playwright().start()
            browser_options = self.config.to_browser_options()
            if timeout_ms is not None:
                browser_options['timeout'] = engine_timeout(timeout_ms)
            self.browser = await self.playwright.chromium.launch(**browser_options)

        try:
            await tracer.step("launching browser", launch)
            logger.info("Browser launched successfully")

        except Exception as e:
            logger.error(f"Failed to start browser: {e}")
            await self.stop()
            if isinstance(e, BrowserExportError):
                raise
            raise EngineError(f"Failed to launch browser: {e}", operation="launch") from e

    async def stop(self, tracer: Optional[ExportTracer] = None) -> None:
        """Close browser and Playwright driver; later calls are no-ops."""
        if self._stopped:
            return
        self._stopped = True

        tracer = (tracer or ExportTracer()).child("engine")
        logger.info("Stopping browser factory")

        if self.browser:
            browser, self.browser = self.browser, None
            try:
                await tracer.step("closing browser", browser.close)
            except Exception as e:
                logger.error(f"Error closing browser: {e}")

        if self.playwright:
            playwright, self.playwright = self.playwright, None
            try:
                await playwright.stop()
            except Exception as e:
                logger.error(f"Error stopping Playwright: {e}")

        self._context_count = 0
        logger.info("Browser factory stopped")

    async def create_session(self, tracer: Optional[ExportTracer] = None) -> ExportSession:
        """Open a fresh isolated browser context with one page.

        Args:
            tracer: Tracer of the invocation opening the session

        Returns:
            New session; the caller owns it and must close it

        Raises:
            EngineError: If the factory is not running or the engine fails
        """
        if not self.browser:
            raise EngineError("Browser factory not started. Call start() first.", operation="open session")

        tracer = (tracer or ExportTracer()).child("session")
        context_options = self.config.to_context_options()

        try:
            context = await tracer.step(
                "creating isolated context",
                lambda: self.browser.new_context(**context_options),
            )
        except PlaywrightError as e:
            raise translate_engine_error(e, "open session") from e

        try:
            page = await tracer.step("creating new page", context.new_page)
        except PlaywrightError as e:
            await context.close()
            raise translate_engine_error(e, "open page") from e

        self._context_count += 1
        logger.debug(f"Created browser context #{self._context_count}")
        return ExportSession(context, page)

    @asynccontextmanager
    async def session(self, tracer: Optional[ExportTracer] = None) -> AsyncGenerator[ExportSession, None]:
        """Context manager for one export session.

        The session is closed on every exit path, and a failure while closing
        never replaces the outcome of the body.

        Yields:
            Isolated export session
        """
        tracer = tracer or ExportTracer()
        session = await self.create_session(tracer=tracer)
        try:
            yield session
        finally:
            try:
                await tracer.child("session").step("closing context", session.close)
            except Exception as e:
                logger.warning(f"Error closing browser context: {e}")
            self._context_count -= 1

    def get_browser_version(self) -> Optional[str]:
        """Get browser version information."""
        if not self.browser:
            return None

        try:
            return self.browser.version
        except Exception as e:
            logger.error(f"Failed to get browser version: {e}")
            return None

    @property
    def is_running(self) -> bool:
        """Check if browser factory is running."""
        if self.browser is None:
            return False
        try:
            return self.browser.is_connected()
        except Exception:
            return False

    @property
    def context_count(self) -> int:
        """Get current number of open contexts."""
        return self._context_count

    def __repr__(self) -> str:
        return (
            f"BrowserFactory(headless={self.config.headless}, "
            f"running={self.is_running}, "
            f"contexts={self.context_count})"
        )


@asynccontextmanager
async def engine_scope(
    config: Optional[BrowserConfig] = None,
    tracer: Optional[ExportTracer] = None,
    timeout_ms: Optional[float] = None,
) -> AsyncGenerator[BrowserFactory, None]:
    """Context manager for the engine lifecycle.

    Yields:
        Started browser factory that is stopped exactly once on exit
    """
    factory = BrowserFactory(config)
    await factory.start(timeout_ms=timeout_ms, tracer=tracer)
    try:
        yield factory
    finally:
        await factory.stop(tracer=tracer)


async def run_in_session(
    factory: BrowserFactory,
    workflow: Callable[[ExportSession], Awaitable[T]],
    tracer: Optional[ExportTracer] = None,
) -> T:
    """Run a workflow in a fresh session and release it afterwards."""
    async with factory.session(tracer=tracer) as session:
        return await workflow(session)


async def run_in_engine(
    workflow: Callable[[BrowserFactory], Awaitable[T]],
    config: Optional[BrowserConfig] = None,
    tracer: Optional[ExportTracer] = None,
    timeout_ms: Optional[float] = None,
) -> T:
    """Run a workflow against a freshly launched engine and stop it afterwards."""
    async with engine_scope(config, tracer=tracer, timeout_ms=timeout_ms) as factory:
        return await workflow(factory)
