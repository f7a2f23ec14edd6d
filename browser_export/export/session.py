"""Isolated browsing session used by one export.

``ExportSession`` wraps one Playwright ``BrowserContext`` and its single
``Page``. It exposes only the operations the export pipeline needs and
translates Playwright failures into the export error taxonomy, so that the rest
of the pipeline never inspects engine error messages.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from playwright.async_api import (
    BrowserContext,
    Error as PlaywrightError,
    Page,
    TimeoutError as PlaywrightTimeoutError,
)

from ..models.export import Dimensions
from .errors import (
    BrowserExportError,
    EngineError,
    EngineTimeoutError,
    TransientContextError,
)

T = TypeVar("T")

logger = logging.getLogger(__name__)

# Messages Chromium reports while a page has no usable execution context yet,
# typically during a navigation or right after a reload.
TRANSIENT_CONTEXT_MESSAGES = (
    "Execution context was destroyed",
    "Cannot find context with specified id",
    "Execution context is not available",
)

# Playwright treats a timeout of 0 as "no timeout".
MIN_ENGINE_TIMEOUT_MS = 1.0


def translate_engine_error(error: BaseException, operation: str) -> BrowserExportError:
    """Map an engine exception onto the export error taxonomy."""
    if isinstance(error, BrowserExportError):
        return error

    message = str(error)
    if isinstance(error, PlaywrightTimeoutError):
        return EngineTimeoutError(message, operation=operation)
    if any(marker in message for marker in TRANSIENT_CONTEXT_MESSAGES):
        return TransientContextError(message, operation=operation)
    return EngineError(message, operation=operation)


def engine_timeout(timeout_ms: Optional[float]) -> Optional[float]:
    """Clamp a remaining budget to a value Playwright interprets as bounded."""
    if timeout_ms is None:
        return None
    return max(MIN_ENGINE_TIMEOUT_MS, timeout_ms)


class ExportSession:
    """One isolated browser context and page, closed exactly once."""

    def __init__(self, context: BrowserContext, page: Page):
        """Initialize session.

        Args:
            context: Fresh browser context owned by this session
            page: The context's page
        """
        self.context = context
        self.page = page
        self._closed = False

    @property
    def url(self) -> str:
        return self.page.url

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def _call(self, operation: str, action: Callable[[], Awaitable[T]]) -> T:
        if self._closed:
            raise EngineError(f"Session already closed, cannot {operation}", operation=operation)
        try:
            return await action()
        except PlaywrightError as e:
            raise translate_engine_error(e, operation) from e

    async def goto(self, url: str, timeout_ms: Optional[float] = None, wait_until: str = "load") -> None:
        """Navigate to URL.

        With ``wait_until="commit"`` this returns as soon as the new document
        replaced the previous one, before it finished loading.
        """
        await self._call(
            "navigate",
            lambda: self.page.goto(url, timeout=engine_timeout(timeout_ms), wait_until=wait_until),
        )

    async def wait_for_load(self, timeout_ms: Optional[float] = None) -> None:
        """Wait for the load event of the current document."""
        await self._call(
            "wait for load",
            lambda: self.page.wait_for_load_state("load", timeout=engine_timeout(timeout_ms)),
        )

    async def reload(self, timeout_ms: Optional[float] = None) -> None:
        """Force a full page reload."""
        await self._call(
            "reload",
            lambda: self.page.reload(timeout=engine_timeout(timeout_ms), wait_until="load"),
        )

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Evaluate a JavaScript expression or function in the page."""
        return await self._call("evaluate", lambda: self.page.evaluate(expression, arg))

    async def wait_for_function(self, expression: str, timeout_ms: Optional[float] = None) -> None:
        """Poll a JavaScript expression until it returns a truthy value."""
        await self._call(
            "wait for function",
            lambda: self.page.wait_for_function(expression, timeout=engine_timeout(timeout_ms)),
        )

    async def wait_for_network_idle(self, timeout_ms: Optional[float] = None) -> None:
        """Wait until the engine reports no in-flight network activity."""
        await self._call(
            "wait for network idle",
            lambda: self.page.wait_for_load_state("networkidle", timeout=engine_timeout(timeout_ms)),
        )

    async def set_viewport(self, dimensions: Dimensions) -> None:
        await self._call(
            "set viewport",
            lambda: self.page.set_viewport_size(dimensions.to_viewport()),
        )

    async def clear_cookies(self) -> None:
        await self._call("clear cookies", lambda: self.context.clear_cookies())

    async def add_cookies(self, cookies: List[Dict[str, Any]]) -> None:
        await self._call("add cookies", lambda: self.context.add_cookies(cookies))

    async def pdf(self, dimensions: Dimensions) -> bytes:
        """Print the first page to PDF with the given paper dimensions."""
        options = dimensions.to_pdf_options()
        return await self._call(
            "generate PDF",
            lambda: self.page.pdf(
                page_ranges="1",
                print_background=True,
                **options,
            ),
        )

    async def close(self) -> None:
        """Close the browser context; later calls are no-ops."""
        if self._closed:
            return
        self._closed = True
        try:
            await self.context.close()
        except PlaywrightError as e:
            raise translate_engine_error(e, "close context") from e

    def __repr__(self) -> str:
        return f"ExportSession(closed={self._closed})"
