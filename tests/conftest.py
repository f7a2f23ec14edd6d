"""Shared test fixtures and configuration for Browser Export tests."""

import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock, patch

import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

from browser_export.config import load_config
from browser_export.export.authentication import SET_WEB_STORAGE_ITEM
from browser_export.export.browser_factory import BrowserFactory
from browser_export.export.errors import EngineError, EngineTimeoutError, TransientContextError
from browser_export.export.readiness import RENDER_COMPLETE, SET_BODY_SIZE
from browser_export.models.export import Dimensions

FAKE_PDF = b"%PDF-1.4\n% fake export\n%%EOF"


class FakeSession:
    """In-memory stand-in for ExportSession.

    Simulates the page state the export pipeline touches: URL, cookies, Web
    Storage, viewport and body size, plus the failures the engine can report.

    Like a real page, scripts run in whatever document is current: until a
    navigation commits that is ``about:blank``, which is complete at once and
    never holds back its render flag.
    """

    def __init__(
        self,
        url: str = "about:blank",
        transient_failures: int = 0,
        load_delay: float = 0.0,
        render_delay: float = 0.0,
        failures: Optional[Dict[str, Exception]] = None,
        close_error: Optional[Exception] = None,
    ):
        self.transient_failures = transient_failures
        self.load_delay = load_delay
        self.render_delay = render_delay
        self.failures = failures or {}
        self.close_error = close_error

        self.calls: List[tuple] = []
        self.current_url = url
        self.gate_urls: List[tuple] = []
        self.cookies: List[Dict[str, Any]] = []
        self.local_storage: Dict[str, str] = {}
        self.session_storage: Dict[str, str] = {}
        self.viewport: Optional[Dict[str, int]] = None
        self.body_size: Optional[tuple] = None
        self.body_size_url: Optional[str] = None
        self.close_count = 0

    @property
    def url(self) -> str:
        return self.current_url

    @property
    def is_closed(self) -> bool:
        return self.close_count > 0

    @property
    def operations(self) -> List[str]:
        return [call[0] for call in self.calls]

    @property
    def visible_cookies(self) -> Dict[str, str]:
        return {cookie['name']: cookie['value'] for cookie in self.cookies}

    def _record(self, operation: str, *args: Any) -> None:
        self.calls.append((operation,) + args)
        if operation in self.failures:
            raise self.failures[operation]

    async def _bounded_sleep(self, delay: float, timeout_ms: Optional[float], operation: str) -> None:
        if timeout_ms is not None and delay * 1000 > timeout_ms:
            await asyncio.sleep(timeout_ms / 1000)
            raise EngineTimeoutError(f"Timeout {timeout_ms:.0f}ms exceeded.", operation=operation)
        await asyncio.sleep(delay)

    async def goto(self, url: str, timeout_ms: Optional[float] = None, wait_until: str = "load") -> None:
        self._record("goto", url)
        if wait_until == "commit":
            self.current_url = url
            return
        await self._bounded_sleep(self.load_delay, timeout_ms, "navigate")
        self.current_url = url

    async def wait_for_load(self, timeout_ms: Optional[float] = None) -> None:
        self._record("wait_for_load")
        await self._bounded_sleep(self.load_delay, timeout_ms, "wait for load")

    async def reload(self, timeout_ms: Optional[float] = None) -> None:
        self._record("reload")

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        self._record("evaluate", expression)
        if self.transient_failures > 0:
            self.transient_failures -= 1
            raise TransientContextError("Execution context was destroyed", operation="evaluate")

        if expression == SET_WEB_STORAGE_ITEM:
            storage_type, key, value = arg
            storage = self.local_storage if storage_type == "local" else self.session_storage
            storage[key] = value
        elif expression == SET_BODY_SIZE:
            self.body_size = tuple(arg)
            self.body_size_url = self.current_url
        elif expression == "1 + 1":
            return 2
        return None

    async def wait_for_function(self, expression: str, timeout_ms: Optional[float] = None) -> None:
        self._record("wait_for_function", expression)
        self.gate_urls.append((expression, self.current_url))
        if expression == RENDER_COMPLETE and self.current_url != "about:blank":
            await self._bounded_sleep(self.render_delay, timeout_ms, "wait for function")

    async def wait_for_network_idle(self, timeout_ms: Optional[float] = None) -> None:
        self._record("wait_for_network_idle")

    async def set_viewport(self, dimensions: Dimensions) -> None:
        self._record("set_viewport", dimensions)
        self.viewport = dimensions.to_viewport()

    async def clear_cookies(self) -> None:
        self._record("clear_cookies")
        self.cookies = []

    async def add_cookies(self, cookies: List[Dict[str, Any]]) -> None:
        self._record("add_cookies", cookies)
        self.cookies.extend(cookies)

    async def pdf(self, dimensions: Dimensions) -> bytes:
        self._record("pdf", dimensions)
        return FAKE_PDF

    async def close(self) -> None:
        self.close_count += 1
        if self.close_error is not None:
            raise self.close_error


class FakeBrowserFactory(BrowserFactory):
    """BrowserFactory whose engine is simulated and whose sessions are FakeSessions.

    Keeps the real ``session()`` scope so that release discipline is exercised.
    """

    def __init__(self, session: Optional[FakeSession] = None, config=None, launch_error: Optional[Exception] = None):
        super().__init__(config)
        self.fake_session = session or FakeSession()
        self.launch_error = launch_error
        self.start_count = 0
        self.stop_count = 0
        self.sessions_opened = 0
        self.launch_timeout_ms: Optional[float] = None

    async def start(self, timeout_ms=None, tracer=None) -> None:
        self.start_count += 1
        self.launch_timeout_ms = timeout_ms
        if self.launch_error is not None:
            raise self.launch_error
        self.browser = MagicMock()
        self.browser.is_connected = MagicMock(return_value=True)
        self.browser.version = "fake-chromium"

    async def stop(self, tracer=None) -> None:
        self.stop_count += 1
        self.browser = None

    async def create_session(self, tracer=None):
        if not self.browser:
            raise EngineError("Browser factory not started. Call start() first.", operation="open session")
        self.sessions_opened += 1
        self._context_count += 1
        return self.fake_session


@pytest.fixture
def fake_session():
    """Fresh fake session with no simulated failure."""
    return FakeSession()


@pytest.fixture
def session_class():
    """The FakeSession class, for tests configuring their own failures."""
    return FakeSession


@pytest.fixture
def factory_class():
    """The FakeBrowserFactory class."""
    return FakeBrowserFactory


@pytest.fixture
def patch_factory():
    """Make engine_scope build the given fake factory instead of a real browser.

    Usage: ``factory = patch_factory(FakeBrowserFactory(session))``.
    """
    patchers = []

    def install(factory: FakeBrowserFactory) -> FakeBrowserFactory:
        for target in (
            "browser_export.export.browser_factory.BrowserFactory",
            "browser_export.export.engine.BrowserFactory",
        ):
            patcher = patch(target, MagicMock(return_value=factory))
            patcher.start()
            patchers.append(patcher)
        return factory

    yield install

    for patcher in reversed(patchers):
        patcher.stop()


@pytest.fixture
def development_config():
    """Development configuration that does not depend on the process environment."""
    return load_config(environment="development", env={})


@pytest.fixture
def simple_payload():
    return {"url": "https://example.com/report"}


@pytest.fixture
def auth_payload():
    return {
        "url": "https://example.com/report",
        "authentication": {
            "cookies": [{"name": "name", "value": "value"}],
            "webStorageItems": [{"key": "jwt-token", "type": "local", "value": "token"}],
        },
        "paper": {"format": "a4"},
        "waitUntil": {"networkIdle": True},
    }


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
