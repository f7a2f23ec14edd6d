"""Injection of authentication state into an export session.

Cookies and Web Storage items are written on the target origin, then the page
is reloaded: applications often read their authentication state only once,
at startup.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from ..models.export import AuthSpec, CookieSpec
from .deadline import Deadline
from .readiness import wait_for_evaluation_context
from .session import ExportSession
from .tracing import ExportTracer

logger = logging.getLogger(__name__)

SET_WEB_STORAGE_ITEM = "([type, key, value]) => window[type + 'Storage'].setItem(key, value)"


def to_playwright_cookie(cookie: CookieSpec, page_url: str) -> Dict[str, Any]:
    """Convert a cookie spec into the shape expected by ``BrowserContext.add_cookies``.

    A cookie without domain is scoped to the host of the current page; a
    cookie without path applies to the whole site.
    """
    converted: Dict[str, Any] = {
        'name': cookie.name,
        'value': cookie.value,
        'httpOnly': cookie.http_only,
        'secure': cookie.secure,
    }

    if cookie.domain:
        converted['domain'] = cookie.domain
        converted['path'] = cookie.path or '/'
    elif cookie.path:
        # Playwright rejects cookies carrying both url and path.
        converted['domain'] = urlparse(page_url).hostname
        converted['path'] = cookie.path
    else:
        converted['url'] = page_url

    if cookie.expires is not None:
        converted['expires'] = cookie.expires

    return converted


async def inject_cookies(
    session: ExportSession,
    cookies: List[CookieSpec],
    tracer: Optional[ExportTracer] = None,
) -> None:
    """Replace every cookie of the session with the given ones."""
    tracer = (tracer or ExportTracer()).child("authenticate:cookies")
    if not cookies:
        tracer.debug("no cookies to inject")
        return

    async def replace_cookies() -> None:
        await session.clear_cookies()
        page_url = session.url
        await session.add_cookies([to_playwright_cookie(cookie, page_url) for cookie in cookies])

    await tracer.step("cookies injection", replace_cookies)


async def inject_web_storage_items(
    session: ExportSession,
    auth: AuthSpec,
    tracer: Optional[ExportTracer] = None,
) -> None:
    """Write each Web Storage item into localStorage or sessionStorage."""
    tracer = (tracer or ExportTracer()).child("authenticate:web-storage")
    if not auth.web_storage_items:
        tracer.debug("no Web Storage items to inject")
        return

    async def set_items() -> None:
        for item in auth.web_storage_items:
            await session.evaluate(SET_WEB_STORAGE_ITEM, [item.type, item.key, item.value])

    await tracer.step("Web Storage items injection", set_items)


async def authenticate(
    session: ExportSession,
    auth: Optional[AuthSpec],
    url: str,
    deadline: Deadline,
    tracer: Optional[ExportTracer] = None,
) -> None:
    """Inject cookies and Web Storage items for ``url`` into the session.

    Does nothing when there is nothing to inject. Otherwise navigates to the
    URL, waits for an evaluation context, injects cookies and storage items
    concurrently, then forces a full reload so that the application sees the
    injected state when it starts.

    Args:
        session: Session of the export
        auth: Authentication to inject (None means nothing)
        url: URL of the page to export
        deadline: Deadline of the export
        tracer: Tracer of the export

    Raises:
        BrowserExportError: From whichever step failed
    """
    tracer = (tracer or ExportTracer()).child("authenticate")
    if auth is None or auth.is_empty:
        tracer.debug("no authentication needed")
        return

    async def inject() -> None:
        await tracer.step("navigation", lambda: session.goto(url, deadline.remaining_ms()))
        await wait_for_evaluation_context(session, deadline, tracer)
        await asyncio.gather(
            inject_cookies(session, auth.cookies, tracer),
            inject_web_storage_items(session, auth, tracer),
        )
        await tracer.step("reload", lambda: session.reload(deadline.remaining_ms()))

    await tracer.step("authentication", inject)
