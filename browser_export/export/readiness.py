"""Render readiness detection.

Gates that must hold before a page is printed:

* evaluation context: the page can run scripts at all,
* DOM/app: ``document.readyState`` is ``complete`` and the application did not
  set ``window.renderComplete`` to ``false``,
* viewport: the page is resized to the paper dimensions,
* network idle (optional): the engine reports no in-flight requests,
* idle browser: the main thread went idle once, checked last.
"""

import asyncio
import logging
from typing import Optional

from ..models.export import Dimensions, WaitUntilSpec
from .deadline import Deadline, guard
from .errors import TransientContextError
from .session import ExportSession
from .tracing import ExportTracer

logger = logging.getLogger(__name__)

CONTEXT_RETRY_DELAY_SECONDS = 0.01

READY_STATE_COMPLETE = "document.readyState === 'complete'"

# Applications that never set the flag are ready as soon as the DOM is.
RENDER_COMPLETE = "window.renderComplete !== false"

SET_BODY_SIZE = """([width, height]) => {
    const bodyStyle = document.getElementsByTagName('body')[0].style;
    bodyStyle.width = width + 'px';
    bodyStyle.height = height + 'px';
}"""

IDLE_CALLBACK_FLAG = "browserExport_waitedForIdleCallback"

WAIT_FOR_IDLE_CALLBACK = f"""() => {{
    if (window.{IDLE_CALLBACK_FLAG} === undefined) {{
        window.{IDLE_CALLBACK_FLAG} = false;
        window.requestIdleCallback(() => {{
            window.{IDLE_CALLBACK_FLAG} = true;
        }});
    }}
    return window.{IDLE_CALLBACK_FLAG};
}}"""


async def wait_for_evaluation_context(
    session: ExportSession,
    deadline: Deadline,
    tracer: Optional[ExportTracer] = None,
) -> None:
    """Wait until the page can evaluate scripts.

    Transient context errors are retried without limit on the number of
    attempts; the loop as a whole is bounded by the remaining budget of the
    deadline and stops retrying once the deadline has passed.

    Raises:
        ExportTimeoutError: If no context shows up before the deadline
        EngineError: On any other engine failure
    """
    tracer = (tracer or ExportTracer()).child("waitForEvaluationContext")
    timeout_ms = deadline.remaining_ms()

    async def probe() -> None:
        attempt = 0
        while True:
            attempt += 1
            tracer.debug(f"attempt #{attempt}")
            try:
                await session.evaluate("1 + 1")
            except TransientContextError:
                if deadline.expired:
                    tracer.debug("missing context after the deadline, giving up")
                    raise
                tracer.debug("missing context, retrying")
                await asyncio.sleep(CONTEXT_RETRY_DELAY_SECONDS)
                continue
            tracer.debug("attempt successful")
            return

    await tracer.step(
        "wait for evaluation context",
        lambda: guard(
            probe(),
            timeout_ms,
            f"Failed to wait for evaluation context under the given timeout of {timeout_ms:.0f} milliseconds.",
        ),
    )


async def wait_until_render_complete(
    session: ExportSession,
    deadline: Deadline,
    tracer: Optional[ExportTracer] = None,
) -> None:
    """DOM/app gate: complete ready state, then the application render flag."""
    tracer = (tracer or ExportTracer()).child("waitUntilRenderComplete")
    await tracer.step(
        "wait for complete readyState",
        lambda: session.wait_for_function(READY_STATE_COMPLETE, deadline.remaining_ms()),
    )
    await tracer.step(
        "wait for complete render",
        lambda: session.wait_for_function(RENDER_COMPLETE, deadline.remaining_ms()),
    )


async def resize(
    session: ExportSession,
    dimensions: Dimensions,
    tracer: Optional[ExportTracer] = None,
) -> None:
    """Viewport gate: resize the page and force the body to the same size."""
    tracer = (tracer or ExportTracer()).child("resize")

    async def resize_page() -> None:
        await tracer.step("set viewport", lambda: session.set_viewport(dimensions))
        # Chromium does not always relayout the body to the new viewport.
        await tracer.step(
            "set body size",
            lambda: session.evaluate(SET_BODY_SIZE, [dimensions.width, dimensions.height]),
        )

    await tracer.step("resize browser page", resize_page)


async def wait_until_network_idle(
    session: ExportSession,
    wait_until: WaitUntilSpec,
    deadline: Deadline,
    tracer: Optional[ExportTracer] = None,
) -> None:
    """Network-idle gate; resolves immediately unless ``networkIdle`` was requested."""
    tracer = (tracer or ExportTracer()).child("waitUntilNetworkIdle")
    if not wait_until.network_idle:
        tracer.debug("no need to wait for idle network")
        return

    await tracer.step(
        "wait for idle network",
        lambda: session.wait_for_network_idle(deadline.remaining_ms()),
    )


async def await_ready(
    session: ExportSession,
    dimensions: Dimensions,
    wait_until: WaitUntilSpec,
    deadline: Deadline,
    tracer: Optional[ExportTracer] = None,
) -> None:
    """Resolve once every engaged readiness gate holds.

    Meant to run concurrently with the navigation to the page. The network-idle
    gate runs alongside the evaluation-context wait and the DOM/app and
    viewport gates, which themselves run in parallel once the page can
    evaluate scripts.
    """
    tracer = tracer or ExportTracer()

    async def page_ready() -> None:
        await wait_for_evaluation_context(session, deadline, tracer)
        await asyncio.gather(
            wait_until_render_complete(session, deadline, tracer),
            resize(session, dimensions, tracer),
        )

    await asyncio.gather(
        page_ready(),
        wait_until_network_idle(session, wait_until, deadline, tracer),
    )


async def wait_for_idle_browser(
    session: ExportSession,
    deadline: Deadline,
    tracer: Optional[ExportTracer] = None,
) -> None:
    """Wait for the browser main thread to go idle once.

    Gives the page a chance to finish rendering so that loading spinners or
    running animations are less likely to be printed.
    """
    tracer = (tracer or ExportTracer()).child("waitForIdleBrowser")
    await tracer.step(
        "wait for idle browser",
        lambda: session.wait_for_function(WAIT_FOR_IDLE_CALLBACK, deadline.remaining_ms()),
    )
