"""Function handler exporting PDFs behind an API-Gateway-style proxy.

Events coming from the gateway carry a base64-encoded JSON body; test events
are already the payload. The handler always answers with a response envelope
and never lets an error escape as an invocation failure.
"""

import asyncio
import base64
import json
import logging
import math
from typing import Any, Callable, Dict, Optional, Pattern, Union

from ..config import configure_logging, load_handler_settings
from ..export.authorization import check_authorized_url
from ..export.browser_factory import BrowserConfig
from ..export.engine import export_document
from ..export.tracing import ExportTracer

logger = logging.getLogger(__name__)

LAMBDA_CHROMIUM_ARGS = ["--no-sandbox", "--single-process"]

Log = Callable[[Dict[str, Any]], None]


def _default_log(record: Dict[str, Any]) -> None:
    logger.info("handler event", extra=record)


def decode_event(event: Dict[str, Any], log: Log) -> Any:
    """Extract the export payload from an event."""
    if event.get("isBase64Encoded"):
        payload = json.loads(base64.b64decode(event["body"]).decode("utf-8"))
        log({"payload": payload})
        return payload

    return event


def success_response(pdf: bytes) -> Dict[str, Any]:
    return {
        "body": base64.b64encode(pdf).decode("ascii"),
        "headers": {
            "content-disposition": "attachment",
            "content-type": "application/pdf",
        },
        # Tells the gateway to turn the base64 body back into binary.
        "isBase64Encoded": True,
        "statusCode": 200,
    }


def failure_response(error: Exception) -> Dict[str, Any]:
    return {
        "body": getattr(error, "message", None) or str(error),
        "statusCode": 500,
    }


async def handle(
    event: Dict[str, Any],
    *,
    authorized_url_regex: Union[str, Pattern[str]],
    timeout_in_seconds: float,
    browser_config: Optional[BrowserConfig] = None,
    log: Optional[Log] = None,
) -> Dict[str, Any]:
    """Export the PDF described by an event.

    Args:
        event: Gateway event (base64 JSON body) or the payload itself
        authorized_url_regex: Pattern the URL to export has to match
        timeout_in_seconds: Budget of the export
        browser_config: Browser launch configuration
        log: Callable receiving structured records

    Returns:
        Response envelope, with ``statusCode`` 500 and the error message as
        body on failure
    """
    log = log or _default_log
    log({"event": event})

    try:
        payload = decode_event(event, log)
        url = payload.get("url") if isinstance(payload, dict) else None
        check_authorized_url(url, authorized_url_regex)
        pdf = await export_document(
            payload,
            timeout_in_seconds,
            browser_config=browser_config,
            tracer=ExportTracer(namespace="handler"),
        )
    except Exception as e:
        log({"error": str(e)})
        return failure_response(e)

    return success_response(pdf)


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Synchronous entry point called by the function runtime.

    The export budget is the remaining execution time of the invocation.
    """
    configure_logging()
    try:
        settings = load_handler_settings()
    except Exception as e:
        logger.error(f"Invalid handler configuration: {e}")
        return failure_response(e)

    browser_config = BrowserConfig(
        args=list(LAMBDA_CHROMIUM_ARGS),
        executable_path=settings["executable_path"],
    )
    timeout_in_seconds = math.ceil(context.get_remaining_time_in_millis() / 1000)

    return asyncio.run(handle(
        event,
        authorized_url_regex=settings["authorized_url_regex"],
        timeout_in_seconds=timeout_in_seconds,
        browser_config=browser_config,
    ))
