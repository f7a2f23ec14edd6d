"""PDF export route.

``POST /v1/pdf`` takes an export payload as JSON body and answers with the PDF
as an attachment. Any failure, validation included, is answered with HTTP 500
and a JSON body carrying the error message.
"""

import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.responses import Response

from ...export.authorization import check_authorized_url
from ...export.schema import PAYLOAD_SCHEMA
from ...export.tracing import ExportTracer
from ...models.export import EXAMPLE_PAYLOAD

logger = logging.getLogger(__name__)

router = APIRouter(tags=["PDF"])

PDF_EXPORT_DESCRIPTION = (
    "Open the given URL with Headless Chromium, export what is displayed as a PDF, and download it."
)

ROUTE_DOCS: Dict[str, Dict[str, Any]] = {
    "/v1/pdf": {
        "POST": {
            "description": PDF_EXPORT_DESCRIPTION,
            "example": EXAMPLE_PAYLOAD,
            "schema": PAYLOAD_SCHEMA,
        },
    },
}


def ensure_json(message: str) -> str:
    """Keep messages that already are JSON, wrap the others in ``{"message": ...}``."""
    try:
        json.loads(message)
        return message
    except ValueError:
        return json.dumps({"message": message})


def error_response(error: Exception) -> Response:
    message = getattr(error, "message", None) or str(error)
    return Response(
        content=ensure_json(message),
        status_code=500,
        media_type="application/json",
    )


@router.post(
    "/v1/pdf",
    summary="Export a page to PDF",
    description=PDF_EXPORT_DESCRIPTION,
    response_class=Response,
    responses={
        200: {"content": {"application/pdf": {}}, "description": "The exported PDF"},
        500: {"description": "Export failure with the error message"},
    },
)
async def export_pdf(request: Request) -> Response:
    """Export the page described by the JSON body to PDF."""
    request_id = getattr(request.state, "request_id", None)
    config = request.app.state.config
    engine = request.app.state.engine

    try:
        payload = await request.json()
        logger.debug(
            "starting PDF export",
            extra={"request_id": request_id, "payload": payload}
        )

        url = payload.get("url") if isinstance(payload, dict) else None
        check_authorized_url(url, config.server.authorized_url_pattern)

        pdf = await engine.export_pdf(
            payload,
            timeout_in_seconds=config.server.timeout_in_seconds,
            tracer=ExportTracer(export_id=request_id),
        )

    except Exception as e:
        logger.error(
            f"PDF export failed: {e}",
            extra={"request_id": request_id, "error_code": getattr(e, "error_code", None)}
        )
        return error_response(e)

    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": "attachment"},
    )
