"""Exceptions raised by the browser export pipeline.

Every error carries a human-readable message, a stable error code and an
optional details dictionary so that the outer surfaces (HTTP server, function
handler, CLI) can report failures consistently.
"""

from typing import Any, Dict, Optional


class BrowserExportError(Exception):
    """Base error for the export pipeline."""

    def __init__(
        self,
        message: str = "Export failed",
        error_code: str = "export_failed",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class PayloadValidationError(BrowserExportError):
    """Raised when the payload or the timeout is rejected before any engine work.

    The message is the validator's own diagnostic, not rewritten.
    """

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(
            message=message,
            error_code="validation_error",
            details={"errors": errors} if errors else {}
        )


class AuthorizationError(BrowserExportError):
    """Raised when the URL to export does not match the authorized pattern."""

    def __init__(self, url: str, pattern: Optional[str] = None):
        super().__init__(
            message=f"The URL {url} is not authorized.",
            error_code="unauthorized_url",
            details={"url": url, "pattern": pattern} if pattern else {"url": url}
        )


class InvalidDimensionError(BrowserExportError):
    """Raised when a paper dimension string does not match the unit pattern."""

    def __init__(self, dimension: Any):
        super().__init__(
            message=f"Invalid paper dimension {dimension!r}: expected a number followed by one of cm, mm, in, px.",
            error_code="invalid_dimension",
            details={"dimension": dimension}
        )


class EngineError(BrowserExportError):
    """Raised for any failure reported by the browser engine."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="engine_error",
            details={"operation": operation} if operation else {}
        )


class EngineTimeoutError(EngineError):
    """Raised when a bounded engine wait runs out of time."""


class TransientContextError(EngineError):
    """The page has no script execution context yet.

    Only ever raised towards the evaluation-context waiter, which retries it.
    """


class ExportTimeoutError(BrowserExportError):
    """Raised when the overall export deadline is exceeded."""

    def __init__(self, message: str, timeout_ms: Optional[float] = None):
        super().__init__(
            message=message,
            error_code="timeout",
            details={"timeout_ms": timeout_ms} if timeout_ms is not None else {}
        )
