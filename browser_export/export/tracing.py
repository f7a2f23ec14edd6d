"""Step tracing for export invocations.

An ``ExportTracer`` is created for each export and handed down to every
component. Each asynchronous step run through :meth:`ExportTracer.step` emits
``started``/``finished``/``failed`` log records and trace events, which makes
the pipeline observable without any process-wide logging configuration.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class StepStatus:
    """Trace event statuses."""
    STARTED = "started"
    FINISHED = "finished"
    FAILED = "failed"


@dataclass
class TraceEvent:
    """One recorded step transition."""
    step: str
    status: str
    namespace: str
    timestamp: datetime = field(default_factory=datetime.utcnow)
    duration_ms: Optional[float] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'step': self.step,
            'status': self.status,
            'namespace': self.namespace,
            'timestamp': self.timestamp.isoformat(),
            'duration_ms': self.duration_ms,
            'error': self.error,
        }


class ExportTracer:
    """Per-invocation tracer shared by all components of one export."""

    def __init__(
        self,
        export_id: Optional[str] = None,
        namespace: str = "export",
        base_logger: Optional[logging.Logger] = None,
        events: Optional[List[TraceEvent]] = None,
    ):
        """Initialize tracer.

        Args:
            export_id: Identifier attached to every log record (generated if None)
            namespace: Component namespace, e.g. ``authenticate:cookies``
            base_logger: Logger to write to (defaults to this module's logger)
            events: Event list shared with the parent tracer
        """
        self.export_id = export_id or uuid.uuid4().hex[:12]
        self.namespace = namespace
        self._base_logger = base_logger or logger
        self.events: List[TraceEvent] = events if events is not None else []
        self.log = logging.LoggerAdapter(
            self._base_logger,
            {'export_id': self.export_id, 'namespace': self.namespace}
        )

    def child(self, namespace: str) -> 'ExportTracer':
        """Create a tracer for a sub-component sharing the same event list."""
        return ExportTracer(
            export_id=self.export_id,
            namespace=namespace,
            base_logger=self._base_logger,
            events=self.events,
        )

    def debug(self, message: str) -> None:
        self.log.debug(f"{self.namespace}: {message}")

    async def step(self, name: str, action: Callable[[], Awaitable[T]]) -> T:
        """Run an asynchronous step and trace its outcome.

        Args:
            name: Human-readable step name
            action: Zero-argument callable returning an awaitable

        Returns:
            Result of the awaited action

        Raises:
            Whatever the action raises, unchanged
        """
        self._record(name, StepStatus.STARTED)
        start = time.monotonic()
        try:
            result = await action()
        except BaseException as e:
            duration_ms = (time.monotonic() - start) * 1000
            self._record(name, StepStatus.FAILED, duration_ms, error=str(e) or type(e).__name__)
            raise
        self._record(name, StepStatus.FINISHED, (time.monotonic() - start) * 1000)
        return result

    def _record(
        self,
        name: str,
        status: str,
        duration_ms: Optional[float] = None,
        error: Optional[str] = None
    ) -> None:
        self.events.append(TraceEvent(
            step=name,
            status=status,
            namespace=self.namespace,
            duration_ms=duration_ms,
            error=error,
        ))
        self.log.debug(f"{self.namespace}: [{name}] {status}")

    def steps_with_status(self, status: str) -> List[str]:
        """Names of steps that reached the given status, in order."""
        return [event.step for event in self.events if event.status == status]

    def __repr__(self) -> str:
        return f"ExportTracer(export_id={self.export_id}, namespace={self.namespace}, events={len(self.events)})"
