"""
Event sink — receives one ConnectorEvent per dispatch attempt.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from connectors.models import ConnectorEvent

logger = logging.getLogger(__name__)


class EventSink(ABC):
    @abstractmethod
    def emit(self, event: ConnectorEvent) -> None:
        """Fire-and-forget.  Implementations may raise; callers guard."""


class LoggingEventSink(EventSink):
    """Default sink: one log line per attempt."""

    def __init__(self, logger_name: str = "connectors.audit") -> None:
        self._log = logging.getLogger(logger_name)

    def emit(self, event: ConnectorEvent) -> None:
        if event.error_kind is None and event.status is not None and event.status < 400:
            self._log.info(
                "%s %s %s → %d (%dms, attempt %d)",
                event.connector_id,
                event.method,
                event.path,
                event.status,
                event.duration_ms,
                event.attempt,
            )
        else:
            self._log.warning(
                "%s %s %s → %s (%dms, attempt %d)",
                event.connector_id,
                event.method,
                event.path,
                event.status if event.status is not None else event.error_kind,
                event.duration_ms,
                event.attempt,
            )


def safe_emit(sink: EventSink, event: ConnectorEvent) -> None:
    """Emit without ever letting a sink failure reach the dispatch path."""
    try:
        sink.emit(event)
    except Exception:
        logger.warning("Event sink %s failed", type(sink).__name__, exc_info=True)
