"""
Quota Event Logging

Structured event emission for quota operations. Each event is one log
record keyed by operation name, with the event fields attached under
``quota_event`` for structured handlers.
"""

import logging
from typing import Any, Optional


logger = logging.getLogger("app.quota")


class QuotaEventLogger:
    """
    Logging sink for quota events.

    Failing to log never changes a quota outcome, so every emit is
    best-effort.
    """

    def __init__(self, sink: Optional[logging.Logger] = None):
        self._logger = sink or logger

    def emit(self, level: int, message: str, operation: str, **fields: Any) -> None:
        try:
            if not self._logger.isEnabledFor(level):
                return
            rendered = " ".join(f"{key}={value}" for key, value in fields.items())
            self._logger.log(
                level,
                f"{message} [operation={operation}] {rendered}".rstrip(),
                extra={"quota_event": {"operation": operation, **fields}},
            )
        except Exception:
            pass

    def info(self, message: str, operation: str, **fields: Any) -> None:
        self.emit(logging.INFO, message, operation, **fields)

    def warning(self, message: str, operation: str, **fields: Any) -> None:
        self.emit(logging.WARNING, message, operation, **fields)

    def error(self, message: str, operation: str, **fields: Any) -> None:
        self.emit(logging.ERROR, message, operation, **fields)


class NullQuotaEventLogger(QuotaEventLogger):
    """Sink that drops every event."""

    def emit(self, level: int, message: str, operation: str, **fields: Any) -> None:
        return None
