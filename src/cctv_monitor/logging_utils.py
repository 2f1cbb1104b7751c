"""Recent-problem buffer for /api/status and logger setup.

Sweep and matcher code log failures with ``extra={"event_id": ..., "operation": ...}``;
the buffer keeps those fields so operators can see which event a failed media
delete belonged to without grepping container logs.
"""

import logging
import threading
import time
from collections import Counter, deque

from cctv_monitor.constants import ERROR_BUFFER_MAX_SIZE

logger = logging.getLogger('cctv-monitor')

# Longest message kept per entry
MAX_MESSAGE_LENGTH = 500


class ErrorBuffer:
    """Bounded, newest-first record of WARNING/ERROR entries tagged with event context."""

    def __init__(self, max_size: int = ERROR_BUFFER_MAX_SIZE):
        self._entries: deque[dict] = deque(maxlen=max_size)
        self._lock = threading.Lock()

    def append(self, timestamp: str, level: str, message: str,
               event_id=None, operation: str | None = None) -> None:
        entry = {
            "ts": timestamp,
            "level": level,
            "message": (message or "")[:MAX_MESSAGE_LENGTH],
        }
        if event_id is not None:
            entry["eventId"] = event_id
        if operation:
            entry["operation"] = operation
        with self._lock:
            self._entries.append(entry)

    def get_all(self) -> list[dict]:
        with self._lock:
            return list(reversed(self._entries))

    def for_event(self, event_id) -> list[dict]:
        """Entries tagged with one event id, newest first."""
        return [e for e in self.get_all() if e.get("eventId") == event_id]

    def summary(self) -> dict:
        """Entry counts per level and per operation for the status endpoint."""
        entries = self.get_all()
        return {
            "byLevel": dict(Counter(e["level"] for e in entries)),
            "byOperation": dict(Counter(e["operation"] for e in entries if "operation" in e)),
        }

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class ErrorBufferHandler(logging.Handler):
    """Copies WARNING and above into an ErrorBuffer, keeping event_id/operation extras."""

    def __init__(self, buffer: ErrorBuffer):
        super().__init__(level=logging.WARNING)
        self._buffer = buffer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._buffer.append(
                time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(record.created)),
                record.levelname,
                record.getMessage(),
                event_id=getattr(record, "event_id", None),
                operation=getattr(record, "operation", None),
            )
        except Exception:
            self.handleError(record)


error_buffer = ErrorBuffer(max_size=ERROR_BUFFER_MAX_SIZE)


def setup_logging(log_level: str) -> None:
    """Apply LOG_LEVEL to the root and cctv-monitor loggers and attach the status buffer once."""
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.getLogger().setLevel(level)
    logger.setLevel(level)

    if not any(isinstance(h, ErrorBufferHandler) for h in logger.handlers):
        logger.addHandler(ErrorBufferHandler(error_buffer))

    # SSE clients keep connections open; per-request access lines add nothing
    logging.getLogger('werkzeug').setLevel(logging.WARNING)

    logger.info(f"Log level set to {log_level.upper()}")
