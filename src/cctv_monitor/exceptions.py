"""Typed failures raised by the event store and operator operations."""


class MonitorError(Exception):
    """Base class for errors surfaced to the web layer and scheduler."""


class EventNotFoundError(MonitorError):
    """Referenced event id does not exist in the store."""

    def __init__(self, event_id):
        self.event_id = event_id
        super().__init__(f"Event not found: {event_id}")


class StorageError(MonitorError):
    """Reading or writing the events file failed for a reason other than absence."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"{message}: {path}")


class OperationTimeoutError(MonitorError):
    """A bounded operation (retention sweep) did not finish in time."""

    def __init__(self, operation: str, timeout_seconds: float):
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{operation} timed out after {timeout_seconds}s")
