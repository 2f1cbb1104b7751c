"""Thread-safe JSON event store.

The whole event list lives in one JSON file (events-data.json). Every mutation
reads the entire file, changes it in memory, and replaces the file atomically
(temp file + os.replace), so concurrent readers always see a complete document.
Writers are serialized by a single RLock per store; the messageId dedup check and
the videoPath attach check both run inside it.
"""

import json
import logging
import os
import tempfile
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from cctv_monitor.exceptions import EventNotFoundError, StorageError
from cctv_monitor.models import Event

logger = logging.getLogger('cctv-monitor')


def write_json_atomic(file_path: str, data) -> None:
    """Write data as indented JSON via a temp file in the same directory and os.replace.

    Raises OSError; the temp file is removed on failure.
    """
    directory = os.path.dirname(file_path)
    tmp_path = None
    try:
        os.makedirs(directory, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=directory,
            delete=False,
            suffix=".tmp",
            encoding="utf-8",
        ) as tmp:
            tmp_path = tmp.name
            json.dump(data, tmp, indent=2)
        os.replace(tmp_path, file_path)
    except OSError:
        if tmp_path:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


def find_by_id(events: list[Event], event_id) -> Event | None:
    for event in events:
        if event.id == event_id:
            return event
    return None


def find_by_message_id(events: list[Event], message_id: str) -> Event | None:
    for event in events:
        if event.message_id == message_id:
            return event
    return None


class EventStore:
    """Whole-file read/replace storage for alarm events."""

    def __init__(self, file_path: str) -> None:
        self._file_path = os.path.abspath(file_path)
        self._lock = threading.RLock()

    @property
    def file_path(self) -> str:
        return self._file_path

    @contextmanager
    def writer(self) -> Iterator[None]:
        """Hold the single-writer lock across a multi-step read-modify-write."""
        with self._lock:
            yield

    def load(self) -> list[Event]:
        """Read all events. A missing file is an empty store.

        Raises:
            StorageError: the file exists but cannot be read or parsed.
        """
        if not os.path.isfile(self._file_path):
            return []
        try:
            with open(self._file_path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(self._file_path, f"Failed to read events data ({e})") from e
        if not isinstance(data, list):
            raise StorageError(self._file_path, "Events data is not a list")
        return [Event.from_dict(item) for item in data if isinstance(item, dict)]

    def save(self, events: list[Event]) -> None:
        """Replace the events file atomically.

        Raises:
            StorageError: the directory or file cannot be written.
        """
        with self._lock:
            try:
                write_json_atomic(self._file_path, [e.to_dict() for e in events])
            except OSError as e:
                raise StorageError(self._file_path, f"Failed to write events data ({e})") from e

    def get(self, event_id) -> Event:
        event = find_by_id(self.load(), event_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    @staticmethod
    def _next_id(events: list[Event]) -> int:
        candidate = int(time.time() * 1000)
        existing = [e.id for e in events if isinstance(e.id, int)]
        if existing and candidate <= max(existing):
            candidate = max(existing) + 1
        return candidate

    def create(self, event: Event) -> Event | None:
        """Append a new event unless its messageId is already stored.

        Returns the stored event, or None for a duplicate (logged, not an error).
        """
        with self._lock:
            events = self.load()
            if event.message_id and find_by_message_id(events, event.message_id) is not None:
                logger.info(f"Event with messageId {event.message_id} already exists, skipping")
                return None
            if event.id is None or find_by_id(events, event.id) is not None:
                event.id = self._next_id(events)
            events.append(event)
            self.save(events)
            logger.info(f"Created event {event.id} (camera={event.camera or 'unknown'})")
            return event

    def update(self, event_id, mutator: Callable[[Event], None]) -> Event:
        """Apply mutator to one event in place and persist the whole list.

        Raises:
            EventNotFoundError: no event has this id.
            StorageError: reading or writing the file failed.
        """
        with self._lock:
            events = self.load()
            event = find_by_id(events, event_id)
            if event is None:
                raise EventNotFoundError(event_id)
            mutator(event)
            self.save(events)
            return event

    def normalize(self) -> int:
        """Persist default acknowledged/locked flags on legacy rows. Returns rows touched."""
        with self._lock:
            if not os.path.isfile(self._file_path):
                return 0
            try:
                with open(self._file_path, encoding="utf-8") as f:
                    raw = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise StorageError(self._file_path, f"Failed to read events data ({e})") from e
            if not isinstance(raw, list):
                return 0
            touched = sum(
                1 for item in raw
                if isinstance(item, dict) and ("acknowledged" not in item or "locked" not in item)
            )
            if touched:
                self.save([Event.from_dict(item) for item in raw if isinstance(item, dict)])
                logger.info(f"Added acknowledged/locked defaults to {touched} event(s)")
            return touched
