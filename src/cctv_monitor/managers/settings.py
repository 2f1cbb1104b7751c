"""Operator settings stored beside the events file (currently the tag vocabulary).

Acknowledge accepts any tag list; this vocabulary is what the operator UI
offers. The file is created with DEFAULT_TAGS on first read, the way a fresh
install starts with the standard categories.
"""

import json
import logging
import os
import threading

from cctv_monitor.constants import DEFAULT_TAGS, MAX_TAG_LENGTH, SETTINGS_FILENAME
from cctv_monitor.exceptions import StorageError
from cctv_monitor.managers.store import write_json_atomic

logger = logging.getLogger('cctv-monitor')


def normalize_tags(tags) -> list[str]:
    """Validate and clean a tag list: strings only, stripped, non-empty, de-duplicated in order.

    Raises:
        ValueError: tags is not a list, or an entry is not a usable string.
    """
    if not isinstance(tags, list):
        raise ValueError("tags must be a list")
    out: list[str] = []
    for tag in tags:
        if not isinstance(tag, str) or not tag.strip():
            raise ValueError(f"Invalid tag: {tag!r}")
        tag = tag.strip()
        if len(tag) > MAX_TAG_LENGTH:
            raise ValueError(f"Tag longer than {MAX_TAG_LENGTH} characters: {tag[:20]}...")
        if tag not in out:
            out.append(tag)
    return out


class SettingsStore:
    """Thread-safe read/write of settings-data.json."""

    def __init__(self, file_path: str) -> None:
        self._file_path = os.path.abspath(file_path)
        self._lock = threading.Lock()

    @property
    def file_path(self) -> str:
        return self._file_path

    def _read(self) -> dict | None:
        """Parsed settings, or None when the file is missing or unusable."""
        if not os.path.isfile(self._file_path):
            return None
        try:
            with open(self._file_path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read settings file {self._file_path}: {e}")
            return None
        return data if isinstance(data, dict) else None

    def get_tags(self) -> list[str]:
        """Current tag vocabulary. A missing file is seeded with the defaults."""
        with self._lock:
            data = self._read()
            if data is None:
                data = {"tags": list(DEFAULT_TAGS)}
                if not os.path.exists(self._file_path):
                    try:
                        write_json_atomic(self._file_path, data)
                    except OSError as e:
                        logger.warning(f"Could not create settings file {self._file_path}: {e}")
            tags = data.get("tags")
            if not isinstance(tags, list):
                return list(DEFAULT_TAGS)
            return [t for t in tags if isinstance(t, str)]

    def set_tags(self, tags) -> list[str]:
        """Replace the tag vocabulary and return the stored list.

        Raises:
            ValueError: the tag list is malformed.
            StorageError: the settings file cannot be written.
        """
        cleaned = normalize_tags(tags)
        with self._lock:
            data = self._read() or {}
            data["tags"] = cleaned
            try:
                write_json_atomic(self._file_path, data)
            except OSError as e:
                raise StorageError(self._file_path, f"Failed to write settings ({e})") from e
        logger.info(f"Tag vocabulary updated ({len(cleaned)} tags)")
        return cleaned
