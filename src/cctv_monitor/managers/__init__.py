"""Manager modules for the event store, operator settings, and media paths."""

from cctv_monitor.managers.media import MediaPaths
from cctv_monitor.managers.settings import SettingsStore
from cctv_monitor.managers.store import EventStore

__all__ = [
    "EventStore",
    "MediaPaths",
    "SettingsStore",
]
