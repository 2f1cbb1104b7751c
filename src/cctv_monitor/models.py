"""Event record, match results, and sweep statistics."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from cctv_monitor.constants import (
    MATCH_STATUS_ALREADY_ATTACHED,
    MATCH_STATUS_MATCHED,
)
from cctv_monitor.timestamps import parse_event_date

# Persisted camelCase key -> Event attribute. Keys not listed here are kept in
# Event.extra and written back unchanged (subject, eventType, device, siteId, ...).
_FIELD_MAP = {
    "id": "id",
    "messageId": "message_id",
    "date": "date",
    "camera": "camera",
    "imagePath": "image_path",
    "videoPath": "video_path",
    "acknowledged": "acknowledged",
    "acknowledgedAt": "acknowledged_at",
    "acknowledgedBy": "acknowledged_by",
    "responseTimeMinutes": "response_time_minutes",
    "isLateResponse": "is_late_response",
    "tags": "tags",
    "locked": "locked",
    "note": "note",
}

# Written even when falsy so legacy rows gain them on the next save.
_ALWAYS_WRITTEN = frozenset({"id", "messageId", "date", "camera", "acknowledged", "locked"})


@dataclass(slots=True)
class Event:
    """One alarm record tracked through acknowledgement, correlation, and retention."""
    message_id: str
    date: str
    camera: str = ""
    id: int | None = None
    image_path: str | None = None

    # Set at most once by the matcher
    video_path: str | None = None

    # Operator response (acknowledge)
    acknowledged: bool = False
    acknowledged_at: str | None = None
    acknowledged_by: dict | None = None
    response_time_minutes: int | None = None
    is_late_response: bool = False
    tags: list[str] = field(default_factory=list)
    note: str | None = None

    # Overrides age-based deletion
    locked: bool = False

    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def event_datetime(self) -> datetime | None:
        """Alarm time as a naive local datetime, or None if the stored date is unparseable."""
        return parse_event_date(self.date)

    @classmethod
    def from_dict(cls, data: dict) -> "Event":
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            attr = _FIELD_MAP.get(key)
            if attr is None:
                extra[key] = value
            else:
                kwargs[attr] = value
        kwargs.setdefault("message_id", "")
        kwargs.setdefault("date", "")
        kwargs["camera"] = kwargs.get("camera") or ""
        kwargs["acknowledged"] = bool(kwargs.get("acknowledged", False))
        kwargs["locked"] = bool(kwargs.get("locked", False))
        kwargs["is_late_response"] = bool(kwargs.get("is_late_response", False))
        tags = kwargs.get("tags")
        kwargs["tags"] = list(tags) if isinstance(tags, (list, tuple)) else []
        if kwargs.get("id") is not None:
            try:
                kwargs["id"] = int(kwargs["id"])
            except (TypeError, ValueError):
                pass
        return cls(extra=extra, **kwargs)

    def to_dict(self) -> dict:
        out: dict[str, Any] = {}
        for key, attr in _FIELD_MAP.items():
            value = getattr(self, attr)
            if key in _ALWAYS_WRITTEN or value not in (None, [], False):
                out[key] = value
        for key, value in self.extra.items():
            out.setdefault(key, value)
        return out


@dataclass(frozen=True)
class CandidateMatch:
    """A video evaluated against an event's anchors."""
    relative_path: str  # YYYY/MM/DD/<file> under the videos root
    video_time: datetime
    delta_ms: int


@dataclass(frozen=True)
class MatchResult:
    """Outcome of a correlation attempt. Only matched/already_attached carry a path."""
    status: str
    video_path: str | None = None
    delta_ms: int | None = None

    @property
    def found(self) -> bool:
        return self.status in (MATCH_STATUS_MATCHED, MATCH_STATUS_ALREADY_ATTACHED)

    def to_dict(self) -> dict:
        return {
            "found": self.found,
            "status": self.status,
            "videoPath": self.video_path,
            "deltaMs": self.delta_ms,
        }


@dataclass(slots=True)
class SweepStats:
    """Counters for one retention sweep.

    errors holds one message per failed media delete; shared_media_kept counts files
    left in place because a surviving event still references them.
    """
    processed: int = 0
    deleted: int = 0
    skipped_locked: int = 0
    deleted_images: int = 0
    deleted_videos: int = 0
    shared_media_kept: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "deleted": self.deleted,
            "skippedLocked": self.skipped_locked,
            "deletedImages": self.deleted_images,
            "deletedVideos": self.deleted_videos,
            "sharedMediaKept": self.shared_media_kept,
            "errors": list(self.errors),
        }
