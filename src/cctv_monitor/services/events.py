"""Operator-facing event operations: ingest, acknowledge, lock, video attach, and upload notices."""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from cctv_monitor.constants import DEFAULT_LATE_RESPONSE_THRESHOLD_MINUTES, MATCH_STATUS_MATCHED
from cctv_monitor.exceptions import EventNotFoundError
from cctv_monitor.managers.store import EventStore
from cctv_monitor.models import Event, MatchResult
from cctv_monitor.services.broadcaster import EventBroadcaster
from cctv_monitor.services.matcher import VideoMatcher, event_anchors
from cctv_monitor.timestamps import KIND_VIDEO, extract_timestamp

logger = logging.getLogger('cctv-monitor')


class EventService:
    """Implements the event operations invoked by the web layer and intake collaborators."""

    def __init__(self, store: EventStore, matcher: VideoMatcher,
                 broadcaster: EventBroadcaster | None = None,
                 late_threshold_minutes: int = DEFAULT_LATE_RESPONSE_THRESHOLD_MINUTES,
                 clock: Callable[[], datetime] = datetime.now):
        self.store = store
        self.matcher = matcher
        self.broadcaster = broadcaster
        self.late_threshold_minutes = late_threshold_minutes
        self._clock = clock

    def _publish(self, payload: dict) -> None:
        if self.broadcaster is not None:
            self.broadcaster.publish(payload)

    def list_events(self) -> list[Event]:
        return self.store.load()

    def get_event(self, event_id) -> Event:
        return self.store.get(event_id)

    def create_event(self, candidate) -> Event | None:
        """Store a new alarm event from the intake. Returns None for a duplicate messageId.

        Ingested events always start unacknowledged, unlocked, and without a video;
        any intake-supplied id is discarded so the store allocates an integer one.
        """
        event = candidate if isinstance(candidate, Event) else Event.from_dict(dict(candidate))
        if isinstance(event.date, datetime):
            event.date = event.date.isoformat()
        event.id = None
        event.video_path = None
        event.acknowledged = False
        event.locked = False
        created = self.store.create(event)
        if created is not None:
            self._publish({"type": "new-events", "count": 1, "events": [created.to_dict()]})
        return created

    def acknowledge(self, event_id, note: str | None = None, tags: list[str] | None = None,
                    locked: bool | None = None, user: dict | None = None) -> Event:
        """
        Mark an event acknowledged and record the operator's response time.

        Acknowledgement bookkeeping is written once; acknowledging again only updates
        note, tags, and lock. Tags are replaced when a non-empty list is given.

        Raises:
            EventNotFoundError: no event has this id.
        """
        now = self._clock()

        def _apply(event: Event) -> None:
            if not event.acknowledged:
                event.acknowledged = True
                event.acknowledged_at = now.isoformat(timespec="milliseconds")
                if user:
                    event.acknowledged_by = dict(user)
                event_time = event.event_datetime
                if event_time is not None:
                    minutes = int((now - event_time).total_seconds() // 60)
                    event.response_time_minutes = minutes
                    event.is_late_response = minutes > self.late_threshold_minutes
            else:
                logger.debug(f"Event {event.id} already acknowledged, keeping original response time")
            if note:
                event.note = note
            if tags and isinstance(tags, list):
                event.tags = [str(t) for t in tags]
            if locked is not None:
                event.locked = bool(locked)

        event = self.store.update(event_id, _apply)
        logger.info(f"Event {event_id} acknowledged (response {event.response_time_minutes} min)")
        self._publish({"type": "event-updated", "event": event.to_dict()})
        return event

    def toggle_lock(self, event_id, locked: bool) -> Event:
        """Lock or unlock an event against retention.

        Raises:
            EventNotFoundError: no event has this id.
        """
        def _apply(event: Event) -> None:
            event.locked = bool(locked)

        event = self.store.update(event_id, _apply)
        logger.info(f"Event {event_id} {'locked' if locked else 'unlocked'}")
        self._publish({"type": "event-updated", "event": event.to_dict()})
        return event

    def attach_video_if_missing(self, event_id) -> MatchResult:
        """Correlate and persist a video for the event unless one is already attached.

        Raises:
            EventNotFoundError: no event has this id.
        """
        return self.matcher.match(self.store.get(event_id))

    def backfill_video_paths(self) -> dict:
        """Try to attach videos to every event that does not have one yet."""
        counts = {"checked": 0, "attached": 0, "notFound": 0, "skipped": 0}
        for event in self.store.load():
            if event.video_path:
                counts["skipped"] += 1
                continue
            counts["checked"] += 1
            try:
                result = self.matcher.match(event)
            except EventNotFoundError:
                logger.debug(f"Event {event.id} removed during backfill")
                counts["skipped"] += 1
                continue
            if result.found:
                counts["attached"] += 1
            else:
                counts["notFound"] += 1
        logger.info(
            f"Video path backfill: {counts['attached']} attached, {counts['notFound']} without match, "
            f"{counts['skipped']} already set"
        )
        return counts

    def _near_upload(self, event: Event, video_time: datetime | None) -> bool:
        if video_time is None:
            return True
        window = timedelta(milliseconds=max(self.matcher.tolerance_ms, self.matcher.fallback_tolerance_ms))
        return any(abs(video_time - anchor) <= window for anchor in event_anchors(event))

    def handle_video_upload(self, video_path: str, camera: str, timestamp: str | None = None) -> dict:
        """
        React to an uploader's "clip stored" notice.

        Publishes a video-uploaded notification, then tries to attach a video to
        every event of that camera still lacking one. When the clip name carries a
        timestamp only events whose anchors fall within the matching window of it
        are tried. Returns {"checked", "attached": [event ids]}.
        """
        self._publish({
            "type": "video-uploaded",
            "videoPath": video_path,
            "camera": camera,
            "timestamp": timestamp or self._clock().isoformat(timespec="seconds"),
        })
        video_time = extract_timestamp(video_path, KIND_VIDEO)
        pending = [
            e for e in self.store.load()
            if e.camera == camera and not e.video_path and self._near_upload(e, video_time)
        ]
        attached = []
        for event in pending:
            try:
                result = self.matcher.match(event)
            except EventNotFoundError:
                logger.debug(f"Event {event.id} removed before upload attach")
                continue
            if result.status == MATCH_STATUS_MATCHED:
                attached.append(event.id)
        logger.info(f"Upload {video_path} ({camera}): {len(attached)} of {len(pending)} pending event(s) attached")
        return {"checked": len(pending), "attached": attached}
