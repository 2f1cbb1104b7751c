"""Retention sweep: delete expired, unlocked events together with their media."""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from cctv_monitor.constants import DEFAULT_RETENTION_DAYS, MATCH_STATUS_MATCHED
from cctv_monitor.exceptions import StorageError
from cctv_monitor.managers.media import DELETED, MediaPaths
from cctv_monitor.managers.store import EventStore
from cctv_monitor.models import Event, SweepStats
from cctv_monitor.services.matcher import VideoMatcher

logger = logging.getLogger('cctv-monitor')

SWEEP_OPERATION = "retention-sweep"


class RetentionService:
    """Age-based cleanup of the event store and the image/video files it references."""

    def __init__(self, store: EventStore, media: MediaPaths, matcher: VideoMatcher,
                 retention_days: int = DEFAULT_RETENTION_DAYS,
                 clock: Callable[[], datetime] = datetime.now,
                 on_delete: Callable[[list], None] | None = None):
        self.store = store
        self.media = media
        self.matcher = matcher
        self.retention_days = retention_days
        self._clock = clock
        self._on_delete = on_delete
        self.last_sweep_time: datetime | None = None
        self.last_sweep_stats: SweepStats | None = None

    def _record_error(self, event: Event, message: str, stats: SweepStats) -> None:
        logger.error(message, extra={"event_id": event.id, "operation": SWEEP_OPERATION})
        stats.errors.append(message)

    def _delete_media(self, event: Event, stored_path: str, kind: str, stats: SweepStats) -> bool:
        """Delete one media file. Missing files are success; other failures go to stats.errors."""
        try:
            return self.media.delete_file(stored_path) == DELETED
        except (OSError, ValueError) as e:
            self._record_error(event, f"Failed to delete {kind} for event {event.id} at {stored_path}: {e}", stats)
            return False

    def _resolve_video(self, event: Event, stats: SweepStats) -> str | None:
        """Stored videoPath, or the matcher's best candidate when none was attached.

        The search falls back to the logged date when the event has no usable
        snapshot, so clips of image-less events are still found.
        """
        if event.video_path:
            return event.video_path
        try:
            result = self.matcher.find_best_match(event, require_image=False)
        except OSError as e:
            self._record_error(event, f"Failed to search videos for event {event.id}: {e}", stats)
            return None
        if result.status == MATCH_STATUS_MATCHED:
            logger.debug(f"Resolved unattached video for event {event.id}: {result.video_path}")
            return result.video_path
        return None

    def _protected_paths(self, kept: list[Event], stats: SweepStats) -> set[str]:
        """Media referenced by surviving events, including clips locked events would resolve to."""
        protected: set[str] = set()
        for event in kept:
            if event.image_path:
                protected.add(event.image_path)
            if event.video_path:
                protected.add(event.video_path)
            elif event.locked:
                resolved = self._resolve_video(event, stats)
                if resolved:
                    protected.add(resolved)
        return protected

    def _purge(self, event: Event, protected: set[str], stats: SweepStats) -> None:
        media = []
        if event.image_path:
            media.append(("image", event.image_path))
        video_path = self._resolve_video(event, stats)
        if video_path:
            media.append(("video", video_path))

        for kind, stored_path in media:
            if stored_path in protected:
                logger.info(
                    f"Keeping {kind} {stored_path} of event {event.id}: still referenced by a kept event",
                    extra={"event_id": event.id, "operation": SWEEP_OPERATION},
                )
                stats.shared_media_kept += 1
                continue
            if self._delete_media(event, stored_path, kind, stats):
                if kind == "image":
                    stats.deleted_images += 1
                else:
                    stats.deleted_videos += 1

    def sweep(self, retention_days: int | None = None) -> SweepStats:
        """
        Delete events older than the retention window unless locked.

        Media still referenced by a kept event is never deleted. Media deletion
        failures are collected in errors and never block removal of the event row
        or processing of the remaining events. The store is rewritten only when at
        least one event was removed.

        Raises:
            StorageError: the events file could not be read.
        """
        days = retention_days if retention_days is not None else self.retention_days
        cutoff = self._clock() - timedelta(days=days)
        stats = SweepStats()
        logger.info(f"Starting cleanup of events older than {days} days (cutoff {cutoff:%Y-%m-%d %H:%M:%S})")

        with self.store.writer():
            events = self.store.load()
            stats.processed = len(events)
            kept: list[Event] = []
            removed: list[Event] = []

            for event in events:
                event_time = event.event_datetime
                if event_time is None:
                    logger.warning(
                        f"Event {event.id} has unparseable date {event.date!r}, keeping it",
                        extra={"event_id": event.id, "operation": SWEEP_OPERATION},
                    )
                    kept.append(event)
                    continue
                if event_time >= cutoff:
                    kept.append(event)
                    continue
                if event.locked:
                    stats.skipped_locked += 1
                    kept.append(event)
                    continue
                removed.append(event)

            if removed:
                protected = self._protected_paths(kept, stats)
                for event in removed:
                    self._purge(event, protected, stats)

            stats.deleted = len(removed)
            saved = False
            if removed:
                try:
                    self.store.save(kept)
                    saved = True
                except StorageError as e:
                    logger.error(f"Failed to save events after cleanup: {e}", extra={"operation": SWEEP_OPERATION})
                    stats.errors.append(f"Failed to save updated events data: {e}")

        self.last_sweep_time = self._clock()
        self.last_sweep_stats = stats
        logger.info(
            f"Cleanup complete. Deleted {stats.deleted} events, {stats.deleted_images} images, "
            f"and {stats.deleted_videos} videos. {stats.skipped_locked} locked events were preserved."
        )
        if saved and self._on_delete is not None:
            self._on_delete([e.id for e in removed])
        return stats
