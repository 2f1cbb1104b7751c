"""
Monitor Orchestrator - Main coordinator for the CCTV event monitor.

Wires the event store, media paths, matcher, retention service, and broadcaster
from configuration, owns the daily retention schedule, and builds the web app.
"""

import logging
import os
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from datetime import datetime

import schedule

from cctv_monitor.constants import IMAGES_DIRNAME, SETTINGS_FILENAME, VIDEOS_DIRNAME
from cctv_monitor.exceptions import MonitorError, OperationTimeoutError
from cctv_monitor.managers.media import MediaPaths
from cctv_monitor.managers.settings import SettingsStore
from cctv_monitor.managers.store import EventStore
from cctv_monitor.models import MatchResult, SweepStats
from cctv_monitor.services.broadcaster import EventBroadcaster
from cctv_monitor.services.events import EventService
from cctv_monitor.services.matcher import VideoMatcher
from cctv_monitor.services.retention import SWEEP_OPERATION, RetentionService

logger = logging.getLogger("cctv-monitor")


class MonitorOrchestrator:
    """Main orchestrator coordinating all components."""

    def __init__(self, config: dict, clock: Callable[[], datetime] = datetime.now):
        self.config = config
        self._shutdown = False
        self._clock = clock

        self.media = MediaPaths(
            config["MEDIA_ROOT"],
            video_extension=config.get("VIDEO_EXTENSION", ".mp4"),
            lookback_days=config.get("VIDEO_LOOKBACK_DAYS", 7),
            clock=clock,
        )
        self.store = EventStore(config["EVENTS_FILE"])
        self.settings = SettingsStore(
            config.get("SETTINGS_FILE")
            or os.path.join(os.path.dirname(self.store.file_path), SETTINGS_FILENAME)
        )
        self.broadcaster = EventBroadcaster()
        self.matcher = VideoMatcher(
            self.media,
            self.store,
            tolerance_ms=config.get("MATCH_TOLERANCE_MS", 120_000),
            fallback_tolerance_ms=config.get("FALLBACK_TOLERANCE_MS", 120_000),
            on_attach=self._on_video_attached,
        )
        self.retention_service = RetentionService(
            self.store,
            self.media,
            self.matcher,
            retention_days=config.get("RETENTION_DAYS", 7),
            clock=clock,
            on_delete=self._on_events_deleted,
        )
        self.event_service = EventService(
            self.store,
            self.matcher,
            broadcaster=self.broadcaster,
            late_threshold_minutes=config.get("LATE_RESPONSE_THRESHOLD_MINUTES", 2),
            clock=clock,
        )

        self._scheduler = schedule.Scheduler()
        self._scheduler_thread = None
        self._sweep_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="retention")

        # Flask app (lazy import to avoid circular deps)
        from cctv_monitor.web.server import create_app

        self.flask_app = create_app(self)

    def _on_video_attached(self, event, result: MatchResult) -> None:
        self.broadcaster.publish({
            "type": "video-attached",
            "eventId": event.id,
            "videoPath": result.video_path,
            "deltaMs": result.delta_ms,
        })

    def _on_events_deleted(self, event_ids: list) -> None:
        self.broadcaster.publish({"type": "events-deleted", "eventIds": list(event_ids)})

    @property
    def retention_days(self) -> int:
        return self.retention_service.retention_days

    @retention_days.setter
    def retention_days(self, value: int) -> None:
        self.retention_service.retention_days = int(value)
        self.config["RETENTION_DAYS"] = int(value)
        logger.info(f"Retention period set to {value} days")

    def run_retention_sweep(self, retention_days_override: int | None = None) -> SweepStats:
        """Run one retention sweep, bounded by SWEEP_TIMEOUT_SECONDS when configured.

        Raises:
            OperationTimeoutError: the sweep did not finish within the timeout. The
                pass keeps running in the background and completes on its own.
            StorageError: the events file could not be read.
        """
        timeout = float(self.config.get("SWEEP_TIMEOUT_SECONDS") or 0)
        if timeout <= 0:
            return self.retention_service.sweep(retention_days_override)
        future = self._sweep_executor.submit(self.retention_service.sweep, retention_days_override)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            logger.error(f"Retention sweep exceeded {timeout}s", extra={"operation": SWEEP_OPERATION})
            raise OperationTimeoutError("retention sweep", timeout) from None

    def _scheduled_sweep(self):
        """Daily retention job."""
        logger.info("Running scheduled event cleanup...")
        try:
            stats = self.run_retention_sweep()
            logger.info(f"Scheduled cleanup completed: {stats.to_dict()}")
        except MonitorError as e:
            logger.error(f"Error during scheduled cleanup: {e}", extra={"operation": SWEEP_OPERATION})

    def _run_scheduler(self):
        """Background thread for scheduled tasks."""
        sweep_time = self.config.get("RETENTION_SCHEDULE_TIME", "03:00")
        self._scheduler.every().day.at(sweep_time).do(self._scheduled_sweep)
        logger.info(f"Scheduled event cleanup job initialized (runs daily at {sweep_time})")

        while not self._shutdown:
            self._scheduler.run_pending()
            time.sleep(30)

    def _prepare_storage(self):
        os.makedirs(os.path.join(self.media.media_root, IMAGES_DIRNAME), exist_ok=True)
        os.makedirs(os.path.join(self.media.media_root, VIDEOS_DIRNAME), exist_ok=True)
        try:
            self.store.normalize()
        except MonitorError as e:
            logger.error(f"Could not normalize events data: {e}")

    def start_services(self):
        """Prepare storage and start the scheduler thread (web server is run by Gunicorn)."""
        logger.info("=" * 60)
        logger.info("Starting CCTV Event Monitor")
        logger.info("=" * 60)
        logger.info(f"Events File: {self.store.file_path}")
        logger.info(f"Media Root: {self.media.media_root}")
        logger.info(f"Retention: {self.retention_days} days")
        logger.info(
            f"Match tolerance: {self.matcher.tolerance_ms}ms "
            f"(fallback {self.matcher.fallback_tolerance_ms}ms, lookback {self.media.lookback_days} days)"
        )
        logger.info("=" * 60)

        self._prepare_storage()

        self._scheduler_thread = threading.Thread(target=self._run_scheduler, daemon=True)
        self._scheduler_thread.start()

        if self.config.get("RETENTION_RUN_ON_START"):
            threading.Thread(target=self._scheduled_sweep, daemon=True).start()

    def stop(self):
        """Graceful shutdown."""
        logger.info("Shutting down orchestrator...")
        self._shutdown = True
        self._scheduler.clear()
        self._sweep_executor.shutdown(wait=False)
