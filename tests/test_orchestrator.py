"""Tests for MonitorOrchestrator wiring: sweep timeout, scheduled job, storage prep, notifications."""

import json
import os
import shutil
import tempfile
import threading
import unittest
from datetime import datetime
from unittest.mock import patch

from cctv_monitor.exceptions import OperationTimeoutError, StorageError
from cctv_monitor.models import SweepStats
from cctv_monitor.orchestrator import MonitorOrchestrator


class TestMonitorOrchestrator(unittest.TestCase):

    def setUp(self):
        self.root = tempfile.mkdtemp()
        self.addCleanup(lambda: shutil.rmtree(self.root, ignore_errors=True))
        self.config = {
            "MEDIA_ROOT": os.path.join(self.root, "public"),
            "EVENTS_FILE": os.path.join(self.root, "storage", "events-data.json"),
            "RETENTION_DAYS": 7,
            "SWEEP_TIMEOUT_SECONDS": 0,
        }

    def _orchestrator(self, **overrides) -> MonitorOrchestrator:
        self.config.update(overrides)
        orch = MonitorOrchestrator(self.config, clock=lambda: datetime(2025, 5, 4, 15, 34, 18))
        self.addCleanup(orch.stop)
        return orch

    def test_sweep_without_timeout_runs_inline(self):
        orch = self._orchestrator()
        stats = orch.run_retention_sweep()
        self.assertIsInstance(stats, SweepStats)

    def test_sweep_timeout_raises(self):
        orch = self._orchestrator(SWEEP_TIMEOUT_SECONDS=0.05)
        release = threading.Event()
        self.addCleanup(release.set)

        def _slow_sweep(days=None):
            release.wait(5)
            return SweepStats()

        with patch.object(orch.retention_service, "sweep", side_effect=_slow_sweep):
            with self.assertRaises(OperationTimeoutError):
                orch.run_retention_sweep()
            release.set()

    def test_sweep_within_timeout_returns_stats(self):
        orch = self._orchestrator(SWEEP_TIMEOUT_SECONDS=5)
        self.assertEqual(orch.run_retention_sweep().processed, 0)

    def test_scheduled_sweep_swallows_storage_error(self):
        orch = self._orchestrator()
        with patch.object(orch.retention_service, "sweep",
                          side_effect=StorageError("events-data.json", "unreadable")):
            orch._scheduled_sweep()

    def test_retention_days_setter_updates_service(self):
        orch = self._orchestrator()
        orch.retention_days = 30
        self.assertEqual(orch.retention_service.retention_days, 30)
        self.assertEqual(orch.config["RETENTION_DAYS"], 30)

    def test_prepare_storage_creates_dirs_and_normalizes(self):
        os.makedirs(os.path.dirname(self.config["EVENTS_FILE"]))
        with open(self.config["EVENTS_FILE"], "w", encoding="utf-8") as f:
            json.dump([{"id": 1, "messageId": "a", "date": "2025-04-24T15:34:18"}], f)
        orch = self._orchestrator()

        orch._prepare_storage()

        self.assertTrue(os.path.isdir(os.path.join(self.config["MEDIA_ROOT"], "images")))
        self.assertTrue(os.path.isdir(os.path.join(self.config["MEDIA_ROOT"], "videos")))
        with open(self.config["EVENTS_FILE"], encoding="utf-8") as f:
            raw = json.load(f)
        self.assertIs(raw[0]["locked"], False)

    def test_sweep_publishes_deleted_ids(self):
        orch = self._orchestrator()
        orch.event_service.create_event({"messageId": "old", "date": "2025-04-01T08:00:00", "camera": "POD1"})
        q = orch.broadcaster.subscribe()
        orch.run_retention_sweep()
        payload = q.get_nowait()
        self.assertEqual(payload["type"], "events-deleted")
        self.assertEqual(len(payload["eventIds"]), 1)

    def test_attach_publishes_video_attached(self):
        orch = self._orchestrator()
        clip = os.path.join(self.config["MEDIA_ROOT"], "videos", "2025", "04", "24",
                            "POD1_00_20250424153423.mp4")
        os.makedirs(os.path.dirname(clip))
        with open(clip, "wb") as f:
            f.write(b"x")
        created = orch.event_service.create_event({
            "messageId": "m", "date": "2025-04-24T15:34:18", "camera": "POD1",
            "imagePath": "/images/1745505272552_01_20250424153418000.jpg",
        })
        q = orch.broadcaster.subscribe()
        orch.event_service.attach_video_if_missing(created.id)
        payload = q.get_nowait()
        self.assertEqual(payload["type"], "video-attached")
        self.assertEqual(payload["eventId"], created.id)
        self.assertEqual(payload["deltaMs"], 5000)


if __name__ == '__main__':
    unittest.main()
