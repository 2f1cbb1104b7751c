"""Tests for EventService: ingest, acknowledge, lock toggle, video attach, and backfill."""

import os
import shutil
import tempfile
import unittest
from datetime import datetime

from cctv_monitor.constants import MATCH_STATUS_ALREADY_ATTACHED, MATCH_STATUS_MATCHED
from cctv_monitor.exceptions import EventNotFoundError
from cctv_monitor.managers.media import MediaPaths
from cctv_monitor.managers.store import EventStore
from cctv_monitor.services.broadcaster import EventBroadcaster
from cctv_monitor.services.events import EventService
from cctv_monitor.services.matcher import VideoMatcher


def _touch(root: str, rel: str) -> None:
    path = os.path.join(root, *rel.split("/"))
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(b"x")


def _candidate(message_id="msg-1", **overrides) -> dict:
    data = {
        "messageId": message_id,
        "date": "2025-04-24T15:34:18",
        "camera": "POD1",
        "imagePath": "/images/1745505272552_01_20250424153418000.jpg",
        "subject": "Alarm POD1",
    }
    data.update(overrides)
    return data


class TestEventService(unittest.TestCase):

    def setUp(self):
        self.root = tempfile.mkdtemp()
        self.addCleanup(lambda: shutil.rmtree(self.root, ignore_errors=True))
        self.now = datetime(2025, 4, 24, 15, 37, 30)
        clock = lambda: self.now  # noqa: E731
        self.media = MediaPaths(self.root, clock=clock)
        self.store = EventStore(os.path.join(self.root, "events-data.json"))
        self.matcher = VideoMatcher(self.media, self.store)
        self.broadcaster = EventBroadcaster()
        self.updates = self.broadcaster.subscribe()
        self.service = EventService(self.store, self.matcher, broadcaster=self.broadcaster, clock=clock)

    def _drain(self) -> list[dict]:
        out = []
        while not self.updates.empty():
            out.append(self.updates.get_nowait())
        return out

    def test_create_event_starts_clean(self):
        created = self.service.create_event(_candidate(
            acknowledged=True, locked=True, videoPath="/videos/x.mp4"))
        self.assertFalse(created.acknowledged)
        self.assertFalse(created.locked)
        self.assertIsNone(created.video_path)
        self.assertEqual(created.extra["subject"], "Alarm POD1")

        published = self._drain()
        self.assertEqual(len(published), 1)
        self.assertEqual(published[0]["type"], "new-events")
        self.assertEqual(published[0]["events"][0]["messageId"], "msg-1")

    def test_create_duplicate_publishes_nothing(self):
        self.service.create_event(_candidate())
        self._drain()
        self.assertIsNone(self.service.create_event(_candidate()))
        self.assertEqual(self._drain(), [])

    def test_acknowledge_records_response_time(self):
        created = self.service.create_event(_candidate())
        event = self.service.acknowledge(created.id, note="checked", tags=["false-alarm"],
                                         user={"name": "operator"})
        self.assertTrue(event.acknowledged)
        self.assertEqual(event.response_time_minutes, 3)
        self.assertTrue(event.is_late_response)
        self.assertEqual(event.acknowledged_at, "2025-04-24T15:37:30.000")
        self.assertEqual(event.acknowledged_by, {"name": "operator"})
        self.assertEqual(event.note, "checked")
        self.assertEqual(event.tags, ["false-alarm"])

        stored = self.store.get(created.id)
        self.assertEqual(stored.response_time_minutes, 3)

    def test_acknowledge_within_threshold_is_not_late(self):
        created = self.service.create_event(_candidate())
        self.now = datetime(2025, 4, 24, 15, 36, 18)
        event = self.service.acknowledge(created.id)
        self.assertEqual(event.response_time_minutes, 2)
        self.assertFalse(event.is_late_response)

    def test_acknowledge_is_written_once(self):
        created = self.service.create_event(_candidate())
        self.service.acknowledge(created.id, tags=["intruder"])
        self.now = datetime(2025, 4, 24, 18, 0, 0)

        event = self.service.acknowledge(created.id, note="follow-up", tags=[], locked=True)

        self.assertEqual(event.response_time_minutes, 3)
        self.assertEqual(event.acknowledged_at, "2025-04-24T15:37:30.000")
        self.assertEqual(event.note, "follow-up")
        self.assertEqual(event.tags, ["intruder"])
        self.assertTrue(event.locked)

    def test_acknowledge_unknown_event(self):
        with self.assertRaises(EventNotFoundError):
            self.service.acknowledge(999)

    def test_toggle_lock(self):
        created = self.service.create_event(_candidate())
        self._drain()
        self.assertTrue(self.service.toggle_lock(created.id, True).locked)
        self.assertTrue(self.store.get(created.id).locked)
        self.assertFalse(self.service.toggle_lock(created.id, False).locked)
        published = self._drain()
        self.assertEqual([p["type"] for p in published], ["event-updated", "event-updated"])

    def test_toggle_lock_unknown_event(self):
        with self.assertRaises(EventNotFoundError):
            self.service.toggle_lock(5, True)

    def test_attach_video_if_missing(self):
        _touch(self.root, "videos/2025/04/24/POD1_00_20250424153423.mp4")
        created = self.service.create_event(_candidate())

        first = self.service.attach_video_if_missing(created.id)
        self.assertEqual(first.status, MATCH_STATUS_MATCHED)
        self.assertEqual(first.delta_ms, 5000)

        second = self.service.attach_video_if_missing(created.id)
        self.assertEqual(second.status, MATCH_STATUS_ALREADY_ATTACHED)
        self.assertEqual(second.video_path, first.video_path)

    def test_attach_video_unknown_event(self):
        with self.assertRaises(EventNotFoundError):
            self.service.attach_video_if_missing(1)

    def test_backfill_video_paths(self):
        _touch(self.root, "videos/2025/04/24/POD1_00_20250424153423.mp4")
        self.service.create_event(_candidate("a"))
        self.service.create_event(_candidate("b", camera="POD2"))
        self.service.create_event(_candidate("c", imagePath=None))

        counts = self.service.backfill_video_paths()
        self.assertEqual(counts, {"checked": 3, "attached": 1, "notFound": 2, "skipped": 0})

        again = self.service.backfill_video_paths()
        self.assertEqual(again["skipped"], 1)
        self.assertEqual(again["attached"], 0)

    def test_create_event_discards_intake_id(self):
        first = self.service.create_event(_candidate("a", id=5))
        second = self.service.create_event(_candidate("b", id="abc"))
        self.assertIsInstance(first.id, int)
        self.assertNotEqual(first.id, 5)
        self.assertIsInstance(second.id, int)
        self.assertGreater(second.id, first.id)
        self.assertEqual(self.service.get_event(second.id).message_id, "b")
        with self.assertRaises(EventNotFoundError):
            self.service.get_event("abc")

    def test_video_upload_attaches_pending_events_of_that_camera(self):
        near = self.service.create_event(_candidate("near"))
        other_camera = self.service.create_event(_candidate("other", camera="POD2"))
        earlier = self.service.create_event(_candidate(
            "earlier", date="2025-04-24T08:00:00",
            imagePath="/images/1745478000000_01_20250424080000000.jpg"))
        self._drain()
        _touch(self.root, "videos/2025/04/24/POD1_00_20250424153423.mp4")

        result = self.service.handle_video_upload(
            "/videos/2025/04/24/POD1_00_20250424153423.mp4", "POD1")

        self.assertEqual(result, {"checked": 1, "attached": [near.id]})
        self.assertEqual(self.store.get(near.id).video_path,
                         "/videos/2025/04/24/POD1_00_20250424153423.mp4")
        self.assertIsNone(self.store.get(other_camera.id).video_path)
        self.assertIsNone(self.store.get(earlier.id).video_path)

        published = self._drain()
        self.assertEqual(published[0], {
            "type": "video-uploaded",
            "videoPath": "/videos/2025/04/24/POD1_00_20250424153423.mp4",
            "camera": "POD1",
            "timestamp": "2025-04-24T15:37:30",
        })

    def test_video_upload_without_timestamp_tries_every_pending_event(self):
        self.service.create_event(_candidate("a"))
        self.service.create_event(_candidate("b", date="2025-04-24T08:00:00",
                                             imagePath="/images/1745478000000_01_20250424080000000.jpg"))
        result = self.service.handle_video_upload("/videos/upload.mp4", "POD1", timestamp="2025-04-24T15:40:00Z")
        self.assertEqual(result, {"checked": 2, "attached": []})
        self.assertEqual(self._drain()[0]["timestamp"], "2025-04-24T15:40:00Z")

    def test_video_upload_skips_events_with_video(self):
        created = self.service.create_event(_candidate())
        self.store.update(created.id, lambda e: setattr(e, "video_path", "/videos/x.mp4"))
        result = self.service.handle_video_upload(
            "/videos/2025/04/24/POD1_00_20250424153423.mp4", "POD1")
        self.assertEqual(result, {"checked": 0, "attached": []})
        self.assertEqual(self.store.get(created.id).video_path, "/videos/x.mp4")

    def test_list_and_get(self):
        created = self.service.create_event(_candidate())
        self.assertEqual([e.id for e in self.service.list_events()], [created.id])
        self.assertEqual(self.service.get_event(created.id).message_id, "msg-1")


if __name__ == '__main__':
    unittest.main()
