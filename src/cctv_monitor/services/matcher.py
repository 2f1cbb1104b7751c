"""Correlate alarm snapshots with independently uploaded video clips.

The snapshot and the clip share no identifier; the only link is time. The image
filename timestamp (and the event's logged date, when it differs) are compared
against the timestamps embedded in video filenames of the same camera, over the
event's day and both neighbouring days. The globally closest video within the
tolerance wins; equal deltas keep the first candidate in enumeration order.
"""

import logging
from datetime import datetime, timedelta

from cctv_monitor.constants import (
    DEFAULT_FALLBACK_TOLERANCE_MS,
    DEFAULT_MATCH_TOLERANCE_MS,
    MATCH_STATUS_ALREADY_ATTACHED,
    MATCH_STATUS_INSUFFICIENT_DATA,
    MATCH_STATUS_MATCHED,
    MATCH_STATUS_NOT_FOUND,
)
from cctv_monitor.managers.media import MediaPaths, day_key
from cctv_monitor.managers.store import EventStore
from cctv_monitor.models import CandidateMatch, Event, MatchResult
from cctv_monitor.timestamps import KIND_IMAGE, KIND_VIDEO, extract_timestamp

logger = logging.getLogger('cctv-monitor')


def _delta_ms(a: datetime, b: datetime) -> int:
    return abs(a - b) // timedelta(milliseconds=1)


def event_anchors(event: Event, require_image: bool = True) -> list[datetime]:
    """Comparison anchors: the image-embedded time first, then the logged date if different.

    Returns [] when the event lacks an image timestamp, unless require_image is
    False, in which case the logged date alone is used.
    """
    image_time = extract_timestamp(event.image_path, KIND_IMAGE)
    logged = event.event_datetime
    if image_time is None:
        if require_image or logged is None:
            return []
        return [logged]
    anchors = [image_time]
    if logged is not None and logged != image_time:
        anchors.append(logged)
    return anchors


class VideoMatcher:
    """Finds and attaches the closest video for an event."""

    def __init__(self, media: MediaPaths, store: EventStore | None = None,
                 tolerance_ms: int = DEFAULT_MATCH_TOLERANCE_MS,
                 fallback_tolerance_ms: int = DEFAULT_FALLBACK_TOLERANCE_MS,
                 on_attach=None):
        self.media = media
        self.store = store
        self.tolerance_ms = tolerance_ms
        self.fallback_tolerance_ms = fallback_tolerance_ms
        self._on_attach = on_attach

    def _candidate_days(self, anchors: list[datetime]) -> list[str]:
        days: list[str] = []
        for anchor in anchors:
            for d in self.media.neighbour_days(anchor):
                key = day_key(d)
                if key not in days:
                    days.append(key)
        return days

    def _evaluate(self, paths: list[str], anchors: list[datetime],
                  tolerance_ms: int | None, seen: set[str],
                  out: list[tuple[CandidateMatch, int]]) -> None:
        for rel in paths:
            if rel in seen:
                continue
            seen.add(rel)
            video_time = extract_timestamp(rel, KIND_VIDEO)
            if video_time is None:
                logger.debug(f"No timestamp found in video filename: {rel}")
                continue
            delta = min(_delta_ms(video_time, a) for a in anchors)
            out.append((CandidateMatch(rel, video_time, delta), tolerance_ms))

    def evaluate_candidates(self, event: Event,
                            require_image: bool = True) -> list[tuple[CandidateMatch, int]]:
        """
        Every candidate video for the event with its delta and the tolerance it is
        judged against, in enumeration order.

        Day-scoped listing covers the anchors' days and their neighbours. When the
        exact anchor day has no videos for the camera, the unscoped (lookback-bounded)
        listing is added and judged against the fallback tolerance.
        """
        anchors = event_anchors(event, require_image=require_image)
        if not anchors or not event.camera:
            return []
        days = self._candidate_days(anchors)
        evaluated: list[tuple[CandidateMatch, int]] = []
        seen: set[str] = set()

        exact_day = self.media.list_candidates(event.camera, day=days[0])
        self._evaluate(exact_day, anchors, self.tolerance_ms, seen, evaluated)
        for key in days[1:]:
            self._evaluate(self.media.list_candidates(event.camera, day=key),
                           anchors, self.tolerance_ms, seen, evaluated)

        if not exact_day:
            logger.debug(f"No videos for {event.camera} on {days[0]}, expanding search to all dates")
            self._evaluate(self.media.list_candidates(event.camera),
                           anchors, self.fallback_tolerance_ms, seen, evaluated)
        return evaluated

    def find_best_match(self, event: Event, require_image: bool = True) -> MatchResult:
        """Search for the closest video within tolerance without attaching it.

        With require_image=False an event lacking a usable snapshot is searched by
        its logged date alone (retention uses this to find clips it must delete).
        """
        if not event.camera or (require_image and not event.image_path):
            return MatchResult(MATCH_STATUS_INSUFFICIENT_DATA)
        if not event_anchors(event, require_image=require_image):
            logger.debug(f"No usable timestamp for event {event.id}: image={event.image_path!r} date={event.date!r}")
            return MatchResult(MATCH_STATUS_INSUFFICIENT_DATA)

        best: CandidateMatch | None = None
        for candidate, tolerance in self.evaluate_candidates(event, require_image=require_image):
            if candidate.delta_ms > tolerance:
                continue
            if best is None or candidate.delta_ms < best.delta_ms:
                best = candidate

        if best is None:
            return MatchResult(MATCH_STATUS_NOT_FOUND)
        return MatchResult(
            MATCH_STATUS_MATCHED,
            video_path=self.media.stored_video_path(best.relative_path),
            delta_ms=best.delta_ms,
        )

    def match(self, event: Event) -> MatchResult:
        """
        Attach the best video to the event, at most once.

        An event that already has a videoPath returns it without scanning or
        writing. A new match is persisted through the store; if another writer
        attached a path first, that path is kept and returned.
        """
        if event.video_path:
            return MatchResult(MATCH_STATUS_ALREADY_ATTACHED, video_path=event.video_path)

        result = self.find_best_match(event)
        if result.status != MATCH_STATUS_MATCHED:
            logger.debug(f"No matching video for event {event.id}: {result.status}")
            return result

        if self.store is None or event.id is None:
            event.video_path = result.video_path
            return result

        attached = {}

        def _attach(stored: Event) -> None:
            if stored.video_path:
                attached["existing"] = stored.video_path
                return
            stored.video_path = result.video_path

        stored = self.store.update(event.id, _attach)
        event.video_path = stored.video_path
        if "existing" in attached:
            logger.info(f"Event {event.id} already has video {stored.video_path}, keeping it")
            return MatchResult(MATCH_STATUS_ALREADY_ATTACHED, video_path=stored.video_path)

        logger.info(f"Attached video to event {event.id}: {result.video_path} (time diff: {result.delta_ms}ms)")
        if self._on_attach is not None:
            self._on_attach(stored, result)
        return result
