"""Media path resolution, date-bucketed video listing, and safe deletes.

All stored media paths (/images/..., /videos/YYYY/MM/DD/...) resolve against a
single MEDIA_ROOT. Both the matcher and the retention service go through this
module, so there is exactly one layout convention and no path guessing.
"""

import logging
import os
from collections.abc import Callable
from datetime import date, datetime, timedelta

from cctv_monitor.constants import (
    CAMERA_PREFIX_SEPARATOR,
    DEFAULT_VIDEO_EXTENSION,
    DEFAULT_VIDEO_LOOKBACK_DAYS,
    DIRECTORY_SAMPLE_FILES,
    VIDEOS_DIRNAME,
)

logger = logging.getLogger('cctv-monitor')

# Outcomes of delete_file
DELETED = "deleted"
MISSING = "missing"


def resolve_under_root(root: str, *path_parts: str) -> str | None:
    """
    Resolve a path under root and return it if safe, else None.

    Returns None if the path would escape root (traversal) or equals root.
    Does not require the resolved path to exist.
    """
    if not root or not path_parts:
        return None
    base = os.path.realpath(root)
    candidate = os.path.realpath(os.path.join(base, *path_parts))
    if os.path.commonpath([base, candidate]) != base or candidate == base:
        return None
    return candidate


def day_key(d: date) -> str:
    """YYYYMMDD key for a calendar day."""
    return d.strftime("%Y%m%d")


def _parse_day(day) -> date | None:
    if isinstance(day, datetime):
        return day.date()
    if isinstance(day, date):
        return day
    if isinstance(day, str) and len(day) == 8 and day.isdigit():
        try:
            return datetime.strptime(day, "%Y%m%d").date()
        except ValueError:
            return None
    return None


def _sorted_listing(path: str) -> list[str]:
    """Sorted entry names under path; [] if path is missing or unreadable."""
    try:
        return sorted(os.listdir(path))
    except FileNotFoundError:
        return []
    except OSError as e:
        logger.warning(f"Error reading directory {path}: {e}")
        return []


class MediaPaths:
    """Resolves stored media paths and lists candidate videos under MEDIA_ROOT/videos."""

    def __init__(self, media_root: str,
                 video_extension: str = DEFAULT_VIDEO_EXTENSION,
                 lookback_days: int = DEFAULT_VIDEO_LOOKBACK_DAYS,
                 clock: Callable[[], datetime] = datetime.now):
        self.media_root = media_root
        self.videos_root = os.path.join(media_root, VIDEOS_DIRNAME)
        ext = video_extension.lower()
        self.video_extension = ext if ext.startswith('.') else f".{ext}"
        self.lookback_days = lookback_days
        self._clock = clock
        logger.debug(f"MediaPaths initialized: {media_root} (videos: {self.videos_root})")

    def resolve(self, stored_path: str | None) -> str | None:
        """Absolute filesystem path for a stored /images/... or /videos/... path.

        Returns None when the path is empty or escapes the media root.
        """
        if not stored_path:
            return None
        relative = stored_path.replace('\\', '/').lstrip('/')
        if not relative:
            return None
        return resolve_under_root(self.media_root, *relative.split('/'))

    @staticmethod
    def stored_video_path(relative_path: str) -> str:
        """Stored form of a path relative to the videos root: /videos/YYYY/MM/DD/<file>."""
        return f"/{VIDEOS_DIRNAME}/{relative_path.lstrip('/')}"

    def _is_video(self, filename: str) -> bool:
        return filename.lower().endswith(self.video_extension)

    @staticmethod
    def _matches_camera(filename: str, camera_prefix: str) -> bool:
        return filename.startswith(camera_prefix + CAMERA_PREFIX_SEPARATOR)

    def _list_day_dir(self, year: str, month: str, day: str,
                      camera_prefix: str | None) -> list[str]:
        day_path = os.path.join(self.videos_root, year, month, day)
        out = []
        for name in _sorted_listing(day_path):
            if not self._is_video(name):
                continue
            if camera_prefix and not self._matches_camera(name, camera_prefix):
                continue
            if not os.path.isfile(os.path.join(day_path, name)):
                continue
            out.append(f"{year}/{month}/{day}/{name}")
        return out

    def list_candidates(self, camera_prefix: str | None = None, day=None) -> list[str]:
        """
        List video files as paths relative to the videos root (YYYY/MM/DD/<file>).

        With day (YYYYMMDD string or date) only that day's directory is read; a
        missing directory yields []. Without day every YYYY/MM/DD directory no more
        than lookback_days before today is read; malformed directory names are
        skipped. Listings are sorted so enumeration order is reproducible.
        """
        if day is not None:
            d = _parse_day(day)
            if d is None:
                logger.debug(f"Ignoring malformed day filter: {day!r}")
                return []
            return self._list_day_dir(f"{d.year:04d}", f"{d.month:02d}", f"{d.day:02d}", camera_prefix)

        today = self._clock().date()
        results: list[str] = []
        for year in _sorted_listing(self.videos_root):
            if len(year) != 4 or not year.isdigit():
                continue
            year_path = os.path.join(self.videos_root, year)
            for month in _sorted_listing(year_path):
                if len(month) != 2 or not month.isdigit():
                    continue
                month_path = os.path.join(year_path, month)
                for day_name in _sorted_listing(month_path):
                    if len(day_name) != 2 or not day_name.isdigit():
                        continue
                    dir_date = _parse_day(f"{year}{month}{day_name}")
                    if dir_date is None:
                        logger.debug(f"Skipping malformed video folder: {year}/{month}/{day_name}")
                        continue
                    if (today - dir_date).days > self.lookback_days:
                        continue
                    results.extend(self._list_day_dir(year, month, day_name, camera_prefix))
        return results

    @staticmethod
    def neighbour_days(anchor: datetime) -> list[date]:
        """The anchor's day, the day before, and the day after (midnight straddling)."""
        d = anchor.date()
        return [d, d - timedelta(days=1), d + timedelta(days=1)]

    def delete_file(self, stored_path: str) -> str:
        """Delete the file behind a stored media path.

        Returns DELETED, or MISSING when the file is already gone. Raises ValueError
        for paths outside the media root and OSError for any other failure.
        """
        target = self.resolve(stored_path)
        if target is None:
            raise ValueError(f"Refusing to delete path outside media root: {stored_path}")
        try:
            os.unlink(target)
        except FileNotFoundError:
            logger.debug(f"Media already gone: {target}")
            return MISSING
        logger.info(f"Deleted media file: {target}")
        return DELETED

    def _day_summary(self, day_path: str) -> dict:
        names = _sorted_listing(day_path)
        videos = [n for n in names if self._is_video(n)]
        cameras = sorted({n.split(CAMERA_PREFIX_SEPARATOR, 1)[0] for n in videos
                          if CAMERA_PREFIX_SEPARATOR in n})
        summary = {"fileCount": len(names), "videoCount": len(videos), "cameras": cameras}
        if videos:
            summary["sampleFiles"] = videos[:DIRECTORY_SAMPLE_FILES]
        return summary

    def describe_tree(self) -> dict | None:
        """
        Summarize the videos/YYYY/MM/DD tree for diagnostics.

        Returns {"base", "years": {YYYY: {MM: {DD: day summary}}}, "stats"}, or None
        when the videos root does not exist. Unlike list_candidates this is not
        bounded by the lookback window.
        """
        if not os.path.isdir(self.videos_root):
            return None
        years: dict = {}
        total_days = 0
        total_videos = 0
        for year in _sorted_listing(self.videos_root):
            year_path = os.path.join(self.videos_root, year)
            if len(year) != 4 or not year.isdigit() or not os.path.isdir(year_path):
                continue
            years[year] = {}
            for month in _sorted_listing(year_path):
                month_path = os.path.join(year_path, month)
                if len(month) != 2 or not month.isdigit() or not os.path.isdir(month_path):
                    continue
                years[year][month] = {}
                for day_name in _sorted_listing(month_path):
                    day_path = os.path.join(month_path, day_name)
                    if len(day_name) != 2 or not day_name.isdigit() or not os.path.isdir(day_path):
                        continue
                    summary = self._day_summary(day_path)
                    years[year][month][day_name] = summary
                    total_days += 1
                    total_videos += summary["videoCount"]
        return {
            "base": self.videos_root,
            "years": years,
            "stats": {"yearCount": len(years), "totalDays": total_days, "totalVideos": total_videos},
        }
