"""Timestamp extraction from snapshot and video filenames.

Snapshots are named <id>_<n>_<YYYYMMDDHHMMSS>[mmm].jpg by the mail intake
(e.g. 1745505272552_01_20250424153418000.jpg). Videos carry a bare 14-digit run
(e.g. POD1_00_20250424153423.mp4). Both are parsed positionally into a naive
local datetime; there is no timezone conversion anywhere.
"""

import os
import re
from datetime import datetime

KIND_IMAGE = "image"
KIND_VIDEO = "video"

_IMAGE_PATTERN = re.compile(r"\d+_\d+_(\d{14})")
_VIDEO_PATTERN = re.compile(r"(?<!\d)(\d{14})(?!\d)")


def parse_compact_timestamp(digits: str) -> datetime | None:
    """Build a datetime from YYYYMMDDHHMMSS. Returns None for impossible dates."""
    if len(digits) != 14 or not digits.isdigit():
        return None
    try:
        return datetime(
            int(digits[0:4]),
            int(digits[4:6]),
            int(digits[6:8]),
            int(digits[8:10]),
            int(digits[10:12]),
            int(digits[12:14]),
        )
    except ValueError:
        return None


def extract_timestamp(filename: str | None, kind: str) -> datetime | None:
    """
    Extract the embedded timestamp from an image or video filename.

    Only the basename is inspected, so stored paths such as /images/x.jpg are
    accepted. Returns None when the filename does not follow the convention for
    its kind; callers treat that as "cannot determine timestamp".
    """
    if not filename:
        return None
    name = os.path.basename(filename)
    if kind == KIND_IMAGE:
        match = _IMAGE_PATTERN.search(name)
    elif kind == KIND_VIDEO:
        match = _VIDEO_PATTERN.search(name)
    else:
        raise ValueError(f"Unknown timestamp kind: {kind}")
    if not match:
        return None
    return parse_compact_timestamp(match.group(1))


def parse_event_date(value) -> datetime | None:
    """Parse an event's stored ISO date into a naive local datetime.

    Aware values (e.g. the trailing Z written by older intakes) are converted to
    local time so they compare against the naive filename timestamps.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt
