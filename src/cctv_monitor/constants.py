"""
Shared constants for event storage, video correlation, and retention.

Centralizes the stored-path prefixes, matching tolerances, and lookback bounds so
the matcher, retention service, and web layer do not duplicate magic numbers.
Config keys with the same names override the defaults at runtime.
"""

# Events file name under STORAGE_PATH when EVENTS_FILE is not configured.
EVENTS_FILENAME: str = "events-data.json"

# Operator settings (tag vocabulary) live next to the events file.
SETTINGS_FILENAME: str = "settings-data.json"
DEFAULT_TAGS: tuple[str, ...] = ("False Alarm", "Intruder", "Known Person", "Animal", "Vehicle", "Other")
MAX_TAG_LENGTH: int = 64

# Directory-structure diagnostics list at most this many sample video names per day.
DIRECTORY_SAMPLE_FILES: int = 5

# Stored media paths are URL-style and resolve under MEDIA_ROOT:
# /images/<file> for snapshots, /videos/YYYY/MM/DD/<file> for clips.
IMAGES_DIRNAME: str = "images"
VIDEOS_DIRNAME: str = "videos"

DEFAULT_VIDEO_EXTENSION: str = ".mp4"

# Video filenames are <camera>_<anything>_<YYYYMMDDHHMMSS>.<ext>; the camera
# prefix ends at this separator.
CAMERA_PREFIX_SEPARATOR: str = "_"

# Max |video - anchor| accepted for the day-scoped search and for the unscoped
# fallback search (used only when the exact day has no candidates).
DEFAULT_MATCH_TOLERANCE_MS: int = 120_000
DEFAULT_FALLBACK_TOLERANCE_MS: int = 120_000

# Unscoped video listing only walks day directories this many days back.
DEFAULT_VIDEO_LOOKBACK_DAYS: int = 7

DEFAULT_RETENTION_DAYS: int = 7
DEFAULT_RETENTION_SCHEDULE_TIME: str = "03:00"

# Acknowledgements slower than this are flagged isLateResponse.
DEFAULT_LATE_RESPONSE_THRESHOLD_MINUTES: int = 2

# Error buffer for the status endpoint: max number of recent ERROR/WARNING entries.
ERROR_BUFFER_MAX_SIZE: int = 10

# Broadcaster: per-subscriber queue bound; slow subscribers drop the oldest message.
SUBSCRIBER_QUEUE_SIZE: int = 100

# Match statuses returned by the matcher.
MATCH_STATUS_MATCHED: str = "matched"
MATCH_STATUS_ALREADY_ATTACHED: str = "already_attached"
MATCH_STATUS_NOT_FOUND: str = "not_found"
MATCH_STATUS_INSUFFICIENT_DATA: str = "insufficient_data"
