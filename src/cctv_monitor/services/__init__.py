"""Service modules."""

from cctv_monitor.services.broadcaster import EventBroadcaster
from cctv_monitor.services.events import EventService
from cctv_monitor.services.matcher import VideoMatcher
from cctv_monitor.services.retention import RetentionService

__all__ = [
    "EventBroadcaster",
    "EventService",
    "VideoMatcher",
    "RetentionService",
]
