"""
Podcast Alarm

Wake Sonos speakers at alarm time with the newest unplayed podcast episodes.
"""

__version__ = "1.0.0"
__author__ = "Podcast Alarm"

from .config import AlarmConfig, AlarmServiceConfig, Timings
from .errors import (
    AlarmError, NoContentError, NoSpeakersAvailableError, NoSpeakersConfiguredError,
    PlaybackStartError
)
from .models import PlaybackSession, State
from .service import AlarmService

__all__ = [
    "AlarmConfig",
    "AlarmServiceConfig",
    "Timings",
    "AlarmError",
    "NoContentError",
    "NoSpeakersAvailableError",
    "NoSpeakersConfiguredError",
    "PlaybackStartError",
    "PlaybackSession",
    "State",
    "AlarmService",
]
