"""
Configuration models for the podcast alarm
"""

from pydantic import BaseModel, Field, field_validator
from typing import Dict, Optional, Tuple
import os
import re
import logging
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()

# Use BASE_DIR for all file paths
BASE_DIR = os.getenv("BASE_DIR", "/data/podcast-alarm")
DATA_DIR = os.path.join(BASE_DIR, "data")

TIME_PATTERN = re.compile(r"^([01][0-9]|2[0-3]):([0-5][0-9])$")

# Index matches datetime.weekday(): Monday=0, Sunday=6
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class AlarmConfig(BaseModel):
    """Persisted alarm settings (one per installation)"""
    time: str = Field(default="07:00", description="Wake time as HH:MM, 24h clock")
    enabled: bool = Field(default=False, description="Whether the alarm fires at all")
    monday: bool = Field(default=True)
    tuesday: bool = Field(default=True)
    wednesday: bool = Field(default=True)
    thursday: bool = Field(default=True)
    friday: bool = Field(default=True)
    saturday: bool = Field(default=False)
    sunday: bool = Field(default=False)
    volume: int = Field(default=30, ge=0, le=100, description="Speaker volume 0-100")
    content_source: Optional[str] = Field(default=None, description="Content source selector")

    @field_validator("time")
    @classmethod
    def _validate_time(cls, value: str) -> str:
        value = value.strip()
        if not TIME_PATTERN.match(value):
            raise ValueError("Invalid time format. Use HH:MM")
        return value

    @property
    def hour_minute(self) -> Tuple[int, int]:
        hour, minute = self.time.split(":")
        return int(hour), int(minute)

    def is_scheduled_on(self, weekday: int) -> bool:
        """Whether the alarm is set for the given weekday (Monday=0)"""
        return bool(getattr(self, WEEKDAYS[weekday]))

    def scheduled_days(self) -> Dict[str, bool]:
        return {day: bool(getattr(self, day)) for day in WEEKDAYS}


class Timings(BaseModel):
    """Timing configuration for alarm orchestration"""
    discovery_window_s: float = Field(default=5.0, ge=0, le=60.0, description="How long to listen for speaker advertisements")
    feed_timeout_s: float = Field(default=30.0, ge=1.0, le=120.0, description="Per-feed HTTP timeout")
    playlist_retry_base_s: float = Field(default=1.0, ge=0, le=30.0, description="Base delay for playlist retry backoff")
    playlist_retry_max_s: float = Field(default=60.0, ge=0, le=600.0, description="Upper bound for a single retry delay")
    stop_settle_s: float = Field(default=0.5, ge=0, le=5.0, description="Pause after stopping current audio")
    queue_settle_s: float = Field(default=1.0, ge=0, le=5.0, description="Pause after loading the queue")
    transport_settle_s: float = Field(default=0.5, ge=0, le=5.0, description="Pause after pointing the transport at the queue")
    playback_confirm_s: float = Field(default=2.0, ge=0, le=30.0, description="Window to confirm playback started")
    confirm_poll_s: float = Field(default=0.2, ge=0.05, le=2.0, description="Sleep between confirmation polls")


class AlarmServiceConfig(BaseModel):
    """Main configuration for the alarm service"""
    data_dir: str = Field(default=DATA_DIR, description="Directory holding the JSON stores")
    timezone: Optional[str] = Field(default=None, description="IANA timezone for the wake time (local time if unset)")
    timings: Timings = Field(default_factory=Timings, description="Timing configuration")
    episodes_to_check: int = Field(default=10, ge=1, le=50, description="Recent episodes scanned per feed")
    retention_days: int = Field(default=30, ge=1, le=365, description="Days a played mark is kept")
    playlist_max_attempts: int = Field(default=3, ge=1, le=10, description="Playlist build attempts per trigger")
    feed_workers: int = Field(default=4, ge=1, le=32, description="Concurrent feed fetches")
    user_agent: str = Field(default="PodcastAlarmClock/1.0", description="User-Agent for feed requests")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format (json|text)")

    @classmethod
    def from_env(cls) -> "AlarmServiceConfig":
        """Create configuration from environment variables"""
        timings = Timings(
            discovery_window_s=float(os.getenv("ALARM_DISCOVERY_WINDOW_S", "5.0")),
            feed_timeout_s=float(os.getenv("ALARM_FEED_TIMEOUT_S", "30.0")),
            playlist_retry_base_s=float(os.getenv("ALARM_RETRY_BASE_S", "1.0")),
            playback_confirm_s=float(os.getenv("ALARM_PLAYBACK_CONFIRM_S", "2.0")),
        )
        return cls(
            data_dir=os.getenv("PODCAST_ALARM_DATA_DIR", DATA_DIR),
            timezone=os.getenv("ALARM_TIMEZONE") or None,
            timings=timings,
            episodes_to_check=int(os.getenv("ALARM_EPISODES_TO_CHECK", "10")),
            retention_days=int(os.getenv("ALARM_RETENTION_DAYS", "30")),
            playlist_max_attempts=int(os.getenv("ALARM_PLAYLIST_ATTEMPTS", "3")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )
