"""
Data models and enums for the podcast alarm
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import time


class State(Enum):
    """Playback session state"""
    IDLE = "IDLE"
    GROUPING = "GROUPING"
    PLAYING = "PLAYING"
    SOLO_PLAYING = "SOLO_PLAYING"
    FAILED = "FAILED"


class TransportState(Enum):
    """Speaker transport state as reported by the device"""
    PLAYING = "PLAYING"
    TRANSITIONING = "TRANSITIONING"
    PAUSED_PLAYBACK = "PAUSED_PLAYBACK"
    STOPPED = "STOPPED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Optional[str]) -> "TransportState":
        try:
            return cls((value or "").upper())
        except ValueError:
            return cls.UNKNOWN


@dataclass
class Feed:
    """A subscribed podcast feed"""
    id: int
    url: str
    name: str
    created_at: datetime


@dataclass
class PlayedEpisode:
    """Durable mark preventing an episode from being queued again"""
    feed_id: int
    guid: str
    title: str
    audio_url: str
    played_at: datetime


@dataclass
class SelectedSpeaker:
    """A speaker the user picked as alarm-eligible"""
    id: str
    name: str


@dataclass
class AlarmLogEntry:
    """Append-only audit record of one trigger"""
    triggered_at: datetime
    success: bool
    error_message: Optional[str] = None
    episodes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["triggered_at"] = self.triggered_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AlarmLogEntry":
        return cls(
            triggered_at=datetime.fromisoformat(data["triggered_at"]),
            success=bool(data["success"]),
            error_message=data.get("error_message"),
            episodes=list(data.get("episodes") or []),
        )


@dataclass
class TrackMetadata:
    """Display metadata attached to a queued track"""
    title: str = "Untitled"
    artist: str = "Unknown Podcast"
    album_art: Optional[str] = None


@dataclass
class Episode:
    """A normalized podcast episode"""
    feed_id: int
    feed_name: str
    guid: str
    title: str
    audio_url: Optional[str]
    published: Optional[datetime] = None
    image: Optional[str] = None
    duration: Optional[str] = None

    @property
    def description(self) -> str:
        return f"{self.feed_name}: {self.title}"

    @property
    def sort_key(self) -> datetime:
        return self.published or datetime.min.replace(tzinfo=timezone.utc)

    def metadata(self) -> TrackMetadata:
        return TrackMetadata(title=self.title, artist=self.feed_name, album_art=self.image)


@dataclass
class Playlist:
    """Ordered playback queue for one trigger"""
    episodes: List[Episode]

    @property
    def descriptions(self) -> List[str]:
        return [episode.description for episode in self.episodes]

    def __len__(self) -> int:
        return len(self.episodes)


@dataclass
class DiscoveredSpeaker:
    """A speaker seen during the current discovery window"""
    id: str
    name: str
    model: Optional[str]
    ip: str
    handle: Any = field(repr=False, default=None)


@dataclass
class PlaybackSession:
    """In-memory record of the audio an alarm started"""
    coordinator_id: str
    member_ids: List[str]
    state: State = State.PLAYING
    playing: bool = True
    episodes: List[str] = field(default_factory=list)  # descriptions actually queued

    @property
    def is_grouped(self) -> bool:
        return len(self.member_ids) > 1


@dataclass
class AlarmStatus:
    """Computed view combining persisted config and live session"""
    enabled: bool
    time: Optional[str]
    volume: Optional[int]
    speakers: List[SelectedSpeaker]
    next_alarm: Optional[datetime]
    is_playing: bool
    scheduled_days: Optional[Dict[str, bool]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "time": self.time,
            "volume": self.volume,
            "speakers": [asdict(s) for s in self.speakers],
            "next_alarm": self.next_alarm.isoformat() if self.next_alarm else None,
            "is_playing": self.is_playing,
            "scheduled_days": self.scheduled_days,
        }


@dataclass
class TriggerMetrics:
    """Timing metrics for one trigger run"""
    discovered_ms: Optional[int] = None
    playlist_ms: Optional[int] = None
    play_ms: Optional[int] = None
    branch: Optional[str] = None  # e.g. "grouped", "solo", "solo_fallback"
    errors: Optional[list] = None
    total_duration_ms: Optional[int] = None

    def __post_init__(self):
        """Initialize errors list if None"""
        if self.errors is None:
            self.errors = []

    def add_error(self, error: str, phase: str = None):
        """Add an error with optional phase context"""
        error_entry = {"error": error, "phase": phase, "timestamp": time.time()}
        self.errors.append(error_entry)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging"""
        return {
            "discovered_ms": self.discovered_ms,
            "playlist_ms": self.playlist_ms,
            "play_ms": self.play_ms,
            "branch": self.branch,
            "total_duration_ms": self.total_duration_ms,
            "error_count": len(self.errors),
            "errors": self.errors
        }
