"""
Shared fixtures for podcast alarm unit tests
"""

from datetime import datetime, timezone
from typing import List
from unittest.mock import MagicMock

import pytest

from podcast_alarm.config import AlarmConfig, Timings
from podcast_alarm.discovery import SpeakerDirectory
from podcast_alarm.models import DiscoveredSpeaker, Episode, Feed, TransportState
from podcast_alarm.sonos import SonosSpeaker
from podcast_alarm.stores import JsonFileStore


class StaticDirectory(SpeakerDirectory):
    """Directory whose scan returns a fixed set of speakers"""

    def __init__(self, speakers: List[DiscoveredSpeaker]):
        super().__init__(window_s=0)
        self.found = speakers
        self.scans = 0

    def _scan(self):
        self.scans += 1
        return list(self.found)


class StubFetcher:
    """Fetcher serving canned episodes per feed URL"""

    def __init__(self, episodes_by_url=None, errors_by_url=None):
        self.episodes_by_url = episodes_by_url or {}
        self.errors_by_url = errors_by_url or {}
        self.calls = []

    def latest_episodes(self, feed: Feed, limit: int = 1):
        self.calls.append(feed.url)
        if feed.url in self.errors_by_url:
            raise self.errors_by_url[feed.url]
        return list(self.episodes_by_url.get(feed.url, []))[:limit]


def make_episode(feed: Feed, guid: str, day: int, title: str = None) -> Episode:
    return Episode(
        feed_id=feed.id,
        feed_name=feed.name,
        guid=guid,
        title=title or guid,
        audio_url=f"http://cdn.example.com/{feed.id}/{guid}.mp3",
        published=datetime(2024, 1, day, 6, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def make_speaker():
    def _make(speaker_id: str, name: str = None) -> DiscoveredSpeaker:
        handle = MagicMock(spec=SonosSpeaker)
        handle.current_state.return_value = TransportState.PLAYING
        handle.queue_size.return_value = 0
        handle.queue_reference.return_value = f"x-rincon-queue:{speaker_id}#0"
        return DiscoveredSpeaker(
            id=speaker_id,
            name=name or speaker_id,
            model="One",
            ip=f"10.0.0.{len(speaker_id)}",
            handle=handle,
        )
    return _make


@pytest.fixture
def store(tmp_path) -> JsonFileStore:
    return JsonFileStore(str(tmp_path / "data"))


@pytest.fixture
def fast_timings() -> Timings:
    return Timings(
        discovery_window_s=0,
        playlist_retry_base_s=0,
        stop_settle_s=0,
        queue_settle_s=0,
        transport_settle_s=0,
        playback_confirm_s=0,
    )


@pytest.fixture
def weekday_config() -> AlarmConfig:
    return AlarmConfig(time="07:00", enabled=True, volume=25)


@pytest.fixture
def make_directory():
    return StaticDirectory


@pytest.fixture
def make_fetcher():
    return StubFetcher


@pytest.fixture
def episode():
    return make_episode
