"""
Alarm service: the single owned instance callers talk to
"""

import logging
from concurrent.futures import Future
from datetime import datetime
from functools import partial
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from .config import AlarmConfig, AlarmServiceConfig
from .discovery import SpeakerDirectory
from .feeds import EpisodeFetcher
from .models import AlarmLogEntry, AlarmStatus, DiscoveredSpeaker, Feed, SelectedSpeaker
from .orchestrator import SpeakerOrchestrator
from .pipeline import TriggerPipeline
from .playlist import PlaylistBuilder
from .scheduler import AlarmScheduler
from .stores import JsonFileStore

logger = logging.getLogger(__name__)


def _clock_for(tz_name: Optional[str]):
    if not tz_name:
        return datetime.now
    return partial(datetime.now, ZoneInfo(tz_name))


class AlarmService:
    """Wires stores, discovery, playlist, orchestration and scheduling together.

    Every piece of process-wide mutable state (armed job, playback session,
    discovery results) lives inside this instance.
    """

    def __init__(self, cfg: AlarmServiceConfig, store: Optional[JsonFileStore] = None,
                 directory: Optional[SpeakerDirectory] = None,
                 fetcher: Optional[EpisodeFetcher] = None,
                 scheduler=None):
        self.cfg = cfg
        timings = cfg.timings
        self.store = store or JsonFileStore(cfg.data_dir)
        self.fetcher = fetcher or EpisodeFetcher(timeout_s=timings.feed_timeout_s, user_agent=cfg.user_agent)
        self.directory = directory or SpeakerDirectory(window_s=timings.discovery_window_s)
        self.builder = PlaylistBuilder(
            self.store,
            self.fetcher,
            episodes_to_check=cfg.episodes_to_check,
            retention_days=cfg.retention_days,
            max_workers=cfg.feed_workers,
            retry_base_s=timings.playlist_retry_base_s,
            retry_max_s=timings.playlist_retry_max_s,
        )
        self.orchestrator = SpeakerOrchestrator(self.directory, timings)
        self.pipeline = TriggerPipeline(
            self.store,
            self.store,
            self.directory,
            self.builder,
            self.orchestrator,
            playlist_max_attempts=cfg.playlist_max_attempts,
            now=_clock_for(cfg.timezone),
        )
        self.scheduler = AlarmScheduler(self.store, self.pipeline, timezone=cfg.timezone, scheduler=scheduler)
        logger.info(f"Initialized alarm service with data directory {cfg.data_dir}")

    def start(self) -> None:
        """Start the scheduler and arm the alarm from stored config."""
        self.scheduler.start()
        self.scheduler.reschedule()

    def shutdown(self) -> None:
        self.scheduler.shutdown()

    # Caller-facing operations

    def get_status(self) -> AlarmStatus:
        return self.pipeline.status()

    def trigger_test(self) -> Future:
        return self.scheduler.trigger_manually()

    def stop(self) -> bool:
        return self.pipeline.stop()

    def on_config_changed(self) -> bool:
        return self.scheduler.reschedule()

    def update_config(self, **changes: Any) -> AlarmConfig:
        """
        Validate and persist new alarm settings, then re-arm the timer.

        Raises:
            pydantic.ValidationError: for a bad time or volume, before anything is written
        """
        current = self.store.get_config() or AlarmConfig()
        config = AlarmConfig(**{**current.model_dump(), **changes})
        self.store.save_config(config)
        self.on_config_changed()
        return config

    def recent_logs(self, limit: int = 10) -> List[AlarmLogEntry]:
        return self.pipeline.recent_logs(limit)

    # Speakers

    def discover_speakers(self) -> List[DiscoveredSpeaker]:
        return self.directory.discover()

    def select_speakers(self, speaker_ids: List[str]) -> List[SelectedSpeaker]:
        """Persist a selection by id, naming each from the last discovery."""
        selected = []
        for speaker_id in speaker_ids:
            found = self.directory.lookup(speaker_id)
            selected.append(SelectedSpeaker(id=speaker_id, name=found.name if found else speaker_id))
        self.store.set_selected_speakers(selected)
        return selected

    # Feeds

    def add_feed(self, url: str, name: Optional[str] = None) -> Feed:
        summary = self.fetcher.validate_feed(url)
        return self.store.add_feed(url, name or summary["title"])

    def preview_feed(self, url: str, limit: int = 5) -> Dict[str, Any]:
        return self.fetcher.preview_feed(url, limit)
