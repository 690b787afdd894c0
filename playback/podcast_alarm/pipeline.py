"""
Trigger pipeline: speakers, playlist, playback and the audit trail
"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .discovery import SpeakerDirectory
from .errors import NoSpeakersConfiguredError
from .logging_utils import log_metrics, log_phase_end, log_phase_start
from .models import AlarmLogEntry, AlarmStatus, PlaybackSession, TriggerMetrics
from .orchestrator import SpeakerOrchestrator
from .playlist import PlaylistBuilder
from .scheduler import next_fire_time, should_fire_on
from .stores import AuditStore, ConfigStore

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class TriggerPipeline:
    """One end-to-end alarm run, plus the session it leaves behind.

    The session lives only in memory; a restart forgets it. Overlapping runs
    are tolerated and the last one to finish owns the session.
    """

    def __init__(self, config_store: ConfigStore, audit_store: AuditStore,
                 directory: SpeakerDirectory, builder: PlaylistBuilder,
                 orchestrator: SpeakerOrchestrator, playlist_max_attempts: int = 3,
                 now: Callable[[], datetime] = datetime.now):
        self.config_store = config_store
        self.audit_store = audit_store
        self.directory = directory
        self.builder = builder
        self.orchestrator = orchestrator
        self.playlist_max_attempts = playlist_max_attempts
        self._now = now
        self._session_lock = threading.Lock()
        self._session: Optional[PlaybackSession] = None

    @property
    def session(self) -> Optional[PlaybackSession]:
        with self._session_lock:
            return self._session

    @property
    def is_playing(self) -> bool:
        session = self.session
        return bool(session and session.playing)

    def _audit(self, entry: AlarmLogEntry) -> None:
        try:
            self.audit_store.append_log(entry)
        except Exception as e:
            logger.error(f"Error logging alarm result: {e}")

    def trigger(self) -> Optional[PlaybackSession]:
        """
        Run the alarm once.

        Returns:
            The new PlaybackSession, or None when the alarm is not due today

        Raises:
            AlarmError (or any underlying error) after it has been audited
        """
        config = self.config_store.get_config()
        selected = self.config_store.get_selected_speakers()

        if not should_fire_on(config, self._now()):
            logger.info("Alarm not scheduled for today")
            return None

        triggered_at = datetime.now(timezone.utc)
        metrics = TriggerMetrics()
        started = time.monotonic()
        try:
            if not selected:
                raise NoSpeakersConfiguredError("No speakers configured")

            log_phase_start(logger, "discovery")
            phase_start = time.monotonic()
            self.directory.discover()
            available = self.orchestrator.resolve_available(selected)
            metrics.discovered_ms = _elapsed_ms(phase_start)
            log_phase_end(logger, "discovery", metrics.discovered_ms, True, available=len(available))

            log_phase_start(logger, "playlist")
            phase_start = time.monotonic()
            playlist = self.builder.build_with_retry(self.playlist_max_attempts)
            metrics.playlist_ms = _elapsed_ms(phase_start)
            log_phase_end(logger, "playlist", metrics.playlist_ms, True, episodes=len(playlist))

            session = self.orchestrator.start_playback(playlist, available, config.volume, metrics)
        except Exception as e:
            logger.error(f"Error triggering alarm: {e}")
            self._audit(AlarmLogEntry(
                triggered_at=triggered_at,
                success=False,
                error_message=str(e),
            ))
            raise

        with self._session_lock:
            self._session = session

        self._audit(AlarmLogEntry(
            triggered_at=triggered_at,
            success=True,
            episodes=session.episodes,
        ))
        metrics.total_duration_ms = _elapsed_ms(started)
        log_metrics(logger, metrics.to_dict())
        logger.info("Alarm playback started successfully")
        return session

    def stop(self) -> bool:
        """Stop whatever the last trigger started. No-op without a session."""
        with self._session_lock:
            session, self._session = self._session, None
        if session is None:
            return False
        return self.orchestrator.stop(session)

    def status(self, now: Optional[datetime] = None) -> AlarmStatus:
        config = self.config_store.get_config()
        speakers = self.config_store.get_selected_speakers()
        moment = now or self._now()
        return AlarmStatus(
            enabled=bool(config and config.enabled),
            time=config.time if config else None,
            volume=config.volume if config else None,
            speakers=speakers,
            next_alarm=next_fire_time(config, moment),
            is_playing=self.is_playing,
            scheduled_days=config.scheduled_days() if config else None,
        )

    def recent_logs(self, limit: int = 10) -> List[AlarmLogEntry]:
        return self.audit_store.recent_logs(limit)
