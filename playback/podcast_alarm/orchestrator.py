"""
Orchestrator for grouped Sonos playback and its state machine
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from .config import Timings
from .discovery import SpeakerDirectory
from .errors import NoContentError, NoSpeakersAvailableError, PlaybackStartError
from .models import (
    DiscoveredSpeaker, Episode, PlaybackSession, Playlist, SelectedSpeaker, State,
    TransportState, TriggerMetrics
)
from .logging_utils import (
    get_logger, log_phase_start, log_phase_end, log_speaker_state_change, log_error
)

logger = get_logger(__name__)

BRANCH_SOLO = "solo"
BRANCH_GROUPED = "grouped"
BRANCH_SOLO_FALLBACK = "solo_fallback"


@dataclass
class DeviceResult:
    """Outcome of one best-effort per-speaker operation"""
    speaker_id: str
    ok: bool
    error: Optional[str] = None


class SpeakerOrchestrator:
    """Turns a playlist and a set of speakers into grouped playback.

    Grouping is an enhancement: if any member fails to join, playback falls
    back to the coordinator alone. All device I/O is sequential; queue loading
    order (clear, enqueue, point transport, select, play) is stateful on the
    device and must not interleave.
    """

    def __init__(self, directory: SpeakerDirectory, timings: Optional[Timings] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.directory = directory
        self.timings = timings or Timings()
        self._sleep = sleep
        self._clock = clock

    def resolve_available(self, selected: List[SelectedSpeaker]) -> List[DiscoveredSpeaker]:
        """
        Intersect the user's selection with the last discovery.

        Args:
            selected: Selected speakers in persisted order

        Returns:
            Discovered speakers in persisted order; the first is the coordinator

        Raises:
            NoSpeakersAvailableError: if none of the selection was discovered
        """
        available = []
        for choice in selected:
            speaker = self.directory.lookup(choice.id)
            if speaker is None:
                logger.warning(f"Selected speaker {choice.name} ({choice.id}) not found on the network")
                continue
            available.append(speaker)

        logger.info(f"Found {len(available)}/{len(selected)} configured speakers available")
        if not available:
            raise NoSpeakersAvailableError("None of the configured speakers are available")
        return available

    def _transition(self, coordinator: DiscoveredSpeaker, old: State, new: State) -> State:
        log_speaker_state_change(logger, coordinator.id, old.value, new.value)
        return new

    def _group(self, coordinator: DiscoveredSpeaker,
               speakers: List[DiscoveredSpeaker]) -> Tuple[List[DiscoveredSpeaker], str]:
        if len(speakers) == 1:
            return [coordinator], BRANCH_SOLO

        members = [s for s in speakers if s.id != coordinator.id]
        joined = []
        logger.info(f"Attempting to group {len(members)} speaker(s) with {coordinator.name}")
        try:
            for member in members:
                member.handle.join(coordinator.handle)
                joined.append(member)
                logger.info(f"{member.name} joined {coordinator.name}")
        except Exception as e:
            logger.error(f"Error grouping speakers: {e}")
            logger.info("Falling back to single speaker playback")
            for member in joined:
                try:
                    member.handle.leave()
                except Exception as leave_error:
                    logger.warning(f"Could not return {member.name} to standalone: {leave_error}")
            return [coordinator], BRANCH_SOLO_FALLBACK

        return [coordinator] + members, BRANCH_GROUPED

    def _apply_volume(self, speakers: List[DiscoveredSpeaker], volume: int) -> List[DeviceResult]:
        logger.info(f"Setting volume to {volume}% on {len(speakers)} speaker(s)")
        results = []
        for speaker in speakers:
            try:
                speaker.handle.set_volume(volume)
                results.append(DeviceResult(speaker.id, True))
            except Exception as e:
                logger.error(f"Error setting volume on {speaker.name}: {e}")
                results.append(DeviceResult(speaker.id, False, str(e)))
        return results

    def _best_effort(self, speaker: DiscoveredSpeaker, step: str, action: Callable[[], None]) -> bool:
        try:
            action()
            return True
        except Exception as e:
            logger.warning(f"Warning: could not {step} on {speaker.name}: {e}")
            return False

    def _first_new_track(self, coordinator: DiscoveredSpeaker) -> int:
        """1-based position the new episodes will start at once enqueued"""
        handle = coordinator.handle
        try:
            handle.clear_queue()
            logger.info("Cleared queue")
            return 1
        except Exception as e:
            logger.warning(f"Warning: could not clear queue on {coordinator.name}: {e}")

        # Old content stays in front; the new episodes are appended after it
        try:
            previous = handle.queue_size()
        except Exception as e:
            raise PlaybackStartError(
                f"Could not clear or inspect the queue on {coordinator.name}: {e}"
            ) from e
        logger.info(f"Queue still holds {previous} item(s), new episodes start at track {previous + 1}")
        return previous + 1

    def _load_queue(self, coordinator: DiscoveredSpeaker, playlist: Playlist) -> List[Episode]:
        handle = coordinator.handle

        if self._best_effort(coordinator, "stop current playback", handle.pause):
            logger.debug("Stopped current playback")
        self._sleep(self.timings.stop_settle_s)

        start_track = self._first_new_track(coordinator)

        total = len(playlist)
        queued = []
        logger.info(f"Adding {total} track(s) to queue...")
        for index, episode in enumerate(playlist.episodes, start=1):
            logger.info(f"Queuing [{index}/{total}]: {episode.description}")
            try:
                handle.enqueue(episode.audio_url, episode.metadata())
                queued.append(episode)
                continue
            except Exception as e:
                logger.warning(f"Error queueing with metadata for track {index}: {e}")
            try:
                handle.enqueue(episode.audio_url)
                queued.append(episode)
            except Exception as e:
                logger.error(f"Could not queue track {index} ({episode.audio_url}): {e}")

        if not queued:
            raise PlaybackStartError(f"No episodes could be queued on {coordinator.name}")

        self._sleep(self.timings.queue_settle_s)

        try:
            logger.info(f"Queue contains {handle.queue_size()} item(s), {len(queued)}/{total} queued this run")
        except Exception as e:
            logger.warning(f"Warning: could not get queue info: {e}")

        if self._best_effort(coordinator, "set play mode", handle.set_play_mode_normal):
            logger.debug("Play mode set to NORMAL")

        if self._best_effort(coordinator, "point transport at queue",
                             lambda: handle.set_active_source(handle.queue_reference())):
            logger.debug("Transport now pointing to queue")
        self._sleep(self.timings.transport_settle_s)

        if self._best_effort(coordinator, f"select track {start_track}",
                             lambda: handle.select_track(start_track)):
            logger.debug(f"Selected track {start_track} in queue")

        try:
            handle.play()
        except Exception as e:
            raise PlaybackStartError(f"Failed to start playback on {coordinator.name}: {e}") from e

        logger.info(f"Started playback from queue with {len(queued)} episode(s)")
        return queued

    def _confirm_playback(self, coordinator: DiscoveredSpeaker) -> bool:
        window = self.timings.playback_confirm_s
        deadline = self._clock() + window
        last_state = TransportState.UNKNOWN
        while True:
            try:
                last_state = coordinator.handle.current_state()
                if last_state == TransportState.PLAYING:
                    logger.info(f"Playback confirmed on {coordinator.name}")
                    return True
            except Exception as e:
                logger.warning(f"Confirmation check failed: {e}")
            if self._clock() >= deadline:
                break
            self._sleep(self.timings.confirm_poll_s)

        logger.warning(
            f"Playback not confirmed within {window}s on {coordinator.name} "
            f"(state: {last_state.value}) - continuing as device may still be starting"
        )
        return False

    def start_playback(self, playlist: Playlist, speakers: List[DiscoveredSpeaker], volume: int,
                       metrics: Optional[TriggerMetrics] = None) -> PlaybackSession:
        """
        Group, set volume, load the queue and play.

        Args:
            playlist: Episodes to queue, in play order
            speakers: Available speakers, coordinator first
            volume: Volume applied to every speaker that ends up playing
            metrics: Optional metrics to record the branch and play timing on

        Returns:
            PlaybackSession describing what is now playing

        Raises:
            NoSpeakersAvailableError: if ``speakers`` is empty
            NoContentError: if ``playlist`` is empty
            PlaybackStartError: if nothing could be queued or the coordinator refuses to play
        """
        if not speakers:
            raise NoSpeakersAvailableError("None of the configured speakers are available")
        if not len(playlist):
            raise NoContentError("No audio URLs provided")

        metrics = metrics or TriggerMetrics()
        coordinator = speakers[0]
        state = self._transition(coordinator, State.IDLE, State.GROUPING)

        log_phase_start(logger, "grouping", speaker_id=coordinator.id)
        grouped, branch = self._group(coordinator, speakers)
        log_phase_end(logger, "grouping", None, branch != BRANCH_SOLO_FALLBACK, branch=branch)
        metrics.branch = branch
        if branch == BRANCH_SOLO_FALLBACK:
            metrics.add_error("grouping failed, playing on coordinator only", "grouping")

        volume_results = self._apply_volume(grouped, volume)
        for result in volume_results:
            if not result.ok:
                metrics.add_error(f"volume on {result.speaker_id}: {result.error}", "volume")

        log_phase_start(logger, "play", speaker_id=coordinator.id)
        play_start = self._clock()
        try:
            queued = self._load_queue(coordinator, playlist)
        except PlaybackStartError as e:
            self._transition(coordinator, state, State.FAILED)
            metrics.add_error(str(e), "play")
            log_error(logger, e, {"coordinator": coordinator.id, "branch": branch})
            raise
        metrics.play_ms = int((self._clock() - play_start) * 1000)
        log_phase_end(logger, "play", metrics.play_ms, True)

        final = State.SOLO_PLAYING if branch == BRANCH_SOLO_FALLBACK else State.PLAYING
        state = self._transition(coordinator, state, final)
        self._confirm_playback(coordinator)

        return PlaybackSession(
            coordinator_id=coordinator.id,
            member_ids=[s.id for s in grouped],
            state=state,
            playing=True,
            episodes=[episode.description for episode in queued],
        )

    def stop(self, session: Optional[PlaybackSession]) -> bool:
        """
        Pause the coordinator and dissolve the group.

        Returns:
            False when there was nothing to stop, True otherwise
        """
        if session is None or not session.playing:
            return False

        logger.info("Stopping alarm playback...")
        coordinator = self.directory.lookup(session.coordinator_id)
        if coordinator is None:
            logger.warning(f"Coordinator {session.coordinator_id} is no longer known, cannot pause it")
        else:
            try:
                coordinator.handle.pause()
            except Exception as e:
                logger.error(f"Error pausing {coordinator.name}: {e}")

        if session.is_grouped:
            for member_id in session.member_ids:
                if member_id == session.coordinator_id:
                    continue
                member = self.directory.lookup(member_id)
                if member is None:
                    logger.warning(f"Member {member_id} is no longer known, cannot ungroup it")
                    continue
                try:
                    member.handle.leave()
                except Exception as e:
                    logger.error(f"Error ungrouping speaker {member_id}: {e}")

        if coordinator is not None:
            log_speaker_state_change(logger, coordinator.id, session.state.value, State.IDLE.value)
        logger.info("Alarm stopped")
        return True
