"""
Playlist assembly from podcast feeds
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Optional

from tenacity import Retrying, before_sleep_log, stop_after_attempt, wait_exponential

from .errors import NoContentError
from .feeds import EpisodeFetcher
from .models import Episode, Feed, Playlist
from .stores import FeedStore

logger = logging.getLogger(__name__)


@dataclass
class FeedSelection:
    """Outcome of picking an episode from one feed"""
    feed: Feed
    episode: Optional[Episode] = None
    error: Optional[Exception] = None


class PlaylistBuilder:
    """Builds the alarm queue: newest unplayed episode from every feed"""

    def __init__(self, feed_store: FeedStore, fetcher: EpisodeFetcher,
                 episodes_to_check: int = 10, retention_days: int = 30,
                 max_workers: int = 4, retry_base_s: float = 1.0,
                 retry_max_s: float = 60.0,
                 sleep: Callable[[float], None] = time.sleep):
        self.feed_store = feed_store
        self.fetcher = fetcher
        self.episodes_to_check = episodes_to_check
        self.retention_days = retention_days
        self.max_workers = max_workers
        self.retry_base_s = retry_base_s
        self.retry_max_s = retry_max_s
        self._sleep = sleep

    def _purge_expired(self) -> None:
        try:
            removed = self.feed_store.purge_older_than(self.retention_days)
            if removed:
                logger.info(f"Purged {removed} played episode mark(s) older than {self.retention_days} days")
        except Exception as e:
            logger.warning(f"Could not purge old played episodes: {e}")

    def _select_for_feed(self, feed: Feed) -> FeedSelection:
        try:
            episodes = self.fetcher.latest_episodes(feed, self.episodes_to_check)
            for episode in episodes:
                if not self.feed_store.has_been_played(feed.id, episode.guid):
                    return FeedSelection(feed=feed, episode=episode)
                logger.debug(f"Skipping already played: {feed.name} - {episode.title}")
            logger.info(f"All recent episodes from {feed.name} have been played")
            return FeedSelection(feed=feed)
        except Exception as e:
            logger.error(f"Error fetching episodes from {feed.name}: {e}")
            return FeedSelection(feed=feed, error=e)

    def _mark_played(self, episodes: List[Episode]) -> None:
        for episode in episodes:
            try:
                self.feed_store.mark_played(episode.feed_id, episode.guid, episode.title, episode.audio_url)
            except Exception as e:
                logger.error(f"Failed to mark {episode.description} as played: {e}")

    def build(self) -> Playlist:
        """
        Build one playlist.

        Returns:
            Playlist with at most one episode per feed, newest first

        Raises:
            NoContentError: when no feed contributes an episode
        """
        self._purge_expired()

        feeds = self.feed_store.list_feeds()
        if not feeds:
            raise NoContentError("No podcast feeds configured")

        logger.info(f"Fetching latest episodes from {len(feeds)} podcast feed(s)")
        workers = min(len(feeds), self.max_workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="feed") as pool:
            selections = list(pool.map(self._select_for_feed, feeds))

        failed = [s for s in selections if s.error is not None]
        if failed:
            logger.warning(f"{len(failed)}/{len(feeds)} feed(s) failed: {', '.join(s.feed.name for s in failed)}")

        episodes = [s.episode for s in selections if s.episode is not None]
        if not episodes:
            raise NoContentError(
                "No podcast episodes available. Please add podcast feeds with unplayed episodes."
            )

        episodes.sort(key=lambda ep: ep.sort_key, reverse=True)
        self._mark_played(episodes)

        playlist = Playlist(episodes=episodes)
        for description in playlist.descriptions:
            logger.info(f"Added: {description}")
        return playlist

    def build_with_retry(self, max_attempts: int = 3) -> Playlist:
        """
        Build with exponential backoff between attempts.

        After failed attempt ``n`` the builder waits ``retry_base_s * 2**n``
        seconds. The last error is raised once ``max_attempts`` is spent.
        """
        retryer = Retrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=self.retry_base_s * 2, max=self.retry_max_s),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return retryer(self.build)
