"""
RSS fetching and parsing for podcast feeds
"""

import logging
import re
import threading
from calendar import timegm
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import feedparser
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .errors import FeedFetchError, FeedValidationError
from .models import Episode, Feed

logger = logging.getLogger(__name__)

AUDIO_LINK_PATTERN = re.compile(r"\.(mp3|m4a|ogg|wav|aac)(\?.*)?$", re.IGNORECASE)

_SESSION: Optional[requests.Session] = None
_SESSION_LOCK = threading.Lock()


def _http_session() -> requests.Session:
    global _SESSION
    if _SESSION is None:
        with _SESSION_LOCK:
            if _SESSION is None:
                session = requests.Session()
                retry_cfg = Retry(
                    total=2,
                    backoff_factor=0.5,
                    status_forcelist=(429, 500, 502, 503, 504),
                    allowed_methods=("GET",),
                    raise_on_status=False,
                )
                adapter = HTTPAdapter(pool_connections=8, pool_maxsize=16, max_retries=retry_cfg)
                session.mount("http://", adapter)
                session.mount("https://", adapter)
                _SESSION = session
    return _SESSION


@dataclass
class ParsedFeed:
    """A downloaded feed before it is tied to a subscription"""
    title: str
    description: str
    image: Optional[str]
    link: str
    episodes: List[Episode] = field(default_factory=list)

    @property
    def playable(self) -> List[Episode]:
        return [ep for ep in self.episodes if ep.audio_url]


def get_audio_url(entry: Dict[str, Any]) -> Optional[str]:
    """
    Extract the audio URL from a feed entry.

    Checks the enclosure first (standard podcast RSS), then media:content,
    then the entry link when it points straight at an audio file.
    """
    for enclosure in entry.get("enclosures") or []:
        href = enclosure.get("href") or enclosure.get("url")
        if href:
            return href

    for media in entry.get("media_content") or []:
        if media.get("url"):
            return media["url"]

    link = entry.get("link")
    if link and AUDIO_LINK_PATTERN.search(link):
        return link

    return None


def _published(entry: Dict[str, Any]) -> Optional[datetime]:
    for key in ("published_parsed", "updated_parsed", "created_parsed"):
        parsed = entry.get(key)
        if parsed:
            try:
                # feedparser normalizes to UTC struct_time
                return datetime.fromtimestamp(timegm(parsed), tz=timezone.utc)
            except (TypeError, ValueError, OverflowError):
                continue
    return None


def _image(container: Dict[str, Any]) -> Optional[str]:
    image = container.get("image")
    if isinstance(image, dict):
        return image.get("href") or image.get("url")
    return None


class EpisodeFetcher:
    """Downloads a feed and normalizes its entries into episodes"""

    def __init__(self, timeout_s: float = 30.0, user_agent: str = "PodcastAlarmClock/1.0",
                 session: Optional[requests.Session] = None):
        self.timeout_s = timeout_s
        self.user_agent = user_agent
        self._session = session or _http_session()

    def parse_feed(self, feed_url: str, feed_id: int = 0, feed_name: Optional[str] = None) -> ParsedFeed:
        """
        Fetch and parse a feed.

        Args:
            feed_url: URL of the RSS feed
            feed_id: Subscription id stamped on every episode
            feed_name: Display name stamped on every episode (feed title if omitted)

        Returns:
            ParsedFeed with every entry, playable or not

        Raises:
            FeedFetchError: on HTTP failure or an unparseable document
        """
        logger.debug(f"Fetching feed {feed_url}")
        try:
            response = self._session.get(feed_url, timeout=self.timeout_s,
                                         headers={"User-Agent": self.user_agent})
            response.raise_for_status()
        except requests.RequestException as e:
            raise FeedFetchError(feed_url, str(e)) from e

        parsed = feedparser.parse(response.content)
        if parsed.bozo and not parsed.entries:
            raise FeedFetchError(feed_url, str(parsed.get("bozo_exception", "unparseable document")))

        channel = parsed.feed
        title = channel.get("title") or "Unknown Podcast"
        display_name = feed_name or title

        episodes = []
        for entry in parsed.entries:
            entry_title = entry.get("title") or "Untitled Episode"
            episodes.append(Episode(
                feed_id=feed_id,
                feed_name=display_name,
                guid=entry.get("id") or entry.get("link") or entry_title,
                title=entry_title,
                audio_url=get_audio_url(entry),
                published=_published(entry),
                image=_image(entry) or _image(channel),
                duration=entry.get("itunes_duration"),
            ))

        return ParsedFeed(
            title=title,
            description=channel.get("description") or channel.get("subtitle") or "",
            image=_image(channel),
            link=channel.get("link") or feed_url,
            episodes=episodes,
        )

    def latest_episodes(self, feed: Feed, limit: int = 1) -> List[Episode]:
        """Newest ``limit`` episodes of a subscribed feed that carry audio."""
        parsed = self.parse_feed(feed.url, feed_id=feed.id, feed_name=feed.name)
        playable = sorted(parsed.playable, key=lambda ep: ep.sort_key, reverse=True)
        return playable[:limit]

    def validate_feed(self, feed_url: str) -> Dict[str, Any]:
        """Check a candidate URL before subscribing to it."""
        parsed = self.parse_feed(feed_url)
        playable = parsed.playable
        if not playable:
            raise FeedValidationError("This feed does not contain any playable audio episodes")
        return {
            "title": parsed.title,
            "description": parsed.description,
            "image": parsed.image,
            "episode_count": len(playable),
        }

    def preview_feed(self, feed_url: str, limit: int = 5) -> Dict[str, Any]:
        parsed = self.parse_feed(feed_url)
        playable = parsed.playable
        return {
            "title": parsed.title,
            "description": parsed.description,
            "image": parsed.image,
            "total_episodes": len(playable),
            "preview_episodes": [
                {
                    "title": ep.title,
                    "published": ep.published.isoformat() if ep.published else None,
                    "duration": ep.duration,
                }
                for ep in playable[:limit]
            ],
        }
