"""
Persistence contracts and a JSON-file implementation
"""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

from .config import AlarmConfig
from .errors import DuplicateFeedError
from .models import AlarmLogEntry, Feed, PlayedEpisode, SelectedSpeaker

logger = logging.getLogger(__name__)

CONFIG_FILE = "alarm_config.json"
SPEAKERS_FILE = "selected_speakers.json"
FEEDS_FILE = "feeds.json"
PLAYED_FILE = "played_episodes.json"
LOGS_FILE = "alarm_logs.json"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FeedStore(ABC):
    """Subscribed feeds and played-episode marks"""

    @abstractmethod
    def list_feeds(self) -> List[Feed]: ...

    @abstractmethod
    def has_been_played(self, feed_id: int, guid: str) -> bool: ...

    @abstractmethod
    def mark_played(self, feed_id: int, guid: str, title: str, audio_url: str) -> None: ...

    @abstractmethod
    def purge_older_than(self, days: int) -> int: ...


class ConfigStore(ABC):
    """Alarm settings and speaker selection"""

    @abstractmethod
    def get_config(self) -> Optional[AlarmConfig]: ...

    @abstractmethod
    def get_selected_speakers(self) -> List[SelectedSpeaker]: ...


class AuditStore(ABC):
    """Append-only trigger history"""

    @abstractmethod
    def append_log(self, entry: AlarmLogEntry) -> None: ...

    @abstractmethod
    def recent_logs(self, limit: int = 10) -> List[AlarmLogEntry]: ...


class JsonFileStore(FeedStore, ConfigStore, AuditStore):
    """All three stores backed by JSON files in one data directory.

    Reads of a missing file return an empty default. Writes go through a
    temporary file and ``os.replace`` so a crash never leaves half a file.
    """

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self._lock = threading.RLock()
        os.makedirs(data_dir, exist_ok=True)

    def _path(self, name: str) -> str:
        return os.path.join(self.data_dir, name)

    def _load(self, name: str, default: Any) -> Any:
        path = self._path(name)
        if not os.path.exists(path):
            return default
        try:
            with open(path, 'r') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load {path}: {e}")
            return default

    def _save(self, name: str, data: Any) -> None:
        path = self._path(name)
        tmp_path = f"{path}.tmp"
        with open(tmp_path, 'w') as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, path)

    # Config / selection

    def get_config(self) -> Optional[AlarmConfig]:
        with self._lock:
            data = self._load(CONFIG_FILE, None)
        if data is None:
            return None
        return AlarmConfig(**data)

    def save_config(self, config: AlarmConfig) -> None:
        with self._lock:
            self._save(CONFIG_FILE, config.model_dump())
        logger.info(f"Saved alarm configuration ({config.time}, enabled={config.enabled})")

    def get_selected_speakers(self) -> List[SelectedSpeaker]:
        with self._lock:
            rows = self._load(SPEAKERS_FILE, [])
        return [SelectedSpeaker(id=row["id"], name=row["name"]) for row in rows]

    def set_selected_speakers(self, speakers: List[SelectedSpeaker]) -> None:
        with self._lock:
            self._save(SPEAKERS_FILE, [{"id": s.id, "name": s.name} for s in speakers])
        logger.info(f"Saved {len(speakers)} selected speaker(s)")

    # Feeds

    def list_feeds(self) -> List[Feed]:
        with self._lock:
            rows = self._load(FEEDS_FILE, [])
        feeds = [
            Feed(id=row["id"], url=row["url"], name=row["name"],
                 created_at=datetime.fromisoformat(row["created_at"]))
            for row in rows
        ]
        feeds.sort(key=lambda f: f.created_at, reverse=True)
        return feeds

    def add_feed(self, url: str, name: str) -> Feed:
        with self._lock:
            rows = self._load(FEEDS_FILE, [])
            if any(row["url"] == url for row in rows):
                raise DuplicateFeedError("This podcast feed has already been added")
            feed = Feed(
                id=max((row["id"] for row in rows), default=0) + 1,
                url=url,
                name=name,
                created_at=_utcnow(),
            )
            rows.append({"id": feed.id, "url": feed.url, "name": feed.name,
                         "created_at": feed.created_at.isoformat()})
            self._save(FEEDS_FILE, rows)
        logger.info(f"Added feed {feed.id}: {name} ({url})")
        return feed

    def rename_feed(self, feed_id: int, name: str) -> bool:
        with self._lock:
            rows = self._load(FEEDS_FILE, [])
            for row in rows:
                if row["id"] == feed_id:
                    row["name"] = name
                    self._save(FEEDS_FILE, rows)
                    return True
        return False

    def remove_feed(self, feed_id: int) -> bool:
        with self._lock:
            rows = self._load(FEEDS_FILE, [])
            remaining = [row for row in rows if row["id"] != feed_id]
            if len(remaining) == len(rows):
                return False
            self._save(FEEDS_FILE, remaining)
            played = self._load(PLAYED_FILE, {})
            self._save(PLAYED_FILE, {k: v for k, v in played.items() if v["feed_id"] != feed_id})
        logger.info(f"Removed feed {feed_id}")
        return True

    # Played marks

    @staticmethod
    def _played_key(feed_id: int, guid: str) -> str:
        return f"{feed_id}\x1f{guid}"

    def has_been_played(self, feed_id: int, guid: str) -> bool:
        with self._lock:
            played = self._load(PLAYED_FILE, {})
        return self._played_key(feed_id, guid) in played

    def mark_played(self, feed_id: int, guid: str, title: str, audio_url: str) -> None:
        with self._lock:
            played = self._load(PLAYED_FILE, {})
            played[self._played_key(feed_id, guid)] = {
                "feed_id": feed_id,
                "guid": guid,
                "title": title,
                "audio_url": audio_url,
                "played_at": _utcnow().isoformat(),
            }
            self._save(PLAYED_FILE, played)

    def played_episodes(self, limit: int = 50) -> List[PlayedEpisode]:
        with self._lock:
            played = self._load(PLAYED_FILE, {})
        records = [
            PlayedEpisode(feed_id=row["feed_id"], guid=row["guid"], title=row["title"],
                          audio_url=row["audio_url"],
                          played_at=datetime.fromisoformat(row["played_at"]))
            for row in played.values()
        ]
        records.sort(key=lambda r: r.played_at, reverse=True)
        return records[:limit]

    def clear_played(self, feed_id: Optional[int] = None) -> int:
        with self._lock:
            played = self._load(PLAYED_FILE, {})
            kept = {k: v for k, v in played.items()
                    if feed_id is not None and v["feed_id"] != feed_id}
            self._save(PLAYED_FILE, kept)
        return len(played) - len(kept)

    def purge_older_than(self, days: int) -> int:
        cutoff = _utcnow() - timedelta(days=days)
        with self._lock:
            played = self._load(PLAYED_FILE, {})
            kept = {k: v for k, v in played.items()
                    if datetime.fromisoformat(v["played_at"]) >= cutoff}
            removed = len(played) - len(kept)
            if removed:
                self._save(PLAYED_FILE, kept)
        return removed

    # Audit log

    def append_log(self, entry: AlarmLogEntry) -> None:
        with self._lock:
            rows = self._load(LOGS_FILE, [])
            rows.append(entry.to_dict())
            self._save(LOGS_FILE, rows)

    def recent_logs(self, limit: int = 10) -> List[AlarmLogEntry]:
        with self._lock:
            rows = self._load(LOGS_FILE, [])
        # Newest first; ties keep append order reversed
        entries = [AlarmLogEntry.from_dict(row) for row in reversed(rows)]
        entries.sort(key=lambda e: e.triggered_at, reverse=True)
        return entries[:limit]
