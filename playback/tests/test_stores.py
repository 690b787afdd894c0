"""
Tests for the JSON file store
"""

import json
import os
from datetime import datetime, timedelta, timezone

import pytest

from podcast_alarm.config import AlarmConfig
from podcast_alarm.errors import DuplicateFeedError
from podcast_alarm.models import AlarmLogEntry, SelectedSpeaker
from podcast_alarm.stores import JsonFileStore, PLAYED_FILE


class TestConfigAndSpeakers:

    def test_missing_config_is_none(self, store):
        assert store.get_config() is None
        assert store.get_selected_speakers() == []

    def test_config_round_trip(self, store):
        store.save_config(AlarmConfig(time="06:45", enabled=True, saturday=True, volume=40))

        config = store.get_config()
        assert config.time == "06:45"
        assert config.enabled is True
        assert config.saturday is True
        assert config.volume == 40

    def test_selected_speakers_keep_order(self, store):
        store.set_selected_speakers([SelectedSpeaker("B", "Bedroom"), SelectedSpeaker("A", "Kitchen")])

        assert [s.id for s in store.get_selected_speakers()] == ["B", "A"]

    def test_corrupt_file_reads_as_default(self, store):
        with open(os.path.join(store.data_dir, "selected_speakers.json"), "w") as f:
            f.write("{not json")

        assert store.get_selected_speakers() == []


class TestFeeds:

    def test_add_and_list_newest_first(self, store):
        first = store.add_feed("http://a.example.com/rss", "A")
        second = store.add_feed("http://b.example.com/rss", "B")

        assert second.id == first.id + 1
        assert [f.name for f in store.list_feeds()] == ["B", "A"]

    def test_duplicate_url_rejected(self, store):
        store.add_feed("http://a.example.com/rss", "A")

        with pytest.raises(DuplicateFeedError, match="already been added"):
            store.add_feed("http://a.example.com/rss", "A again")

    def test_rename(self, store):
        feed = store.add_feed("http://a.example.com/rss", "A")

        assert store.rename_feed(feed.id, "Renamed") is True
        assert store.rename_feed(999, "Nope") is False
        assert store.list_feeds()[0].name == "Renamed"

    def test_remove_drops_played_marks(self, store):
        a = store.add_feed("http://a.example.com/rss", "A")
        b = store.add_feed("http://b.example.com/rss", "B")
        store.mark_played(a.id, "ep1", "Ep 1", "http://a/1.mp3")
        store.mark_played(b.id, "ep1", "Ep 1", "http://b/1.mp3")

        assert store.remove_feed(a.id) is True
        assert store.remove_feed(a.id) is False
        assert store.has_been_played(a.id, "ep1") is False
        assert store.has_been_played(b.id, "ep1") is True


class TestPlayedMarks:

    def test_mark_played_is_idempotent(self, store):
        store.mark_played(1, "guid-1", "Ep", "http://x/1.mp3")
        store.mark_played(1, "guid-1", "Ep", "http://x/1.mp3")

        assert store.has_been_played(1, "guid-1") is True
        assert len(store.played_episodes()) == 1

    def test_marks_are_per_feed(self, store):
        store.mark_played(1, "shared", "Ep", "http://x/1.mp3")

        assert store.has_been_played(2, "shared") is False

    def test_purge_older_than(self, store):
        store.mark_played(1, "old", "Old", "http://x/old.mp3")
        store.mark_played(1, "new", "New", "http://x/new.mp3")
        path = os.path.join(store.data_dir, PLAYED_FILE)
        with open(path) as f:
            played = json.load(f)
        stale = (datetime.now(timezone.utc) - timedelta(days=31)).isoformat()
        for row in played.values():
            if row["guid"] == "old":
                row["played_at"] = stale
        with open(path, "w") as f:
            json.dump(played, f)

        assert store.purge_older_than(30) == 1
        assert store.has_been_played(1, "old") is False
        assert store.has_been_played(1, "new") is True

    def test_clear_played(self, store):
        store.mark_played(1, "a", "A", "http://x/a.mp3")
        store.mark_played(2, "b", "B", "http://x/b.mp3")

        assert store.clear_played(feed_id=1) == 1
        assert store.has_been_played(2, "b") is True
        assert store.clear_played() == 1
        assert store.played_episodes() == []


class TestAuditLog:

    def test_recent_logs_newest_first(self, store):
        base = datetime(2024, 1, 1, 7, 0, tzinfo=timezone.utc)
        store.append_log(AlarmLogEntry(triggered_at=base, success=True, episodes=["A: one"]))
        store.append_log(AlarmLogEntry(triggered_at=base + timedelta(days=1), success=False,
                                       error_message="No speakers configured"))

        logs = store.recent_logs(10)

        assert [entry.success for entry in logs] == [False, True]
        assert logs[0].error_message == "No speakers configured"
        assert logs[1].episodes == ["A: one"]

    def test_recent_logs_limit(self, store):
        base = datetime(2024, 1, 1, 7, 0, tzinfo=timezone.utc)
        for day in range(5):
            store.append_log(AlarmLogEntry(triggered_at=base + timedelta(days=day), success=True))

        assert len(store.recent_logs(2)) == 2

    def test_survives_reopen(self, store):
        store.append_log(AlarmLogEntry(triggered_at=datetime.now(timezone.utc), success=True))

        reopened = JsonFileStore(store.data_dir)

        assert len(reopened.recent_logs()) == 1
