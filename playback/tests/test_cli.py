"""
Tests for the command line interface
"""

from datetime import datetime
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from podcast_alarm.cli import cli
from podcast_alarm.config import AlarmConfig
from podcast_alarm.errors import DuplicateFeedError, NoSpeakersConfiguredError
from podcast_alarm.models import (
    AlarmLogEntry, AlarmStatus, DiscoveredSpeaker, Feed, PlaybackSession, SelectedSpeaker
)


@pytest.fixture
def service():
    with patch('podcast_alarm.cli.setup_logging'), \
            patch('podcast_alarm.cli.AlarmService') as mock_cls:
        yield mock_cls.return_value


@pytest.fixture
def runner(tmp_path):
    return CliRunner(env={"PODCAST_ALARM_DATA_DIR": str(tmp_path)})


class TestCli:

    def test_status(self, runner, service):
        service.get_status.return_value = AlarmStatus(
            enabled=True,
            time="07:00",
            volume=30,
            speakers=[SelectedSpeaker("RINCON_A", "Bedroom")],
            next_alarm=datetime(2024, 1, 1, 7, 0),
            is_playing=False,
            scheduled_days=AlarmConfig().scheduled_days(),
        )

        result = runner.invoke(cli, ["status"])

        assert result.exit_code == 0
        assert "Enabled: Yes" in result.output
        assert "Next alarm: 2024-01-01T07:00:00" in result.output
        assert "mon, tue, wed, thu, fri" in result.output
        assert "Bedroom (RINCON_A)" in result.output

    def test_config_days(self, runner, service):
        service.update_config.return_value = AlarmConfig(time="06:15", enabled=True)

        result = runner.invoke(cli, ["config", "--time", "06:15", "--enable", "--days", "mon,sat"])

        assert result.exit_code == 0
        changes = service.update_config.call_args.kwargs
        assert changes["time"] == "06:15"
        assert changes["enabled"] is True
        assert changes["monday"] is True
        assert changes["saturday"] is True
        assert changes["tuesday"] is False

    def test_config_unknown_day(self, runner, service):
        result = runner.invoke(cli, ["config", "--days", "mon,funday"])

        assert result.exit_code == 1
        service.update_config.assert_not_called()

    def test_test_command_success(self, runner, service):
        service.pipeline.trigger.return_value = PlaybackSession("RINCON_A", ["RINCON_A"])
        service.recent_logs.return_value = [
            AlarmLogEntry(triggered_at=datetime(2024, 1, 1, 7, 0), success=True, episodes=["A: one"])
        ]

        result = runner.invoke(cli, ["test"])

        assert result.exit_code == 0
        assert "Playing on RINCON_A" in result.output
        assert "A: one" in result.output

    def test_test_command_failure(self, runner, service):
        service.pipeline.trigger.side_effect = NoSpeakersConfiguredError("No speakers configured")

        result = runner.invoke(cli, ["test"])

        assert result.exit_code == 1
        assert "No speakers configured" in result.output

    def test_test_command_stop_after(self, runner, service):
        service.pipeline.trigger.return_value = PlaybackSession("RINCON_A", ["RINCON_A"])
        service.recent_logs.return_value = []

        result = runner.invoke(cli, ["test", "--stop-after", "0"])

        assert result.exit_code == 0
        service.stop.assert_called_once()

    def test_discover(self, runner, service):
        service.discover_speakers.return_value = [
            DiscoveredSpeaker(id="RINCON_A", name="Bedroom", model="One", ip="10.0.0.5")
        ]

        result = runner.invoke(cli, ["discover"])

        assert "Found 1 Sonos speakers" in result.output
        assert "Bedroom [RINCON_A]" in result.output

    def test_speakers_select(self, runner, service):
        service.select_speakers.return_value = [SelectedSpeaker("RINCON_B", "Kitchen")]

        result = runner.invoke(cli, ["speakers", "select", "RINCON_B"])

        assert result.exit_code == 0
        service.discover_speakers.assert_called_once()
        service.select_speakers.assert_called_once_with(["RINCON_B"])

    def test_feeds_add_duplicate(self, runner, service):
        service.add_feed.side_effect = DuplicateFeedError("This podcast feed has already been added")

        result = runner.invoke(cli, ["feeds", "add", "http://a.example.com/rss"])

        assert result.exit_code == 1
        assert "already been added" in result.output

    def test_feeds_list(self, runner, service):
        service.store.list_feeds.return_value = [
            Feed(id=1, url="http://a.example.com/rss", name="Show A", created_at=datetime(2024, 1, 1))
        ]

        result = runner.invoke(cli, ["feeds", "list"])

        assert "1: Show A - http://a.example.com/rss" in result.output

    def test_played_clear(self, runner, service):
        service.store.clear_played.return_value = 3

        result = runner.invoke(cli, ["played", "clear", "--feed-id", "2"])

        service.store.clear_played.assert_called_once_with(2)
        assert "Cleared 3" in result.output
