"""
Tests for configuration models
"""

import pytest
from pydantic import ValidationError

from podcast_alarm.config import AlarmConfig, AlarmServiceConfig, WEEKDAYS


class TestAlarmConfig:
    """Test persisted alarm settings"""

    def test_defaults(self):
        config = AlarmConfig()

        assert config.time == "07:00"
        assert config.enabled is False
        assert config.volume == 30
        assert config.scheduled_days() == {
            "monday": True, "tuesday": True, "wednesday": True, "thursday": True,
            "friday": True, "saturday": False, "sunday": False,
        }

    @pytest.mark.parametrize("value", ["7:00", "24:00", "07:60", "seven", ""])
    def test_rejects_bad_time(self, value):
        with pytest.raises(ValidationError):
            AlarmConfig(time=value)

    @pytest.mark.parametrize("volume", [-1, 101])
    def test_rejects_volume_out_of_range(self, volume):
        with pytest.raises(ValidationError):
            AlarmConfig(volume=volume)

    def test_hour_minute(self):
        assert AlarmConfig(time="23:05").hour_minute == (23, 5)

    def test_is_scheduled_on_uses_monday_zero(self):
        config = AlarmConfig(monday=False, sunday=True)

        assert config.is_scheduled_on(0) is False
        assert config.is_scheduled_on(1) is True
        assert config.is_scheduled_on(6) is True
        assert len(WEEKDAYS) == 7


class TestAlarmServiceConfig:
    """Test service configuration from the environment"""

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PODCAST_ALARM_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("ALARM_TIMEZONE", "Europe/Oslo")
        monkeypatch.setenv("ALARM_DISCOVERY_WINDOW_S", "2.5")
        monkeypatch.setenv("ALARM_RETRY_BASE_S", "0")
        monkeypatch.setenv("ALARM_EPISODES_TO_CHECK", "5")
        monkeypatch.setenv("LOG_FORMAT", "json")

        cfg = AlarmServiceConfig.from_env()

        assert cfg.data_dir == str(tmp_path)
        assert cfg.timezone == "Europe/Oslo"
        assert cfg.timings.discovery_window_s == 2.5
        assert cfg.timings.playlist_retry_base_s == 0
        assert cfg.episodes_to_check == 5
        assert cfg.log_format == "json"

    def test_from_env_defaults(self, monkeypatch):
        for name in ("ALARM_TIMEZONE", "ALARM_DISCOVERY_WINDOW_S", "ALARM_PLAYLIST_ATTEMPTS"):
            monkeypatch.delenv(name, raising=False)

        cfg = AlarmServiceConfig.from_env()

        assert cfg.timezone is None
        assert cfg.timings.discovery_window_s == 5.0
        assert cfg.playlist_max_attempts == 3
