"""Tests for Settings loading and startup validation."""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from booking_engine.config import Settings


class TestValidateStartup:
    def test_defaults_only_warn(self):
        warnings = Settings(admin_api_key="", notifier_url="").validate_startup()
        assert any("ADMIN_API_KEY" in w for w in warnings)
        assert any("NOTIFIER_URL" in w for w in warnings)

    def test_fully_configured_is_quiet(self):
        s = Settings(admin_api_key="k", notifier_url="http://gateway")
        assert s.validate_startup() == []

    def test_debug_mentions_open_admin(self):
        warnings = Settings(admin_api_key="", debug=True).validate_startup()
        assert any("open" in w for w in warnings)

    @pytest.mark.parametrize("start,end", [(10, 9), (8, 8), (-1, 10), (8, 25)])
    def test_bad_calendar_hours(self, start, end):
        with pytest.raises(ValueError):
            Settings(calendar_start_hour=start, calendar_end_hour=end).validate_startup()

    def test_bad_pixels_per_hour(self):
        with pytest.raises(ValueError):
            Settings(calendar_pixels_per_hour=0).validate_startup()

    @pytest.mark.parametrize("interval", [0, 7, 45])
    def test_bad_slot_interval(self, interval):
        with pytest.raises(ValueError):
            Settings(slot_interval_minutes=interval).validate_startup()


class TestEnvironment:
    def test_reads_env(self, monkeypatch):
        monkeypatch.setenv("SLOT_INTERVAL_MINUTES", "30")
        monkeypatch.setenv("CALENDAR_REVERSED_COLUMNS", "false")
        s = Settings()
        assert s.slot_interval_minutes == 30
        assert s.calendar_reversed_columns is False
