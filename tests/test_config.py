"""Tests for wificomp.config: defaults, validation and JSON round-trip."""

from __future__ import annotations

import json
import logging
import os
from unittest.mock import patch

import pytest

from wificomp.config import Config, default_config_path, load_config, save_config
from wificomp.errors import PersistenceError
from wificomp.wifi_common import ExcludedAp


class TestDefaults:
    def test_default_values(self):
        config = Config()
        assert config.auto_scan_interval_secs == 5
        assert config.default_timer_secs == 300
        assert config.sort_by == "signal"
        assert config.frequency_filter == "all"
        assert config.alert_threshold_dbm is None
        assert config.history_time_window_mins == 5
        assert config.compare_match_by == "bssid"
        assert config.excluded_aps == []

    def test_default_path_uses_xdg_config_home(self):
        with patch.dict("os.environ", {"XDG_CONFIG_HOME": "/cfg"}):
            assert default_config_path() == os.path.join("/cfg", "wificomp", "config.json")


class TestExclusions:
    def test_exclude_adds_once(self):
        config = Config()
        assert config.exclude("AA:BB:CC:DD:EE:01", "Home") is True
        assert config.exclude("AA:BB:CC:DD:EE:01", "Home") is False
        assert config.excluded_aps == [ExcludedAp("AA:BB:CC:DD:EE:01", "Home")]

    def test_is_excluded(self):
        config = Config(excluded_aps=[ExcludedAp("AA:BB:CC:DD:EE:01")])
        assert config.is_excluded("AA:BB:CC:DD:EE:01")
        assert not config.is_excluded("AA:BB:CC:DD:EE:02")


class TestFromDict:
    def test_valid_values_applied(self):
        config = Config.from_dict({
            "sort_by": "channel",
            "frequency_filter": "5G",
            "alert_threshold_dbm": -75,
            "history_show_average": True,
            "auto_scan_interval_secs": 10,
        })
        assert config.sort_by == "channel"
        assert config.frequency_filter == "5G"
        assert config.alert_threshold_dbm == -75
        assert config.history_show_average is True
        assert config.auto_scan_interval_secs == 10

    def test_invalid_choice_keeps_default(self):
        assert Config.from_dict({"compare_metric": "median"}).compare_metric == "avg"

    def test_mistyped_values_keep_defaults(self):
        config = Config.from_dict({
            "show_channel": "yes",
            "auto_scan_interval_secs": "5",
            "default_timer_secs": -1,
            "alert_threshold_dbm": True,
        })
        assert config.show_channel is True
        assert config.auto_scan_interval_secs == 5
        assert config.default_timer_secs == 300
        assert config.alert_threshold_dbm is None

    def test_unknown_keys_ignored(self):
        assert Config.from_dict({"theme": "dark"}) == Config()

    def test_excluded_entries_without_bssid_dropped(self):
        config = Config.from_dict({"excluded_aps": [
            {"bssid": "AA:BB:CC:DD:EE:01", "ssid": "Home"}, {"ssid": "NoBssid"}, "junk",
        ]})
        assert config.excluded_aps == [ExcludedAp("AA:BB:CC:DD:EE:01", "Home")]


class TestLoadSave:
    def test_round_trip(self, tmp_path):
        path = str(tmp_path / "sub" / "config.json")
        config = Config(sort_by="ssid", alert_threshold_dbm=-80, history_time_window_mins=0)
        config.exclude("AA:BB:CC:DD:EE:01", "Neighbor")
        save_config(config, path)
        assert load_config(path) == config

    def test_saved_file_is_json(self, tmp_path):
        path = tmp_path / "config.json"
        save_config(Config(), str(path))
        data = json.loads(path.read_text())
        assert data["excluded_aps"] == []
        assert data["timer_mode"] == "countdown"

    def test_missing_file_returns_defaults(self, tmp_path):
        assert load_config(str(tmp_path / "absent.json")) == Config()

    def test_corrupt_file_returns_defaults_with_warning(self, tmp_path, caplog):
        path = tmp_path / "config.json"
        path.write_text("{oops")
        with caplog.at_level(logging.WARNING, logger="wificomp.config"):
            assert load_config(str(path)) == Config()
        assert "failed to load" in caplog.text

    def test_non_object_returns_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")
        assert load_config(str(path)) == Config()

    def test_save_failure_raises(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with pytest.raises(PersistenceError):
            save_config(Config(), str(blocker / "config.json"))
