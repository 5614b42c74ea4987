"""User configuration persisted as JSON.

The file lives at ``$XDG_CONFIG_HOME/wificomp/config.json`` (or
``~/.config/wificomp/config.json``).  Missing, unknown or mistyped fields
fall back to their defaults; a config that cannot be read at all yields
the defaults with a logged warning.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from typing import Any

from wificomp.errors import PersistenceError
from wificomp.wifi_common import (
    FILTER_ORDER,
    MATCH_ORDER,
    METRIC_ORDER,
    SORT_ORDER,
    ExcludedAp,
)

logger = logging.getLogger(__name__)

TIMER_MODES = ("countdown", "elapsed")

# Fields restricted to a fixed set of string values.
_CHOICES: dict[str, tuple] = {
    "timer_mode": TIMER_MODES,
    "sort_by": SORT_ORDER,
    "frequency_filter": FILTER_ORDER,
    "compare_match_by": MATCH_ORDER,
    "compare_metric": METRIC_ORDER,
}


def default_config_path() -> str:
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(
        os.path.expanduser("~"), ".config",
    )
    return os.path.join(base, "wificomp", "config.json")


@dataclass
class Config:
    """Persisted display and behavior preferences."""

    auto_scan_interval_secs: int = 5
    default_timer_secs: int = 300
    timer_mode: str = "countdown"
    show_channel: bool = True
    show_band: bool = True
    highlight_best: bool = True
    sort_by: str = "signal"
    frequency_filter: str = "all"
    alert_threshold_dbm: int | None = None
    history_time_window_mins: int = 5
    history_show_average: bool = False
    compare_match_by: str = "bssid"
    compare_metric: str = "avg"
    excluded_aps: list[ExcludedAp] = field(default_factory=list)

    def is_excluded(self, bssid: str) -> bool:
        return any(ex.bssid == bssid for ex in self.excluded_aps)

    def exclude(self, bssid: str, ssid: str) -> bool:
        """Add *bssid* to the permanent exclusions; False if already present."""
        if self.is_excluded(bssid):
            return False
        self.excluded_aps.append(ExcludedAp(bssid=bssid, ssid=ssid))
        return True

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Build a Config, keeping defaults for anything missing or invalid."""
        config = cls()
        for f in fields(cls):
            if f.name not in data:
                continue
            value = data[f.name]
            if f.name == "excluded_aps":
                config.excluded_aps = _parse_excluded(value)
            elif f.name == "alert_threshold_dbm":
                if value is None or (isinstance(value, int) and not isinstance(value, bool)):
                    config.alert_threshold_dbm = value
            elif f.name in _CHOICES:
                if value in _CHOICES[f.name]:
                    setattr(config, f.name, value)
                else:
                    logger.debug("config: ignoring invalid %s=%r", f.name, value)
            elif isinstance(getattr(config, f.name), bool):
                if isinstance(value, bool):
                    setattr(config, f.name, value)
            elif isinstance(value, int) and not isinstance(value, bool) and value >= 0:
                setattr(config, f.name, value)
            else:
                logger.debug("config: ignoring invalid %s=%r", f.name, value)
        return config


def _parse_excluded(value: Any) -> list[ExcludedAp]:
    if not isinstance(value, list):
        return []
    result: list[ExcludedAp] = []
    for entry in value:
        if isinstance(entry, dict) and entry.get("bssid"):
            result.append(ExcludedAp(
                bssid=str(entry["bssid"]),
                ssid=str(entry.get("ssid") or ""),
            ))
    return result


def load_config(path: str | None = None) -> Config:
    """Load the config file, returning defaults if it is absent or unreadable."""
    path = path or default_config_path()
    if not os.path.exists(path):
        return Config()
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("config: failed to load %s: %s", path, exc)
        return Config()
    if not isinstance(data, dict):
        logger.warning("config: expected a JSON object in %s", path)
        return Config()
    return Config.from_dict(data)


def save_config(config: Config, path: str | None = None) -> str:
    """Write *config* as JSON, creating the parent directory if needed.

    Raises:
        PersistenceError: the file could not be written.
    """
    path = path or default_config_path()
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config.to_dict(), f, indent=2)
            f.write("\n")
    except OSError as exc:
        raise PersistenceError(f"Failed to write config file: {exc}") from exc
    logger.debug("config: saved to %s", path)
    return path
