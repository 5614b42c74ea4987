"""Shared data structures and helpers for wificomp."""

from __future__ import annotations

import math
import os
import subprocess
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

# -- Colors (RGB tuples, mapped to Rich color names below) --
GREEN = (0, 255, 0)
LIGHT_GREEN = (144, 238, 144)
YELLOW = (255, 255, 0)
ORANGE = (255, 165, 0)
RED = (255, 0, 0)

# Canonical mapping from RGB tuple to Rich color name.
# Kept alongside the RGB constants so they cannot drift apart.
COLOR_TO_RICH: dict[tuple, str] = {
    GREEN: "green",
    LIGHT_GREEN: "pale_green1",
    YELLOW: "yellow",
    ORANGE: "dark_orange",
    RED: "red",
}

SESSION_VERSION = "1.0"

# -- Bands --
BAND_2G = "2G"
BAND_5G = "5G"
BAND_6G = "6G"

# -- Cycling option values (persisted in the config file as strings) --
SORT_ORDER = ("signal", "ssid", "channel")
FILTER_ORDER = ("all", BAND_2G, BAND_5G, BAND_6G)
MATCH_ORDER = ("bssid", "ssid", "both")
METRIC_ORDER = ("avg", "min", "max")
TIME_WINDOW_ORDER = (5, 10, 30, 0)  # minutes, 0 means all

MATCH_NAMES = {"bssid": "BSSID", "ssid": "SSID", "both": "Both"}
METRIC_NAMES = {"avg": "Avg", "min": "Min", "max": "Max"}
FILTER_NAMES = {"all": "All", BAND_2G: "2.4G", BAND_5G: "5G", BAND_6G: "6G"}


def next_in_cycle(value: Any, order: tuple) -> Any:
    """Return the option after *value* in *order*, wrapping around.

    Unknown values restart the cycle at the first option.
    """
    try:
        idx = order.index(value)
    except ValueError:
        return order[0]
    return order[(idx + 1) % len(order)]


def band_for_frequency(freq_mhz: int) -> str:
    """Map a center frequency in MHz to its band short name."""
    if freq_mhz < 3000:
        return BAND_2G
    if freq_mhz < 5900:
        return BAND_5G
    return BAND_6G


def round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def truncating_div(total: int, count: int) -> int:
    """Integer division that truncates toward zero (``-7 / 2 == -3``)."""
    quotient = abs(total) // count
    return -quotient if total < 0 else quotient


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class Adapter:
    """A wireless adapter; sessions are grouped by ``interface``."""

    interface: str              # e.g., "wlan0"
    driver: str = "unknown"     # e.g., "iwlwifi"
    chipset: str = "unknown"    # e.g., "Intel WiFi"
    label: str | None = None    # operator-chosen name

    def display_name(self) -> str:
        """Label, else chipset (when known), else interface name."""
        if self.label:
            return self.label
        if self.chipset and self.chipset != "unknown":
            return self.chipset
        return self.interface

    def display_name_full(self) -> str:
        if self.label:
            return f'"{self.label}" ({self.interface})'
        return f"{self.display_name()} ({self.interface})"

    def safe_name(self) -> str:
        """Display name reduced to characters safe for a directory name."""
        return "".join(
            c if c.isalnum() or c in "-_" else "_"
            for c in self.display_name()
        )


@dataclass(frozen=True)
class AccessPoint:
    """A single access point reading from one scan."""

    bssid: str          # upper-case MAC, e.g. "AA:BB:CC:DD:EE:FF"
    ssid: str           # "" for hidden networks
    signal_dbm: int
    channel: int
    frequency_mhz: int

    @property
    def band(self) -> str:
        return band_for_frequency(self.frequency_mhz)


@dataclass(frozen=True)
class ScanResult:
    """One complete sweep of visible access points."""

    timestamp: datetime
    access_points: tuple[AccessPoint, ...] = ()


@dataclass
class ApStats:
    """Signal statistics for one BSSID within one session."""

    avg: int
    min: int
    max: int
    count: int

    def get(self, metric: str) -> int:
        """Return the value for *metric* (``"avg"``, ``"min"`` or ``"max"``)."""
        if metric == "min":
            return self.min
        if metric == "max":
            return self.max
        return self.avg


@dataclass
class Session:
    """One scanning engagement tied to one adapter.

    ``scans`` is append-only and ordered by capture time; ``started_at``
    never changes after creation.
    """

    adapter: Adapter
    started_at: datetime = field(default_factory=utc_now)
    duration_target_secs: int | None = None
    scans: list[ScanResult] = field(default_factory=list)
    version: str = SESSION_VERSION

    def add_scan(self, scan: ScanResult) -> None:
        self.scans.append(scan)

    def elapsed(self, now: datetime | None = None) -> int:
        """Whole seconds since ``started_at`` (never negative)."""
        now = now or utc_now()
        return max(0, int((now - self.started_at).total_seconds()))

    def unique_aps(self) -> list[tuple[str, str]]:
        """Return every distinct ``(bssid, ssid)`` pair in first-seen order."""
        seen: set[tuple[str, str]] = set()
        aps: list[tuple[str, str]] = []
        for scan in self.scans:
            for ap in scan.access_points:
                key = (ap.bssid, ap.ssid)
                if key not in seen:
                    seen.add(key)
                    aps.append(key)
        return aps

    def ap_stats(self, bssid: str) -> ApStats | None:
        """Return signal statistics for *bssid*, or None if never seen."""
        signals = [
            ap.signal_dbm
            for scan in self.scans
            for ap in scan.access_points
            if ap.bssid == bssid
        ]
        if not signals:
            return None
        return ApStats(
            avg=round_half_away(sum(signals) / len(signals)),
            min=min(signals),
            max=max(signals),
            count=len(signals),
        )


@dataclass
class SessionValidation:
    """Integrity report produced when a session is loaded."""

    is_valid: bool
    has_scans: bool
    scan_count: int
    ap_count: int
    warnings: list[str] = field(default_factory=list)


@dataclass
class ExcludedAp:
    """An access point hidden from the live list."""

    bssid: str
    ssid: str = ""


# ---------------------------------------------------------------------------
# Command runner protocol (subprocess injection seam)
# ---------------------------------------------------------------------------

class CommandRunner(Protocol):
    """Protocol for running external commands.

    Provides an injection seam so callers can substitute a fake runner in
    tests instead of patching ``subprocess`` globally.
    """

    def run(
        self,
        cmd: list[str],
        *,
        capture_output: bool = True,
        text: bool = True,
        timeout: int | None = None,
        env: dict[str, str] | None = None,
    ) -> subprocess.CompletedProcess[Any]:
        """Run *cmd* and return a CompletedProcess."""
        ...  # pragma: no cover


class SubprocessRunner:
    """Default CommandRunner that delegates to the real ``subprocess`` module."""

    def run(
        self,
        cmd: list[str],
        *,
        capture_output: bool = True,
        text: bool = True,
        timeout: int | None = None,
        env: dict[str, str] | None = None,
    ) -> subprocess.CompletedProcess[Any]:
        """Run *cmd* via ``subprocess.run``."""
        return subprocess.run(
            cmd,
            capture_output=capture_output,
            text=text,
            timeout=timeout,
            env=env,
        )


def _minimal_env() -> dict[str, str]:
    """Build a minimal environment for subprocess calls.

    Only passes PATH, LC_ALL, and HOME so the full user environment does
    not leak into child processes.  ``LC_ALL=C`` keeps tool output in the
    English format the parsers expect.
    """
    return {
        "PATH": os.environ.get("PATH", "/usr/sbin:/usr/bin:/sbin:/bin"),
        "LC_ALL": "C",
        "HOME": os.environ.get("HOME", ""),
    }


# ---------------------------------------------------------------------------
# Signal / formatting helpers
# ---------------------------------------------------------------------------

def signal_bar_width(signal_dbm: int, max_width: int) -> int:
    """Width of a signal bar, mapping -100 dBm to 0 and -30 dBm to *max_width*."""
    clamped = max(-100, min(-30, signal_dbm))
    return round_half_away((clamped + 100) / 70 * max_width)


def signal_color(signal_dbm: int) -> tuple:
    """Return an RGB color tuple based on signal strength."""
    if signal_dbm >= -50:
        return GREEN
    if signal_dbm >= -60:
        return LIGHT_GREEN
    if signal_dbm >= -70:
        return YELLOW
    if signal_dbm >= -80:
        return ORANGE
    return RED


def format_duration(seconds: int) -> str:
    """Format a duration as ``MM:SS``."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def format_timer(elapsed_secs: int, target_secs: int | None) -> str:
    """Format a countdown as ``remaining/target``, or elapsed when no target."""
    if target_secs is None:
        return format_duration(elapsed_secs)
    remaining = max(0, target_secs - elapsed_secs)
    return f"{format_duration(remaining)}/{format_duration(target_secs)}"


def truncate(text: str, max_len: int) -> str:
    """Shorten *text* to *max_len* characters, ending in ``...`` when cut."""
    if len(text) <= max_len:
        return text
    if max_len <= 3:
        return text[:max(0, max_len)]
    return text[:max_len - 3] + "..."
