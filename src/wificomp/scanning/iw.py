"""WiFi network scanning via ``iw dev <iface> scan``.

This module provides the scan parser and the live scan function used by
the scan worker.  It can also be invoked as a standalone tool::

    python -m wificomp.scanning.iw -i wlan0            # scan, print table
    python -m wificomp.scanning.iw -i wlan0 --json     # JSON output
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import subprocess
import sys
from datetime import datetime
from typing import Callable

from wificomp.errors import (
    ScanBusyError,
    ScanCommandError,
    ScanPermissionError,
)
from wificomp.wifi_common import (
    AccessPoint,
    CommandRunner,
    ScanResult,
    SubprocessRunner,
    _minimal_env,
    round_half_away,
    utc_now,
)

logger = logging.getLogger(__name__)

_DEFAULT_RUNNER = SubprocessRunner()

_BSS_PREFIX = "BSS "
_SIGNAL_PREFIX = "signal: "
_SSID_PREFIX = "SSID: "
_FREQ_PREFIX = "freq: "
_DS_CHANNEL_PREFIX = "DS Parameter set: channel "
_PRIMARY_CHANNEL_PREFIX = "* primary channel: "

# stderr fragments meaning the scan was refused for lack of privilege.
_PERMISSION_MARKERS = (
    "Operation not permitted",
    "a password is required",
    "is not in the sudoers file",
    "is not allowed to execute",
)

# Center frequency (MHz) -> channel number.
_FREQ_TO_CHANNEL: dict[int, int] = {
    # 2.4 GHz
    2412: 1, 2417: 2, 2422: 3, 2427: 4, 2432: 5, 2437: 6, 2442: 7,
    2447: 8, 2452: 9, 2457: 10, 2462: 11, 2467: 12, 2472: 13, 2484: 14,
    # 5 GHz (common channels)
    5180: 36, 5200: 40, 5220: 44, 5240: 48, 5260: 52, 5280: 56,
    5300: 60, 5320: 64, 5500: 100, 5520: 104, 5540: 108, 5560: 112,
    5580: 116, 5600: 120, 5620: 124, 5640: 128, 5660: 132, 5680: 136,
    5700: 140, 5720: 144, 5745: 149, 5765: 153, 5785: 157, 5805: 161,
    5825: 165,
    # 6 GHz (lowest channels)
    5955: 1, 5975: 5, 5995: 9, 6015: 13,
}


def freq_to_channel(freq_mhz: int) -> int:
    """Convert a center frequency in MHz to a channel number.

    Known frequencies come from a fixed table; anything else is derived
    linearly from the band's base frequency.
    """
    channel = _FREQ_TO_CHANNEL.get(freq_mhz)
    if channel is not None:
        return channel
    if freq_mhz < 3000:
        return (freq_mhz - 2407) // 5
    if freq_mhz < 5900:
        return (freq_mhz - 5000) // 5
    return (freq_mhz - 5950) // 5


# ---------------------------------------------------------------------------
# iw scan output parsing
# ---------------------------------------------------------------------------

class _Candidate:
    """Fields collected for one ``BSS`` block before it is finalized."""

    def __init__(self, bssid: str) -> None:
        self.bssid = bssid
        self.ssid: str | None = None
        self.signal_dbm: int | None = None
        self.channel: int | None = None
        self.frequency_mhz: int | None = None

    def build(self) -> AccessPoint | None:
        """Return an AccessPoint, or None if signal or frequency is missing."""
        if self.signal_dbm is None or self.frequency_mhz is None:
            logger.debug("dropping incomplete BSS block: %s", self.bssid or "<no bssid>")
            return None
        channel = self.channel
        if channel is None:
            channel = freq_to_channel(self.frequency_mhz)
        return AccessPoint(
            bssid=self.bssid,
            ssid=self.ssid or "",
            signal_dbm=self.signal_dbm,
            channel=channel,
            frequency_mhz=self.frequency_mhz,
        )


def _parse_bssid(line: str) -> str:
    """Extract the MAC from ``BSS aa:bb:..(on wlan0) -- associated``."""
    rest = line[len(_BSS_PREFIX):]
    return rest.split("(", 1)[0].strip().upper()


def _parse_int(text: str) -> int | None:
    try:
        return int(text.strip())
    except ValueError:
        return None


def _parse_rounded(text: str) -> int | None:
    """Parse the first token of *text* as a float and round it."""
    parts = text.split()
    if not parts:
        return None
    try:
        return round_half_away(float(parts[0]))
    except ValueError:
        return None


def parse_scan(output: str) -> list[AccessPoint]:
    """Parse ``iw dev <iface> scan`` output into AccessPoint records.

    Each ``BSS`` line starts a new candidate.  Recognized field lines
    overwrite the candidate's value; every other line is ignored.  A
    candidate lacking a signal or a frequency is dropped without aborting
    the rest of the parse.  Order of the input blocks is preserved.
    """
    access_points: list[AccessPoint] = []
    current: _Candidate | None = None

    for line in output.splitlines():
        trimmed = line.strip()

        if trimmed.startswith(_BSS_PREFIX):
            if current is not None:
                ap = current.build()
                if ap is not None:
                    access_points.append(ap)
            current = _Candidate(_parse_bssid(trimmed))
            continue

        if current is None:
            continue

        if trimmed.startswith(_SIGNAL_PREFIX):
            signal_dbm = _parse_rounded(trimmed[len(_SIGNAL_PREFIX):])
            if signal_dbm is not None:
                current.signal_dbm = signal_dbm
        elif trimmed.startswith(_SSID_PREFIX):
            current.ssid = trimmed[len(_SSID_PREFIX):]
        elif trimmed.startswith(_FREQ_PREFIX):
            freq = _parse_rounded(trimmed[len(_FREQ_PREFIX):])
            if freq is not None:
                current.frequency_mhz = freq
        elif trimmed.startswith(_DS_CHANNEL_PREFIX):
            channel = _parse_int(trimmed[len(_DS_CHANNEL_PREFIX):])
            if channel is not None:
                current.channel = channel
        elif trimmed.startswith(_PRIMARY_CHANNEL_PREFIX):
            channel = _parse_int(trimmed[len(_PRIMARY_CHANNEL_PREFIX):])
            if channel is not None:
                current.channel = channel

    if current is not None:
        ap = current.build()
        if ap is not None:
            access_points.append(ap)

    return access_points


# ---------------------------------------------------------------------------
# Live scanning (requires iw on the system)
# ---------------------------------------------------------------------------

def _scan_command(interface: str) -> list[str]:
    cmd = ["iw", "dev", interface, "scan"]
    if os.geteuid() != 0:
        cmd = ["sudo", "-n", *cmd]
    return cmd


def scan_wifi(
    interface: str,
    *,
    runner: CommandRunner | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> ScanResult:
    """Run one scan on *interface* and return the parsed result.

    There is no timeout: a hung ``iw`` blocks only the calling thread.

    Args:
        interface: Wireless interface name, e.g. ``wlan0``.
        runner: Optional CommandRunner for subprocess calls (testing seam).
        clock: Source of the scan timestamp (testing seam).

    Raises:
        ScanPermissionError: ``iw`` reported ``Operation not permitted``.
        ScanBusyError: ``iw`` reported ``Device or resource busy``.
        ScanCommandError: ``iw`` is missing or failed for another reason.
    """
    runner = runner or _DEFAULT_RUNNER
    cmd = _scan_command(interface)
    logger.debug("scan: running %s", " ".join(cmd))

    try:
        result = runner.run(cmd, capture_output=True, text=True, env=_minimal_env())
    except (FileNotFoundError, OSError, subprocess.SubprocessError) as exc:
        raise ScanCommandError(f"Failed to run 'iw scan'. Is iw installed? ({exc})") from exc

    if result.returncode != 0:
        stderr = (result.stderr or "").strip()
        logger.debug("scan: iw exited %d: %s", result.returncode, stderr)
        if any(marker in stderr for marker in _PERMISSION_MARKERS):
            raise ScanPermissionError()
        if "Device or resource busy" in stderr:
            raise ScanBusyError()
        raise ScanCommandError(f"Scan failed: {stderr or f'exit status {result.returncode}'}")

    access_points = parse_scan(result.stdout or "")
    logger.debug("scan: %s returned %d access point(s)", interface, len(access_points))
    return ScanResult(timestamp=clock(), access_points=tuple(access_points))


# ---------------------------------------------------------------------------
# Standalone CLI
# ---------------------------------------------------------------------------

def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments for standalone invocation."""
    parser = argparse.ArgumentParser(
        description="Scan WiFi networks via iw and print results.",
    )
    parser.add_argument(
        "-i", "--interface",
        required=True,
        help="Wireless interface to scan (e.g. wlan0)",
    )
    parser.add_argument(
        "--json", action="store_true", dest="json_output",
        help="Output as JSON instead of a table",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Scan once and print the results to stdout."""
    args = _parse_args(argv)
    try:
        scan = scan_wifi(args.interface)
    except ScanCommandError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if args.json_output:
        data = [
            {
                "bssid": ap.bssid,
                "ssid": ap.ssid,
                "signal_dbm": ap.signal_dbm,
                "channel": ap.channel,
                "frequency_mhz": ap.frequency_mhz,
                "band": ap.band,
            }
            for ap in scan.access_points
        ]
        print(json.dumps(data, indent=2))
        return 0

    if not scan.access_points:
        print("No networks found.")
        return 0
    print(f"{'BSSID':<18} {'SSID':<28} {'Ch':>3} {'MHz':>5} {'dBm':>5}")
    print("-" * 63)
    for ap in sorted(scan.access_points, key=lambda a: a.signal_dbm, reverse=True):
        ssid = ap.ssid or "<hidden>"
        print(f"{ap.bssid:<18} {ssid:<28} {ap.channel:>3} {ap.frequency_mhz:>5} {ap.signal_dbm:>5}")
    print(f"\n{len(scan.access_points)} network(s) found.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
