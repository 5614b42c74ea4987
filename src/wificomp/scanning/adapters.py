"""Wireless adapter enumeration for wificomp.

Enumerates interfaces via ``iw dev`` and enriches each one with its kernel
driver (from sysfs) and a human-readable chipset name (from ``udevadm``).

All external I/O is injectable for testability:
- ``parse_adapters`` accepts an ``info_lookup`` callable
- ``get_adapter_info`` accepts a ``CommandRunner`` and ``sysfs_net`` path
- ``detect_adapters`` accepts a ``CommandRunner``
"""

from __future__ import annotations

import functools
import logging
import os
import subprocess
from typing import Callable

from wificomp.errors import AdapterDetectionError
from wificomp.wifi_common import Adapter, CommandRunner, SubprocessRunner, _minimal_env

logger = logging.getLogger(__name__)

_DEFAULT_RUNNER = SubprocessRunner()

_UNKNOWN_INFO = ("unknown", "Unknown Adapter")

# Driver name -> chipset label, used when udevadm has no model string.
_DRIVER_CHIPSETS: dict[str, str] = {
    "iwlwifi": "Intel WiFi",
    "ath9k": "Atheros WiFi",
    "ath10k_pci": "Atheros WiFi",
    "ath11k": "Atheros WiFi",
    "rtl8xxxu": "Realtek WiFi",
    "rtw88_pci": "Realtek WiFi",
    "rtw89_pci": "Realtek WiFi",
    "brcmfmac": "Broadcom WiFi",
    "mt76x2u": "MediaTek WiFi",
    "mt7921e": "MediaTek WiFi",
}

InfoLookup = Callable[[str], "tuple[str, str]"]


# ---------------------------------------------------------------------------
# iw dev output parsing
# ---------------------------------------------------------------------------

def parse_adapters(raw: str, *, info_lookup: InfoLookup) -> list[Adapter]:
    """Parse ``iw dev`` output into Adapter records.

    An ``Interface <name>`` line opens a record; the next ``type <mode>``
    line commits it.  A failing *info_lookup* degrades the adapter to
    default labels rather than dropping it.

    Args:
        raw: Raw stdout from ``iw dev``.
        info_lookup: Callable returning ``(driver, chipset)`` for an
            interface name.

    Returns:
        Adapters in the order they appear in *raw*.
    """
    adapters: list[Adapter] = []
    current: str | None = None

    for line in raw.splitlines():
        trimmed = line.strip()
        if trimmed.startswith("Interface "):
            current = trimmed[len("Interface "):].strip()
        elif trimmed.startswith("type ") and current is not None:
            try:
                driver, chipset = info_lookup(current)
            except (OSError, ValueError, subprocess.SubprocessError) as exc:
                logger.debug("adapter info lookup failed for %s: %s", current, exc)
                driver, chipset = _UNKNOWN_INFO
            adapters.append(Adapter(interface=current, driver=driver, chipset=chipset))
            current = None

    return adapters


# ---------------------------------------------------------------------------
# Driver / chipset lookup
# ---------------------------------------------------------------------------

def _read_driver_name(interface: str, *, sysfs_net: str = "/sys/class/net") -> str:
    """Read ``DRIVER=`` from ``<sysfs_net>/<iface>/device/uevent``.

    Returns:
        Driver name string, or ``"unknown"`` if it cannot be determined.
    """
    uevent_path = os.path.join(sysfs_net, interface, "device", "uevent")
    try:
        with open(uevent_path) as f:
            for line in f:
                if line.startswith("DRIVER="):
                    return line[len("DRIVER="):].strip()
    except OSError:
        pass
    return "unknown"


def _chipset_from_udevadm(
    interface: str,
    runner: CommandRunner,
    sysfs_net: str,
) -> str | None:
    """Return the model name udev reports for *interface*, if any."""
    try:
        result = runner.run(
            ["udevadm", "info", os.path.join(sysfs_net, interface)],
            capture_output=True,
            text=True,
            timeout=5,
            env=_minimal_env(),
        )
    except (FileNotFoundError, subprocess.TimeoutExpired, OSError):
        logger.debug("udevadm failed or not found")
        return None
    if result.returncode != 0:
        return None

    lines = (result.stdout or "").splitlines()
    for key in ("ID_MODEL_FROM_DATABASE=", "ID_MODEL="):
        for line in lines:
            if key in line:
                value = line.split("=", 1)[1].strip()
                if value:
                    return value
    return None


def _chipset_from_driver(driver: str) -> str:
    return _DRIVER_CHIPSETS.get(driver, f"{driver} adapter")


def get_adapter_info(
    interface: str,
    *,
    runner: CommandRunner | None = None,
    sysfs_net: str = "/sys/class/net",
) -> tuple[str, str]:
    """Return ``(driver, chipset)`` for *interface*.

    Args:
        interface: Interface name (e.g. ``"wlan0"``).
        runner: Command runner for ``udevadm``. Uses default if ``None``.
        sysfs_net: Override for the sysfs net directory (for testing).
    """
    if runner is None:
        runner = _DEFAULT_RUNNER
    driver = _read_driver_name(interface, sysfs_net=sysfs_net)
    chipset = _chipset_from_udevadm(interface, runner, sysfs_net)
    if chipset is None:
        chipset = _chipset_from_driver(driver)
    return driver, chipset


# ---------------------------------------------------------------------------
# Adapter enumeration
# ---------------------------------------------------------------------------

def detect_adapters(
    *,
    runner: CommandRunner | None = None,
    sysfs_net: str = "/sys/class/net",
) -> list[Adapter]:
    """Enumerate wireless adapters using ``iw dev``.

    Raises:
        AdapterDetectionError: ``iw`` is missing or exited nonzero.
    """
    if runner is None:
        runner = _DEFAULT_RUNNER

    try:
        result = runner.run(
            ["iw", "dev"],
            capture_output=True,
            text=True,
            timeout=5,
            env=_minimal_env(),
        )
    except (FileNotFoundError, subprocess.TimeoutExpired, OSError) as exc:
        raise AdapterDetectionError(
            f"Failed to run 'iw dev'. Is iw installed? ({exc})"
        ) from exc

    if result.returncode != 0:
        raise AdapterDetectionError(f"iw dev failed: {(result.stderr or '').strip()}")

    lookup = functools.partial(get_adapter_info, runner=runner, sysfs_net=sysfs_net)
    adapters = parse_adapters(result.stdout or "", info_lookup=lookup)
    logger.debug("detected %d adapter(s): %s", len(adapters),
                 ", ".join(a.interface for a in adapters))
    return adapters
