"""Tests for wificomp.scanning.adapters: iw dev parsing and adapter info lookup."""

from __future__ import annotations

import subprocess

import pytest

from wificomp.errors import AdapterDetectionError
from wificomp.scanning.adapters import (
    _read_driver_name,
    detect_adapters,
    get_adapter_info,
    parse_adapters,
)
from wificomp.wifi_common import Adapter


class _FakeRunner:
    """A fake CommandRunner for injection-based tests."""

    def __init__(self):
        self.run_calls: list[tuple[list[str], dict]] = []
        self._run_results: list = []
        self._run_side_effects: list = []

    def set_run_results(self, *results):
        self._run_results = list(results)

    def set_run_side_effect(self, exc):
        self._run_side_effects = [exc]

    def run(self, cmd, **kwargs):
        self.run_calls.append((cmd, kwargs))
        if self._run_side_effects:
            raise self._run_side_effects.pop(0)
        if self._run_results:
            return self._run_results.pop(0)
        return subprocess.CompletedProcess(args=cmd, returncode=0, stdout="", stderr="")

    def popen(self, cmd, **kwargs):
        raise NotImplementedError


def _completed(stdout="", stderr="", returncode=0):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


IW_DEV_TWO_INTERFACES = """\
phy#1
\tInterface wlx00c0ca123456
\t\tifindex 5
\t\twdev 0x100000001
\t\taddr 00:c0:ca:12:34:56
\t\ttype managed
\t\ttxpower 20.00 dBm
phy#0
\tInterface wlan0
\t\tifindex 3
\t\twdev 0x1
\t\taddr 11:22:33:44:55:66
\t\tssid HomeNet
\t\ttype managed
\t\tchannel 36 (5180 MHz), width: 80 MHz, center1: 5210 MHz
"""


def _make_sysfs(tmp_path, interface, driver):
    device = tmp_path / interface / "device"
    device.mkdir(parents=True)
    (device / "uevent").write_text(f"DRIVER={driver}\nPCI_CLASS=28000\n")
    return str(tmp_path)


# ---------------------------------------------------------------------------
# parse_adapters
# ---------------------------------------------------------------------------

class TestParseAdapters:
    def test_two_interfaces_in_order(self):
        adapters = parse_adapters(
            IW_DEV_TWO_INTERFACES, info_lookup=lambda iface: ("drv", f"chip-{iface}"),
        )
        assert adapters == [
            Adapter("wlx00c0ca123456", "drv", "chip-wlx00c0ca123456"),
            Adapter("wlan0", "drv", "chip-wlan0"),
        ]

    def test_empty_output_returns_empty_list(self):
        assert parse_adapters("", info_lookup=lambda iface: ("d", "c")) == []

    def test_interface_without_type_line_not_committed(self):
        raw = "phy#0\n\tInterface wlan0\n\t\tifindex 3\n"
        assert parse_adapters(raw, info_lookup=lambda iface: ("d", "c")) == []

    def test_failing_lookup_degrades_to_unknown(self):
        def lookup(iface):
            raise OSError("no sysfs")

        adapters = parse_adapters(IW_DEV_TWO_INTERFACES, info_lookup=lookup)
        assert [(a.driver, a.chipset) for a in adapters] == [
            ("unknown", "Unknown Adapter"), ("unknown", "Unknown Adapter"),
        ]

    def test_label_starts_unset(self):
        adapters = parse_adapters(IW_DEV_TWO_INTERFACES, info_lookup=lambda iface: ("d", "c"))
        assert all(a.label is None for a in adapters)


# ---------------------------------------------------------------------------
# Driver / chipset lookup
# ---------------------------------------------------------------------------

class TestReadDriverName:
    def test_reads_driver_from_uevent(self, tmp_path):
        sysfs = _make_sysfs(tmp_path, "wlan0", "iwlwifi")
        assert _read_driver_name("wlan0", sysfs_net=sysfs) == "iwlwifi"

    def test_missing_uevent_returns_unknown(self, tmp_path):
        assert _read_driver_name("wlan9", sysfs_net=str(tmp_path)) == "unknown"


class TestGetAdapterInfo:
    def test_udevadm_database_model_preferred(self, tmp_path):
        sysfs = _make_sysfs(tmp_path, "wlan0", "iwlwifi")
        fake = _FakeRunner()
        fake.set_run_results(_completed(
            stdout="E: ID_MODEL=0x2723\nE: ID_MODEL_FROM_DATABASE=Wi-Fi 6 AX200\n",
        ))
        assert get_adapter_info("wlan0", runner=fake, sysfs_net=sysfs) == (
            "iwlwifi", "Wi-Fi 6 AX200",
        )

    def test_udevadm_model_used_without_database_entry(self, tmp_path):
        sysfs = _make_sysfs(tmp_path, "wlan1", "rtl8xxxu")
        fake = _FakeRunner()
        fake.set_run_results(_completed(stdout="E: ID_MODEL=802.11n_WLAN_Adapter\n"))
        assert get_adapter_info("wlan1", runner=fake, sysfs_net=sysfs)[1] == "802.11n_WLAN_Adapter"

    def test_known_driver_fallback(self, tmp_path):
        sysfs = _make_sysfs(tmp_path, "wlan0", "iwlwifi")
        fake = _FakeRunner()
        fake.set_run_results(_completed(returncode=1))
        assert get_adapter_info("wlan0", runner=fake, sysfs_net=sysfs) == ("iwlwifi", "Intel WiFi")

    def test_unknown_driver_fallback_names_driver(self, tmp_path):
        sysfs = _make_sysfs(tmp_path, "wlan0", "mwifiex")
        fake = _FakeRunner()
        fake.set_run_side_effect(FileNotFoundError("udevadm"))
        assert get_adapter_info("wlan0", runner=fake, sysfs_net=sysfs) == (
            "mwifiex", "mwifiex adapter",
        )

    def test_udevadm_queries_sysfs_path(self, tmp_path):
        sysfs = _make_sysfs(tmp_path, "wlan0", "iwlwifi")
        fake = _FakeRunner()
        get_adapter_info("wlan0", runner=fake, sysfs_net=sysfs)
        cmd, kwargs = fake.run_calls[0]
        assert cmd[:2] == ["udevadm", "info"]
        assert cmd[2].endswith("wlan0")
        assert kwargs["timeout"] == 5


# ---------------------------------------------------------------------------
# detect_adapters
# ---------------------------------------------------------------------------

class TestDetectAdapters:
    def test_enumerates_and_enriches(self, tmp_path):
        _make_sysfs(tmp_path, "wlx00c0ca123456", "rtl8xxxu")
        sysfs = _make_sysfs(tmp_path, "wlan0", "iwlwifi")
        fake = _FakeRunner()
        fake.set_run_results(
            _completed(stdout=IW_DEV_TWO_INTERFACES),
            _completed(returncode=1),  # udevadm for wlx00c0ca123456
            _completed(returncode=1),  # udevadm for wlan0
        )
        adapters = detect_adapters(runner=fake, sysfs_net=sysfs)
        assert [(a.interface, a.chipset) for a in adapters] == [
            ("wlx00c0ca123456", "Realtek WiFi"), ("wlan0", "Intel WiFi"),
        ]
        assert fake.run_calls[0][0] == ["iw", "dev"]

    def test_missing_iw_raises(self):
        fake = _FakeRunner()
        fake.set_run_side_effect(FileNotFoundError("iw"))
        with pytest.raises(AdapterDetectionError, match="Is iw installed"):
            detect_adapters(runner=fake)

    def test_nonzero_exit_raises(self):
        fake = _FakeRunner()
        fake.set_run_results(_completed(returncode=1, stderr="nl80211 not found."))
        with pytest.raises(AdapterDetectionError, match="nl80211 not found"):
            detect_adapters(runner=fake)

    def test_no_wireless_interfaces_returns_empty(self):
        fake = _FakeRunner()
        fake.set_run_results(_completed(stdout=""))
        assert detect_adapters(runner=fake) == []
