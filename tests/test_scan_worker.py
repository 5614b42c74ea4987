"""Tests for wificomp.scan_worker: single in-flight scan and outcome polling."""

from __future__ import annotations

import threading
from datetime import datetime, timezone

from wificomp.errors import ScanPermissionError
from wificomp.scan_worker import (
    CRASHED_MESSAGE,
    ScanController,
    ScanCrashed,
    ScanDelivered,
    ScanFailed,
)
from wificomp.wifi_common import AccessPoint, ScanResult

RESULT = ScanResult(
    datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc),
    (AccessPoint("AA:BB:CC:DD:EE:01", "Home", -50, 6, 2437),),
)


def _finished(controller):
    controller.wait(5)
    return controller.poll()


class TestScanController:
    def test_idle_poll_returns_none(self):
        controller = ScanController(lambda iface: RESULT)
        assert controller.poll() is None
        assert controller.in_flight is False

    def test_successful_scan_delivered(self):
        controller = ScanController(lambda iface: RESULT)
        assert controller.perform_scan("wlan0") is True
        assert _finished(controller) == ScanDelivered(RESULT)
        assert controller.in_flight is False

    def test_scan_fn_receives_interface(self):
        seen = []
        controller = ScanController(lambda iface: seen.append(iface) or RESULT)
        controller.perform_scan("wlx00c0ca")
        _finished(controller)
        assert seen == ["wlx00c0ca"]

    def test_scan_error_reported_as_failure(self):
        def scan(iface):
            raise ScanPermissionError()

        controller = ScanController(scan)
        controller.perform_scan("wlan0")
        outcome = _finished(controller)
        assert isinstance(outcome, ScanFailed)
        assert outcome.message.startswith("Permission denied")

    def test_unexpected_exception_reported_as_crash(self):
        def scan(iface):
            raise RuntimeError("bug")

        controller = ScanController(scan)
        controller.perform_scan("wlan0")
        outcome = _finished(controller)
        assert outcome == ScanCrashed()
        assert outcome.message == CRASHED_MESSAGE

    def test_second_request_while_in_flight_is_noop(self):
        release = threading.Event()
        calls = []

        def scan(iface):
            calls.append(iface)
            release.wait(5)
            return RESULT

        controller = ScanController(scan)
        assert controller.perform_scan("wlan0") is True
        assert controller.perform_scan("wlan0") is False
        assert controller.in_flight is True
        assert controller.poll() is None
        release.set()
        assert _finished(controller) == ScanDelivered(RESULT)
        assert calls == ["wlan0"]

    def test_outcome_delivered_once(self):
        controller = ScanController(lambda iface: RESULT)
        controller.perform_scan("wlan0")
        assert _finished(controller) is not None
        assert controller.poll() is None

    def test_new_scan_allowed_after_outcome_collected(self):
        controller = ScanController(lambda iface: RESULT)
        controller.perform_scan("wlan0")
        _finished(controller)
        assert controller.perform_scan("wlan0") is True
        assert _finished(controller) == ScanDelivered(RESULT)
