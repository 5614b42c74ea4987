"""Tests for wificomp.history: windowing, bucketing and the history screen state."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from wificomp.history import (
    HistoryState,
    HistoryStats,
    ap_history,
    bucketize,
    windowed,
    y_range,
)
from wificomp.wifi_common import AccessPoint, Adapter, ScanResult, Session

T0 = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
HOME = ("AA:00:00:00:00:01", "Home")


def _at(seconds):
    return T0 + timedelta(seconds=seconds)


def _session(signals, bssid=HOME[0], step=60):
    session = Session(Adapter("wlan0"), started_at=T0)
    for i, signal in enumerate(signals):
        aps = (
            AccessPoint(bssid, HOME[1], signal, 6, 2437),
            AccessPoint("BB:00:00:00:00:01", "Office", -80, 1, 2412),
        )
        session.add_scan(ScanResult(_at(step * i), aps))
    return session


class TestApHistory:
    def test_samples_in_scan_order(self):
        session = _session([-50, -55, -60])
        assert ap_history(session, HOME) == [(_at(0), -50), (_at(60), -55), (_at(120), -60)]

    def test_matches_by_bssid_even_if_ssid_changed(self):
        session = _session([-50])
        session.add_scan(ScanResult(_at(60), (AccessPoint(HOME[0], "Renamed", -52, 6, 2437),)))
        assert [s for _, s in ap_history(session, HOME)] == [-50, -52]


class TestWindowed:
    def test_keeps_recent_samples(self):
        data = [(_at(0), -50), (_at(240), -55), (_at(600), -60)]
        assert windowed(data, 5, _at(600)) == [(_at(600), -60)]

    def test_boundary_sample_kept(self):
        data = [(_at(0), -50), (_at(300), -55)]
        assert windowed(data, 5, _at(300)) == data

    def test_zero_window_keeps_everything(self):
        data = [(_at(0), -50), (_at(6000), -55)]
        assert windowed(data, 0, _at(99999)) == data


class TestBucketize:
    def test_empty_data(self):
        assert bucketize([], 10, T0) == []

    def test_single_sample_one_bucket(self):
        assert bucketize([(_at(0), -50)], 10, _at(30)) == [(0, -50)]

    def test_zero_span_does_not_divide_by_zero(self):
        data = [(_at(0), -50), (_at(0), -60)]
        assert bucketize(data, 10, _at(0)) == [(0, -60)]

    def test_zero_span_average_mode(self):
        data = [(_at(0), -50), (_at(0), -61)]
        assert bucketize(data, 10, _at(0), average=True) == [(0, -55)]

    def test_spreads_across_columns(self):
        data = [(_at(0), -50), (_at(50), -60), (_at(100), -70)]
        assert bucketize(data, 11, _at(100)) == [(0, -50), (5, -60), (10, -70)]

    def test_raw_mode_keeps_last_sample_in_column(self):
        data = [(_at(0), -50), (_at(1), -52), (_at(100), -70)]
        assert bucketize(data, 3, _at(100))[0] == (0, -52)

    def test_average_mode_truncates(self):
        data = [(_at(0), -50), (_at(1), -53), (_at(100), -70)]
        assert bucketize(data, 3, _at(100), average=True)[0] == (0, -51)

    def test_empty_columns_skipped(self):
        data = [(_at(0), -50), (_at(100), -70)]
        assert [col for col, _ in bucketize(data, 50, _at(100))] == [0, 49]

    def test_columns_never_exceed_width(self):
        data = [(_at(i), -50 - i) for i in range(100)]
        assert all(0 <= col < 7 for col, _ in bucketize(data, 7, _at(99)))


class TestYRange:
    def test_headroom_around_data(self):
        assert y_range([(T0, -60), (T0, -50)]) == (-65, -45)

    def test_clamped_to_bounds(self):
        assert y_range([(T0, -99), (T0, -18)]) == (-100, -20)

    def test_never_empty(self):
        low, high = y_range([(T0, -10)])
        assert high > low


class TestHistoryState:
    def test_set_session_resets_selection(self):
        state = HistoryState(selected_ap_idx=3)
        state.set_session(_session([-50]))
        assert state.selected_ap_idx == 0
        assert state.selected_ap() == HOME

    def test_ap_selection_bounded(self):
        state = HistoryState()
        state.set_session(_session([-50]))
        state.select_next_ap()
        state.select_next_ap()
        assert state.selected_ap() == ("BB:00:00:00:00:01", "Office")
        state.select_prev_ap()
        state.select_prev_ap()
        assert state.selected_ap_idx == 0

    def test_no_session(self):
        state = HistoryState()
        state.select_next_ap()
        assert state.selected_ap() is None
        assert state.ap_data() == []
        assert state.stats(T0) is None

    def test_cycle_time_window(self):
        state = HistoryState()
        seen = []
        for _ in range(4):
            state.cycle_time_window()
            seen.append(state.time_window_mins)
        assert seen == [10, 30, 0, 5]

    def test_toggle_average(self):
        state = HistoryState()
        state.toggle_average()
        assert state.show_average is True

    def test_stats_within_window(self):
        state = HistoryState(time_window_mins=5)
        state.set_session(_session([-40, -50, -55, -61], step=120))
        # window [now-5m, now] keeps samples at 120, 240 and 360 seconds
        assert state.stats(_at(360)) == HistoryStats(current=-61, avg=-55, min=-61, max=-50, count=3)
