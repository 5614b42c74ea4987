"""Tests for wificomp.display.screens: Rich renderables for each screen and popup."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from wificomp import app, popups
from wificomp.config import Config
from wificomp.display.screens import (
    BAR_WIDTH,
    _bar_string,
    _rich_color,
    build_ap_table,
    build_graph,
    build_popup,
    build_tabs,
    render_app,
)
from wificomp.storage.sessions import SessionStore
from wificomp.wifi_common import COLOR_TO_RICH, AccessPoint, Adapter, ScanResult, Session

T0 = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)

HOME = AccessPoint("AA:00:00:00:00:01", "Home", -50, 6, 2437)
OFFICE = AccessPoint("AA:00:00:00:00:02", "Office", -70, 36, 5180)
HIDDEN = AccessPoint("AA:00:00:00:00:03", "", -85, 1, 2412)


def _render(renderable, width=100, height=30) -> str:
    console = Console(record=True, width=width, height=height, color_system=None)
    console.print(renderable)
    return console.export_text()


@pytest.fixture
def state(tmp_path):
    st = app.new_app_state(Config(), None, store=SessionStore(str(tmp_path)))
    st.wall_clock = lambda: T0 + timedelta(minutes=1)
    st.live.adapter = Adapter("wlan0", "iwlwifi", "Intel WiFi")
    st.session = Session(st.live.adapter, started_at=T0)
    return st


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestHelpers:
    def test_bar_string_full_and_empty(self):
        assert _bar_string(-30, BAR_WIDTH) == "█" * BAR_WIDTH
        assert _bar_string(-100, BAR_WIDTH) == " " * BAR_WIDTH

    def test_bar_string_fixed_width(self):
        assert len(_bar_string(-65, BAR_WIDTH)) == BAR_WIDTH

    def test_rich_color_known(self):
        for rgb, name in COLOR_TO_RICH.items():
            assert _rich_color(rgb) == name

    def test_rich_color_unknown_returns_white(self):
        assert _rich_color((1, 2, 3)) == "white"

    def test_tabs_mark_every_screen(self, state):
        text = build_tabs(state).plain
        assert "[1]Live" in text and "[2]Hist" in text and "[3]Cmp" in text


# ---------------------------------------------------------------------------
# Live screen
# ---------------------------------------------------------------------------

class TestBuildApTable:
    def test_returns_rich_table(self, state):
        state.live.access_points = (HOME, OFFICE)
        assert isinstance(build_ap_table(state), Table)

    def test_row_per_visible_ap(self, state):
        state.live.access_points = (HOME, OFFICE, HIDDEN)
        assert build_ap_table(state).row_count == 3

    def test_caption_shows_count_filter_and_sort(self, state):
        state.live.access_points = (HOME, OFFICE)
        caption = str(build_ap_table(state).caption)
        assert "2 networks shown" in caption
        assert "Filter: All" in caption
        assert "Sort: signal" in caption

    def test_optional_columns(self, state):
        state.live.access_points = (HOME,)
        state.live.show_channel = False
        headers = [c.header for c in build_ap_table(state).columns]
        assert "Ch" not in headers
        assert "Band" in headers

    def test_max_rows_keeps_selection_in_view(self, state):
        state.live.access_points = tuple(
            AccessPoint(f"AA:00:00:00:01:{i:02d}", f"Net{i}", -40 - i, 6, 2437) for i in range(10)
        )
        state.live.selected = 7
        table = build_ap_table(state, max_rows=3)
        assert table.row_count == 3
        assert "Net7" in _render(table)

    def test_ssid_markup_escaped(self, state):
        state.live.access_points = (AccessPoint("AA:00:00:00:00:09", "[bold]Evil[/bold]", -50, 6, 2437),)
        assert "[bold]Evil[/bold]" in _render(build_ap_table(state))

    def test_hidden_ssid_label(self, state):
        state.live.access_points = (HIDDEN,)
        assert "<hidden>" in _render(build_ap_table(state))


class TestLiveScreen:
    def test_header_shows_adapter_and_timer(self, state):
        state.live.elapsed_secs = 60
        out = _render(render_app(state, 100, 30))
        assert "Intel WiFi (wlan0)" in out
        assert "04:00/05:00" in out

    def test_scan_error_shown(self, state):
        state.live.last_scan_error = "Device busy. Another scan may be in progress."
        assert "Device busy" in _render(render_app(state, 100, 30))

    def test_empty_scan_message(self, state):
        assert "No access points found" in _render(render_app(state, 100, 30))

    def test_no_adapter(self, state):
        state.live.adapter = None
        assert "No adapter detected" in _render(render_app(state, 100, 30))


# ---------------------------------------------------------------------------
# History screen
# ---------------------------------------------------------------------------

class TestHistoryScreen:
    def test_no_session(self, state):
        state.screen = app.SCREEN_HISTORY
        assert "No session loaded" in _render(render_app(state, 100, 30))

    def test_graph_and_stats(self, state):
        for i, signal in enumerate((-50, -60)):
            ap = AccessPoint(HOME.bssid, HOME.ssid, signal, 6, 2437)
            state.session.add_scan(ScanResult(T0 + timedelta(seconds=20 * i), (ap,)))
        state.history.set_session(state.session)
        state.screen = app.SCREEN_HISTORY
        out = _render(render_app(state, 100, 30))
        assert "AP: Home (AA:00:00:00:00:01)" in out
        assert "Time: [5m]" in out
        assert "Samples: 2" in out
        assert "█" in out

    def test_graph_without_data(self):
        assert "No data in time window" in build_graph([], width=40, height=10, now=T0).plain

    def test_graph_single_sample(self):
        text = build_graph([(T0, -50)], width=40, height=10, now=T0).plain
        assert text.count("█") == 1


# ---------------------------------------------------------------------------
# Compare screen
# ---------------------------------------------------------------------------

class TestCompareScreen:
    def test_empty(self, state):
        state.screen = app.SCREEN_COMPARE
        out = _render(render_app(state, 100, 30))
        assert "No sessions loaded" in out
        assert "Best: -" in out

    def test_sessions_bars_and_best(self, state):
        first = Session(Adapter("wlan0", label="Desk"), started_at=T0)
        first.add_scan(ScanResult(T0, (HOME,)))
        second = Session(Adapter("wlan1"), started_at=T0)
        second.add_scan(ScanResult(T0, (OFFICE,)))
        state.compare.add_session(first)
        state.compare.add_session(second)
        state.screen = app.SCREEN_COMPARE
        out = _render(render_app(state, 100, 30))
        assert '"Desk" (wlan0)' in out
        assert "no data" in out
        assert "Match: [BSSID]" in out
        assert "Best: Desk (1/2 APs)" in out


# ---------------------------------------------------------------------------
# Popups and frame
# ---------------------------------------------------------------------------

class TestBuildPopup:
    @pytest.mark.parametrize("popup, title", [
        (popups.RenameAdapter(), "Rename Adapter"),
        (popups.TimerSetup(), "Set Timer"),
        (popups.FilePicker(), "Load Session"),
        (popups.ExportChoice(), "Export Format"),
        (popups.ConfirmQuit(), "Confirm Quit"),
        (popups.ExcludeAp(bssid="AA:00:00:00:00:01", ssid="Home"), "Exclude AP"),
        (popups.SessionWarning(message="w", path="/x"), "Warning"),
        (popups.Message("boom"), "Error"),
        (popups.Message("Exported to x.csv", title="Export"), "Export"),
    ])
    def test_each_variant_has_titled_panel(self, popup, title):
        panel = build_popup(popup)
        assert isinstance(panel, Panel)
        assert panel.title == title

    def test_confirm_quit_mentions_scan(self):
        out = _render(build_popup(popups.ConfirmQuit(scanning=True)))
        assert "Scan in progress" in out
        assert "Save & Quit" in out

    def test_text_input_shows_value(self):
        out = _render(build_popup(popups.RenameAdapter(input="Desk", cursor=4)))
        assert "Desk" in out


class TestRenderApp:
    def test_too_small_terminal(self, state):
        out = _render(render_app(state, 50, 10))
        assert "Terminal too small" in out
        assert "Have: 50x10" in out

    def test_popup_replaces_body(self, state):
        state.live.access_points = (HOME,)
        state.popup = popups.Message("Scan failed")
        out = _render(render_app(state, 100, 30))
        assert "Scan failed" in out
        assert "Home" not in out


class TestDemoMain:
    def test_prints_sample_networks(self, capsys):
        from wificomp.display.screens import main

        main()
        out = capsys.readouterr().out
        assert "HomeNet" in out
        assert "Office" in out
