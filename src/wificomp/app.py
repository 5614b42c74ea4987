"""Application state and the commands that change it.

The run loop owns a single :class:`AppState` and passes it to the functions
in this module; nothing here keeps global state.  Commands return None on
success or a user-facing error string.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable

from wificomp import popups
from wificomp.compare import CompareState
from wificomp.config import Config, save_config
from wificomp.errors import PersistenceError
from wificomp.history import HistoryState
from wificomp.scan_worker import ScanController, ScanDelivered
from wificomp.storage import export as exporter
from wificomp.storage.sessions import SessionStore
from wificomp.wifi_common import (
    FILTER_ORDER,
    SORT_ORDER,
    AccessPoint,
    Adapter,
    Session,
    next_in_cycle,
    utc_now,
)

logger = logging.getLogger(__name__)

SCREEN_LIVE = "live"
SCREEN_HISTORY = "history"
SCREEN_COMPARE = "compare"
SCREENS = (SCREEN_LIVE, SCREEN_HISTORY, SCREEN_COMPARE)

# Rows of the compare session list kept in view when moving the selection.
COMPARE_LIST_HEIGHT = 6


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------

@dataclass
class LiveState:
    """Live screen: current adapter, latest scan and list options."""

    adapter: Adapter | None = None
    access_points: tuple[AccessPoint, ...] = ()
    selected: int = 0
    auto_scan: bool = True
    auto_scan_interval: int = 5
    timer_target_secs: int | None = 300
    timer_mode: str = "countdown"
    elapsed_secs: int = 0
    show_channel: bool = True
    show_band: bool = True
    highlight_best: bool = True
    frequency_filter: str = "all"
    sort_by: str = "signal"
    last_scan_error: str | None = None
    scanning: bool = False
    session_excluded: set[str] = field(default_factory=set)

    def reset_selection(self) -> None:
        self.selected = 0

    def timer_expired(self) -> bool:
        return self.timer_target_secs is not None and self.elapsed_secs >= self.timer_target_secs


@dataclass
class AppState:
    """Everything the run loop owns."""

    config: Config = field(default_factory=Config)
    store: SessionStore = field(default_factory=SessionStore)
    scanner: ScanController | None = None
    screen: str = SCREEN_LIVE
    popup: popups.Popup | None = None
    live: LiveState = field(default_factory=LiveState)
    history: HistoryState = field(default_factory=HistoryState)
    compare: CompareState = field(default_factory=CompareState)
    session: Session | None = None
    session_modified: bool = False
    last_scan_at: float | None = None
    running: bool = True
    config_path: str | None = None
    exit_messages: list[str] = field(default_factory=list)
    monotonic: Callable[[], float] = time.monotonic
    wall_clock: Callable[[], datetime] = utc_now


def new_app_state(
    config: Config,
    scanner: ScanController,
    *,
    store: SessionStore | None = None,
    config_path: str | None = None,
) -> AppState:
    """Build an AppState with screen options taken from *config*."""
    live = LiveState(
        auto_scan_interval=config.auto_scan_interval_secs,
        timer_target_secs=config.default_timer_secs or None,
        timer_mode=config.timer_mode,
        show_channel=config.show_channel,
        show_band=config.show_band,
        highlight_best=config.highlight_best,
        frequency_filter=config.frequency_filter,
        sort_by=config.sort_by,
    )
    history = HistoryState(
        time_window_mins=config.history_time_window_mins,
        show_average=config.history_show_average,
    )
    compare = CompareState(match_by=config.compare_match_by, metric=config.compare_metric)
    return AppState(
        config=config,
        store=store or SessionStore(),
        scanner=scanner,
        live=live,
        history=history,
        compare=compare,
        config_path=config_path,
    )


def set_adapter(state: AppState, adapter: Adapter) -> None:
    """Make *adapter* current and start a fresh session for it."""
    state.live.adapter = adapter
    state.session = Session(
        adapter=replace(adapter),
        started_at=state.wall_clock(),
        duration_target_secs=state.live.timer_target_secs,
    )
    state.session_modified = False
    state.live.elapsed_secs = 0
    logger.info("session started for %s", adapter.display_name_full())


def show_error(state: AppState, message: str) -> None:
    state.popup = popups.Message(message)


def history_now(state: AppState) -> datetime:
    """End of the history time window.

    The live session is windowed against the wall clock; a session loaded
    from disk is windowed against its last scan.
    """
    session = state.history.session
    if session is None or session is state.session or not session.scans:
        return state.wall_clock()
    return session.scans[-1].timestamp


# ---------------------------------------------------------------------------
# Live list
# ---------------------------------------------------------------------------

def visible_aps(state: AppState) -> list[AccessPoint]:
    """Latest scan after exclusions and band filter, in display order."""
    live = state.live
    items = [
        ap for ap in live.access_points
        if ap.bssid not in live.session_excluded
        and not state.config.is_excluded(ap.bssid)
        and (live.frequency_filter == "all" or ap.band == live.frequency_filter)
    ]
    if live.sort_by == "ssid":
        items.sort(key=lambda ap: ap.ssid.lower())
    elif live.sort_by == "channel":
        items.sort(key=lambda ap: ap.channel)
    else:
        items.sort(key=lambda ap: ap.signal_dbm, reverse=True)
    return items


def selected_live_ap(state: AppState) -> AccessPoint | None:
    items = visible_aps(state)
    if 0 <= state.live.selected < len(items):
        return items[state.live.selected]
    return None


def _clamp_live_selection(state: AppState) -> None:
    count = len(visible_aps(state))
    state.live.selected = min(state.live.selected, max(0, count - 1))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def request_scan(state: AppState) -> str | None:
    """Start a scan on the current adapter; a no-op while one is in flight."""
    if state.live.adapter is None:
        return "No adapter selected"
    if state.scanner is None or state.live.scanning:
        return None
    if state.scanner.perform_scan(state.live.adapter.interface):
        state.live.scanning = True
        state.live.last_scan_error = None
    return None


def switch_screen(state: AppState, screen: str) -> str | None:
    if screen not in SCREENS:
        return f"Unknown screen: {screen}"
    state.screen = screen
    state.popup = None
    if screen == SCREEN_HISTORY and state.session is not None and state.history.session is None:
        state.history.set_session(state.session)
    return None


def load_session(state: AppState, path: str) -> str | None:
    """Load the session at *path* into the history or compare screen.

    Validation warnings open a warning popup; the session is used anyway.
    """
    try:
        session, validation = state.store.load_validated(path)
    except PersistenceError as exc:
        logger.warning("failed to load %s: %s", path, exc)
        return f"Failed to load: {exc}"

    if state.screen == SCREEN_COMPARE:
        state.compare.add_session(session)
        state.compare.selected_session_idx = len(state.compare.sessions) - 1
        state.compare.ensure_session_visible(COMPARE_LIST_HEIGHT)
    else:
        state.history.set_session(session)

    if validation.warnings:
        message = "Session loaded with warnings:\n" + "\n".join(validation.warnings)
        state.popup = popups.SessionWarning(message=message, path=path)
    logger.info("loaded session %s (%d scans)", path, validation.scan_count)
    return None


def save_session(state: AppState) -> str | None:
    if state.session is None:
        return "No session to save"
    try:
        path = state.store.save(state.session, now=state.wall_clock())
    except PersistenceError as exc:
        logger.error("failed to save session: %s", exc)
        return f"Failed to save session: {exc}"
    state.session_modified = False
    logger.info("session saved to %s", path)
    return None


def export(state: AppState, fmt: str) -> str | None:
    """Export the session shown on the current screen as ``json`` or ``csv``.

    On the compare screen CSV exports the comparison for the selected AP
    and JSON exports the selected session.
    """
    if fmt not in ("json", "csv"):
        return f"Unknown export format: {fmt}"

    now = state.wall_clock().astimezone()
    try:
        if state.screen == SCREEN_COMPARE:
            if fmt == "csv":
                identity = state.compare.selected_identity()
                if identity is None:
                    return "No AP selected to export"
                sessions = list(state.compare.sessions)
                filename = exporter.export_to_cwd(
                    fmt,
                    lambda p: exporter.export_comparison_csv(sessions, identity[0], p),
                    now=now,
                )
            else:
                session = state.compare.selected_session()
                if session is None:
                    return "No session to export"
                filename = exporter.export_to_cwd(
                    fmt, lambda p: exporter.export_json(session, p), now=now,
                )
        else:
            session = state.history.session if state.screen == SCREEN_HISTORY else state.session
            if session is None:
                return "No session to export"
            write = exporter.export_csv if fmt == "csv" else exporter.export_json
            filename = exporter.export_to_cwd(fmt, lambda p: write(session, p), now=now)
    except PersistenceError as exc:
        logger.error("export failed: %s", exc)
        return f"Export failed: {exc}"

    state.popup = popups.Message(f"Exported to {filename}", title="Export")
    return None


def rename_adapter(state: AppState, label: str) -> str | None:
    """Set the adapter label on both the live adapter and the session copy."""
    if state.live.adapter is None:
        return "No adapter selected"
    new_label = label.strip() or None
    state.live.adapter.label = new_label
    if state.session is not None:
        state.session.adapter.label = new_label
    return None


def set_timer(state: AppState, minutes: str | int) -> str | None:
    """Set the session duration target in minutes; 0 turns the timer off."""
    try:
        mins = int(minutes)
    except (TypeError, ValueError):
        return f"Invalid timer value: {minutes!r}"
    if mins < 0:
        return f"Invalid timer value: {minutes!r}"
    target = mins * 60 if mins else None
    state.live.timer_target_secs = target
    if state.session is not None:
        state.session.duration_target_secs = target
    return None


def exclude_ap(state: AppState, bssid: str, ssid: str, scope: str) -> str | None:
    """Hide *bssid* from the live list for this session or permanently."""
    if scope not in ("session", "permanent"):
        return f"Unknown exclusion scope: {scope}"
    state.live.session_excluded.add(bssid)
    if scope == "permanent":
        state.config.exclude(bssid, ssid)
    state.live.reset_selection()
    return None


def cycle_sort(state: AppState) -> str | None:
    state.live.sort_by = next_in_cycle(state.live.sort_by, SORT_ORDER)
    return None


def cycle_filter(state: AppState) -> str | None:
    state.live.frequency_filter = next_in_cycle(state.live.frequency_filter, FILTER_ORDER)
    state.live.reset_selection()
    return None


def cycle_match(state: AppState) -> str | None:
    state.compare.cycle_match()
    return None


def cycle_metric(state: AppState) -> str | None:
    state.compare.cycle_metric()
    return None


# ---------------------------------------------------------------------------
# File picker
# ---------------------------------------------------------------------------

def show_file_picker(state: AppState) -> None:
    dirs = state.store.list_adapter_dirs()
    state.popup = popups.FilePicker(
        level=popups.PICKER_ADAPTERS,
        labels=tuple(d.display_string() for d in dirs),
        paths=tuple(d.path for d in dirs),
    )


def _open_adapter_dir(state: AppState, path: str) -> None:
    infos = state.store.list_session_infos(path)
    state.popup = popups.FilePicker(
        level=popups.PICKER_SESSIONS,
        labels=tuple(info.display_string() for info in infos),
        paths=tuple(info.path for info in infos),
    )


# ---------------------------------------------------------------------------
# Quit
# ---------------------------------------------------------------------------

def _config_snapshot(state: AppState) -> Config:
    live = state.live
    return replace(
        state.config,
        auto_scan_interval_secs=live.auto_scan_interval,
        default_timer_secs=live.timer_target_secs or 0,
        show_channel=live.show_channel,
        show_band=live.show_band,
        highlight_best=live.highlight_best,
        sort_by=live.sort_by,
        frequency_filter=live.frequency_filter,
        history_time_window_mins=state.history.time_window_mins,
        history_show_average=state.history.show_average,
        compare_match_by=state.compare.match_by,
        compare_metric=state.compare.metric,
        excluded_aps=list(state.config.excluded_aps),
    )


def request_quit(state: AppState) -> None:
    """Quit, asking first when a scan is running or scans are unsaved."""
    if state.live.scanning or state.session_modified:
        state.popup = popups.ConfirmQuit(scanning=state.live.scanning)
    else:
        quit_app(state, save=True)


def quit_app(state: AppState, *, save: bool) -> None:
    """Flush the session (when *save*) and config, then stop the loop.

    Failures are logged and queued in ``exit_messages`` for display after
    the terminal is restored; they never prevent the exit.
    """
    if save and state.session_modified:
        error = save_session(state)
        if error:
            state.exit_messages.append(f"Warning: {error}")
    try:
        save_config(_config_snapshot(state), state.config_path)
    except PersistenceError as exc:
        logger.error("failed to save config: %s", exc)
        state.exit_messages.append(f"Warning: Failed to save config: {exc}")
    state.running = False


# ---------------------------------------------------------------------------
# Tick
# ---------------------------------------------------------------------------

def tick(state: AppState) -> None:
    """Advance timers, collect a finished scan and apply the auto-scan policy."""
    if state.session is not None:
        state.live.elapsed_secs = state.session.elapsed(state.wall_clock())

    if state.scanner is not None:
        outcome = state.scanner.poll()
        if outcome is not None:
            state.live.scanning = False
            state.last_scan_at = state.monotonic()
            if isinstance(outcome, ScanDelivered):
                state.live.access_points = outcome.result.access_points
                state.live.last_scan_error = None
                if state.session is not None:
                    state.session.add_scan(outcome.result)
                    state.session_modified = True
                _clamp_live_selection(state)
            else:
                state.live.last_scan_error = outcome.message
                logger.warning("scan failed: %s", outcome.message)

    if (
        state.live.auto_scan
        and state.screen == SCREEN_LIVE
        and state.popup is None
        and not state.live.scanning
        and state.live.adapter is not None
    ):
        due = (
            state.last_scan_at is None
            or state.monotonic() - state.last_scan_at >= state.live.auto_scan_interval
        )
        if due:
            request_scan(state)


# ---------------------------------------------------------------------------
# Key dispatch
# ---------------------------------------------------------------------------

def _apply_action(state: AppState, action: popups.Action) -> str | None:
    if isinstance(action, popups.ApplyRename):
        return rename_adapter(state, action.label)
    if isinstance(action, popups.ApplyTimer):
        if not action.minutes:
            return None
        return set_timer(state, action.minutes)
    if isinstance(action, popups.OpenAdapterDir):
        _open_adapter_dir(state, action.path)
        return None
    if isinstance(action, popups.PickerBack):
        show_file_picker(state)
        return None
    if isinstance(action, popups.LoadSession):
        state.popup = None
        return load_session(state, action.path)
    if isinstance(action, popups.Export):
        return export(state, action.fmt)
    if isinstance(action, popups.Quit):
        quit_app(state, save=action.save)
        return None
    if isinstance(action, popups.Exclude):
        return exclude_ap(state, action.bssid, action.ssid, action.scope)
    return None


def _handle_live_key(state: AppState, key: str) -> str | None:
    live = state.live
    if key == " ":
        return request_scan(state)
    if key == "a":
        live.auto_scan = not live.auto_scan
    elif key == "t":
        current = str(live.timer_target_secs // 60) if live.timer_target_secs else ""
        state.popup = popups.TimerSetup(input=current, cursor=len(current))
    elif key == "r":
        if live.adapter is None:
            return "No adapter selected"
        current = live.adapter.label or ""
        state.popup = popups.RenameAdapter(input=current, cursor=len(current))
    elif key == "c":
        live.show_channel = not live.show_channel
    elif key == "b":
        live.show_band = not live.show_band
    elif key == "f":
        return cycle_filter(state)
    elif key == "s":
        return cycle_sort(state)
    elif key == "h":
        live.highlight_best = not live.highlight_best
    elif key == "x":
        ap = selected_live_ap(state)
        if ap is not None:
            state.popup = popups.ExcludeAp(bssid=ap.bssid, ssid=ap.ssid)
    elif key == "e":
        state.popup = popups.ExportChoice()
    elif key == "up":
        live.selected = max(0, live.selected - 1)
    elif key == "down":
        count = len(visible_aps(state))
        if count:
            live.selected = min(live.selected + 1, count - 1)
    return None


def _handle_history_key(state: AppState, key: str) -> str | None:
    history = state.history
    if key in ("l", "+"):
        show_file_picker(state)
    elif key == "w":
        history.cycle_time_window()
    elif key == "d":
        history.toggle_average()
    elif key == "e":
        state.popup = popups.ExportChoice()
    elif key == "up":
        history.select_prev_ap()
    elif key == "down":
        history.select_next_ap()
    return None


def _handle_compare_key(state: AppState, key: str) -> str | None:
    compare = state.compare
    if key == "+":
        show_file_picker(state)
    elif key == "x":
        compare.remove_selected_session()
    elif key == "m":
        return cycle_match(state)
    elif key == "M":
        return cycle_metric(state)
    elif key == "e":
        state.popup = popups.ExportChoice()
    elif key == "up":
        compare.select_prev_ap()
    elif key == "down":
        compare.select_next_ap()
    elif key == "left":
        compare.select_prev_session()
        compare.ensure_session_visible(COMPARE_LIST_HEIGHT)
    elif key == "right":
        compare.select_next_session()
        compare.ensure_session_visible(COMPARE_LIST_HEIGHT)
    return None


def handle_key(state: AppState, key: str) -> None:
    """Dispatch one key press: open popup first, then global, then screen keys."""
    if state.popup is not None:
        next_popup, action = popups.handle_key(state.popup, key)
        state.popup = next_popup
        if action is not None:
            error = _apply_action(state, action)
            if error:
                show_error(state, error)
        return

    if key in ("q", "ctrl-c"):
        request_quit(state)
        return
    if key in ("1", "2", "3"):
        switch_screen(state, SCREENS[int(key) - 1])
        return

    if state.screen == SCREEN_LIVE:
        error = _handle_live_key(state, key)
    elif state.screen == SCREEN_HISTORY:
        error = _handle_history_key(state, key)
    else:
        error = _handle_compare_key(state, key)
    if error:
        show_error(state, error)
