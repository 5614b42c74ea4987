"""Rich renderables for the live, history and compare screens.

Everything here reads an :class:`~wificomp.app.AppState` snapshot and
returns Rich objects; nothing mutates state.  Can be used standalone to
preview the screens with sample data::

    python -m wificomp.display.screens
"""

from __future__ import annotations

from datetime import datetime

from rich.align import Align
from rich.console import Group, RenderableType
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from wificomp import popups
from wificomp.app import (
    COMPARE_LIST_HEIGHT,
    SCREEN_COMPARE,
    SCREEN_HISTORY,
    SCREEN_LIVE,
    AppState,
    history_now,
    visible_aps,
)
from wificomp.history import bucketize, windowed, y_range
from wificomp.wifi_common import (
    COLOR_TO_RICH,
    FILTER_NAMES,
    MATCH_NAMES,
    METRIC_NAMES,
    format_duration,
    format_timer,
    signal_bar_width,
    signal_color,
    truncate,
)

MIN_WIDTH = 60
MIN_HEIGHT = 15
BAR_WIDTH = 28


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _rich_color(rgb: tuple) -> str:  # type: ignore[type-arg]
    """Convert an RGB tuple to a Rich color name."""
    return COLOR_TO_RICH.get(rgb, "white")


def _bar_string(signal_dbm: int, width: int) -> str:
    filled = signal_bar_width(signal_dbm, width)
    return "█" * filled + " " * (width - filled)


def _ssid_markup(ssid: str, max_len: int = 30) -> str:
    if not ssid:
        return "[dim]<hidden>[/dim]"
    return escape(truncate(ssid, max_len))


def _window_name(minutes: int) -> str:
    return "All" if minutes == 0 else f"{minutes}m"


# ---------------------------------------------------------------------------
# Tab bar
# ---------------------------------------------------------------------------

def build_tabs(state: AppState) -> Text:
    tabs = Text(" wificomp ", style="bold cyan")
    for i, (screen, name) in enumerate(
        ((SCREEN_LIVE, "Live"), (SCREEN_HISTORY, "Hist"), (SCREEN_COMPARE, "Cmp")), 1,
    ):
        if i > 1:
            tabs.append(" │ ", style="grey50")
        style = "bold yellow" if state.screen == screen else "grey50"
        tabs.append(f"[{i}]{name}", style=style)
    return tabs


# ---------------------------------------------------------------------------
# Live screen
# ---------------------------------------------------------------------------

def build_ap_table(state: AppState, *, max_rows: int | None = None) -> Table:
    """Table of the latest scan after filters, exclusions and sorting."""
    live = state.live
    items = visible_aps(state)
    best = max((ap.signal_dbm for ap in items), default=None)
    threshold = state.config.alert_threshold_dbm

    table = Table(
        caption=f"{len(items)} networks shown  Filter: {FILTER_NAMES.get(live.frequency_filter, 'All')}"
                f"  Sort: {live.sort_by}",
        caption_style="grey50",
        expand=True,
        show_lines=False,
        padding=(0, 1),
    )
    table.add_column("SSID", style="white", min_width=15, max_width=30)
    table.add_column("dBm", justify="right", width=5)
    table.add_column("Signal", width=BAR_WIDTH)
    if live.show_channel:
        table.add_column("Ch", justify="right", width=4)
    if live.show_band:
        table.add_column("Band", width=4)

    start = 0
    rows = items
    if max_rows is not None and max_rows > 0:
        start = max(0, live.selected - max_rows + 1)
        rows = items[start:start + max_rows]

    for i, ap in enumerate(rows, start):
        sig_c = _rich_color(signal_color(ap.signal_dbm))
        is_best = live.highlight_best and ap.signal_dbm == best
        dbm_style = "bold yellow" if is_best else sig_c
        if threshold is not None and ap.signal_dbm < threshold:
            dbm_style = "bold red"
        row = [
            _ssid_markup(ap.ssid),
            f"[{dbm_style}]{ap.signal_dbm}[/{dbm_style}]",
            f"[{sig_c}]{_bar_string(ap.signal_dbm, BAR_WIDTH)}[/{sig_c}]",
        ]
        if live.show_channel:
            row.append(str(ap.channel))
        if live.show_band:
            row.append(ap.band)
        table.add_row(*row, style="bold on grey23" if i == live.selected else "")

    return table


def build_live_screen(state: AppState, *, max_rows: int | None = None) -> RenderableType:
    live = state.live
    adapter = live.adapter.display_name_full() if live.adapter else "No adapter detected"

    elapsed = live.elapsed_secs
    if live.timer_mode == "elapsed" and live.timer_target_secs is not None:
        timer = f"{format_duration(elapsed)}/{format_duration(live.timer_target_secs)}"
    else:
        timer = format_timer(elapsed, live.timer_target_secs)
    timer_style = "bold red" if live.timer_expired() else "white"
    auto = f"Auto: ON {live.auto_scan_interval}s" if live.auto_scan else "Auto: OFF"
    scans = len(state.session.scans) if state.session else 0

    header = Text()
    header.append(adapter, style="bold")
    header.append("   [r]ename\n", style="grey50")
    header.append("Timer: ")
    header.append(timer, style=timer_style)
    header.append(f"  {auto}  APs: {len(live.access_points)}  Scans: {scans}")
    if live.scanning:
        header.append("  scanning...", style="cyan")
    if state.session_modified:
        header.append("  *unsaved", style="yellow")
    if live.last_scan_error:
        header.append(f"\n{live.last_scan_error}", style="red")

    if live.access_points:
        body: RenderableType = build_ap_table(state, max_rows=max_rows)
    else:
        body = Text("No access points found", style="grey50")

    footer = Text(
        f"[spc]scan [a]uto [t]imer [c]h [b]and [f]req [s]ort:{live.sort_by} "
        "[h]ighlight [x]clude [e]xp [q]uit",
        style="grey50",
    )
    return Group(Panel(header, border_style="cyan"), body, footer)


# ---------------------------------------------------------------------------
# History screen
# ---------------------------------------------------------------------------

def build_graph(
    data: list[tuple[datetime, int]],
    *,
    width: int,
    height: int,
    now: datetime,
    average: bool = False,
) -> Text:
    """Plot one point per column as a block character on a text grid."""
    if not data:
        return Text("No data in time window", style="grey50")

    label_width = 4
    columns = max(1, width - label_width)
    rows = max(2, height - 2)
    low, high = y_range(data)
    span = high - low

    grid: list[list[tuple[str, str]]] = [[(" ", "")] * columns for _ in range(rows)]
    for col, signal in bucketize(data, columns, now, average=average):
        frac = min(1.0, max(0.0, (signal - low) / span))
        row = round((rows - 1) * (1.0 - frac))
        grid[row][col] = ("█", _rich_color(signal_color(signal)))

    labels = {0: high, (rows - 1) // 2: (high + low) // 2, rows - 1: low}
    text = Text()
    for r, cells in enumerate(grid):
        label = f"{labels[r]:>3}" if r in labels else "   "
        text.append(f"{label}│", style="grey50")
        for char, style in cells:
            text.append(char, style=style)
        text.append("\n")
    text.append("   └" + "─" * columns + "\n", style="grey50")

    start = min(t for t, _ in data).astimezone().strftime("%H:%M")
    end = now.astimezone().strftime("%H:%M")
    gap = max(1, columns - len(start) - len(end))
    text.append(" " * label_width + start + " " * gap + end, style="grey50")
    return text


def build_history_screen(
    state: AppState,
    *,
    width: int = 80,
    height: int = 24,
) -> RenderableType:
    history = state.history
    session = history.session
    if session is None:
        return Group(
            Panel(Text("No session loaded   [l]oad", style="grey50"), border_style="cyan"),
        )

    now = history_now(state)
    header = Text()
    header.append(
        f"{session.adapter.display_name()} | "
        f"{session.started_at.astimezone().strftime('%m-%d %H:%M')} | "
        f"{len(session.scans)} scans"
    )
    header.append("   [l]oad\n", style="grey50")
    identity = history.selected_ap()
    if identity is None:
        header.append("No APs\n")
    else:
        bssid, ssid = identity
        header.append("AP: ")
        header.append(truncate(ssid, 20) if ssid else "<hidden>", style="" if ssid else "dim")
        header.append(f" ({bssid})")
        header.append("  [↑][↓]\n", style="grey50")
    header.append(
        f"Time: [{_window_name(history.time_window_mins)}]   "
        f"Data: [{'Avg' if history.show_average else 'Raw'}]"
    )

    data = windowed(history.ap_data(), history.time_window_mins, now)
    graph = build_graph(
        data,
        width=max(20, width - 4),
        height=max(6, height - 12),
        now=now,
        average=history.show_average,
    )

    stats = history.stats(now)
    if stats is None:
        stats_line = Text("No samples", style="grey50")
    else:
        stats_line = Text(
            f"Current: {stats.current} dBm  Avg: {stats.avg}  "
            f"Min: {stats.min}  Max: {stats.max}  Samples: {stats.count}"
        )
    footer = Text("[l]oad [w]indow [d]ata [e]xport [↑][↓] AP [q]uit", style="grey50")
    return Group(
        Panel(header, border_style="cyan"),
        Panel(graph, title="Signal Strength", border_style="grey50"),
        stats_line,
        footer,
    )


# ---------------------------------------------------------------------------
# Compare screen
# ---------------------------------------------------------------------------

def build_compare_screen(state: AppState) -> RenderableType:
    compare = state.compare

    sessions = Table(expand=True, show_lines=False, padding=(0, 1), show_header=False)
    sessions.add_column("#", style="grey50", width=3, justify="right")
    sessions.add_column("Session")
    if not compare.sessions:
        sessions.add_row("", "[grey50]No sessions loaded. Press [+] to add.[/grey50]")
    visible = compare.sessions[
        compare.session_list_offset:compare.session_list_offset + COMPARE_LIST_HEIGHT
    ]
    for i, session in enumerate(visible, compare.session_list_offset):
        desc = (
            f"{escape(session.adapter.display_name_full())} "
            f"({session.started_at.astimezone().strftime('%m-%d %H:%M')}) "
            f"- {len(session.scans)} scans"
        )
        style = "bold yellow" if i == compare.selected_session_idx else ""
        sessions.add_row(str(i + 1), desc, style=style)

    identity = compare.selected_identity()
    if identity is None:
        ap_line = "AP: -"
    else:
        ap_line = f"AP: {truncate(identity[1], 20) or '<hidden>'} ({identity[0]})"
    controls = Text(
        f"{ap_line}   Match: [{MATCH_NAMES[compare.match_by]}]"
        f"   Metric: [{METRIC_NAMES[compare.metric]}]"
    )

    bars = Table(expand=True, show_lines=False, padding=(0, 1))
    bars.add_column("Adapter", min_width=10, max_width=24)
    bars.add_column("dBm", justify="right", width=5)
    bars.add_column("Signal", width=BAR_WIDTH)
    for name, value in compare.comparison_data():
        if value is None:
            bars.add_row(escape(name), "[grey50]--[/grey50]", "[grey50]no data[/grey50]")
            continue
        sig_c = _rich_color(signal_color(value))
        bars.add_row(
            escape(name),
            f"[{sig_c}]{value}[/{sig_c}]",
            f"[{sig_c}]{_bar_string(value, BAR_WIDTH)}[/{sig_c}]",
        )

    best = compare.best()
    if best is None:
        summary = Text("Best: -", style="grey50")
    else:
        name, wins, total = best
        summary = Text(f"Best: {name} ({wins}/{total} APs)", style="bold green")

    footer = Text(
        "[+]add [x]remove [m]atch [M]etric [e]xport [←][→] session [↑][↓] AP [q]uit",
        style="grey50",
    )
    return Group(
        Panel(sessions, title="Sessions", border_style="cyan"),
        controls,
        bars,
        summary,
        footer,
    )


# ---------------------------------------------------------------------------
# Popups
# ---------------------------------------------------------------------------

def _options_text(message: str, options: tuple, selected: int) -> Text:
    text = Text(message + "\n\n", justify="center")
    for i, option in enumerate(options):
        if i == selected:
            text.append(f"▶ {i + 1}. {option}\n", style="bold yellow")
        else:
            text.append(f"  {i + 1}. {option}\n")
    return text


def _input_text(prompt: str, value: str, cursor: int) -> Text:
    text = Text(prompt + "\n\n")
    text.append(value[:cursor])
    text.append("▌", style="yellow")
    text.append(value[cursor:])
    text.append("\n\n[Enter] OK  [Esc] Cancel", style="grey50")
    return text


def build_popup(popup: popups.Popup) -> Panel:
    """Render the open popup as a bordered panel."""
    if isinstance(popup, popups.RenameAdapter):
        return Panel(_input_text("Enter label:", popup.input, popup.cursor),
                     title="Rename Adapter", width=45)
    if isinstance(popup, popups.TimerSetup):
        return Panel(_input_text("Duration (minutes, 0=off):", popup.input, popup.cursor),
                     title="Set Timer", width=45)
    if isinstance(popup, popups.FilePicker):
        text = Text()
        if not popup.labels:
            text.append("No sessions found\n", style="grey50")
        for i, label in enumerate(popup.labels):
            if i == popup.selected:
                text.append(f"▶ {label}\n", style="bold yellow")
            else:
                text.append(f"  {label}\n")
        hint = "[Enter] Open  [Esc] Cancel"
        if popup.level == popups.PICKER_SESSIONS:
            hint = "[Enter] Load  [Bksp] Back  [Esc] Cancel"
        text.append(f"\n{hint}", style="grey50")
        return Panel(text, title="Load Session", width=60)
    if isinstance(popup, popups.ExportChoice):
        return Panel(_options_text("Choose export format:", popups.EXPORT_OPTIONS, popup.selected),
                     title="Export Format", width=50)
    if isinstance(popup, popups.ConfirmQuit):
        message = ("Scan in progress. Quit anyway?" if popup.scanning
                   else "Unsaved session data. Quit anyway?")
        return Panel(_options_text(message, popups.QUIT_OPTIONS, popup.selected),
                     title="Confirm Quit", width=50)
    if isinstance(popup, popups.ExcludeAp):
        name = popup.ssid or "<hidden>"
        return Panel(_options_text(f"Exclude '{name}'?", popups.EXCLUDE_OPTIONS, popup.selected),
                     title="Exclude AP", width=50)
    if isinstance(popup, popups.SessionWarning):
        return Panel(Text(popup.message + "\n\n[Enter] OK"), title="Warning",
                     border_style="yellow", width=60)
    title = popup.title
    style = "red" if title == "Error" else "cyan"
    return Panel(Text(popup.message + "\n\n[Enter] OK"), title=title, border_style=style, width=60)


# ---------------------------------------------------------------------------
# Whole frame
# ---------------------------------------------------------------------------

def render_app(state: AppState, width: int = 80, height: int = 24) -> RenderableType:
    """Build the full frame for the current screen, popup on top."""
    if width < MIN_WIDTH or height < MIN_HEIGHT:
        return Panel(
            Text(f"Terminal too small\nNeed: {MIN_WIDTH}x{MIN_HEIGHT}\nHave: {width}x{height}",
                 style="red"),
            title="wificomp",
        )

    if state.screen == SCREEN_HISTORY:
        body = build_history_screen(state, width=width, height=height)
    elif state.screen == SCREEN_COMPARE:
        body = build_compare_screen(state)
    else:
        body = build_live_screen(state, max_rows=max(1, height - 12))

    if state.popup is not None:
        body = Align.center(build_popup(state.popup), vertical="middle", height=height - 2)
    return Group(build_tabs(state), body)


# ---------------------------------------------------------------------------
# Standalone CLI (demo)
# ---------------------------------------------------------------------------

def main() -> None:
    """Render the live screen with sample data for visual testing."""
    from rich.console import Console

    from wificomp.wifi_common import AccessPoint, Adapter

    state = AppState()
    state.live.adapter = Adapter(interface="wlan0", driver="iwlwifi", chipset="Intel WiFi")
    state.live.access_points = (
        AccessPoint("AA:BB:CC:DD:EE:01", "HomeNet", -45, 6, 2437),
        AccessPoint("AA:BB:CC:DD:EE:02", "Office", -65, 36, 5180),
        AccessPoint("AA:BB:CC:DD:EE:03", "", -80, 1, 2412),
    )
    console = Console()
    console.print(render_app(state, console.width, console.height))


if __name__ == "__main__":
    main()
