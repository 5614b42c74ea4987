"""Command-line entry point and the interactive run loop.

Usage::

    wificomp [-i IFACE] [--no-auto-scan] [--debug] [--list-adapters]
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

from rich.console import Console
from rich.live import Live

from wificomp import app
from wificomp.config import default_config_path, load_config
from wificomp.display.keys import KeyReader
from wificomp.display.screens import render_app
from wificomp.errors import AdapterDetectionError
from wificomp.scan_worker import ScanController
from wificomp.scanning.adapters import detect_adapters
from wificomp.scanning.iw import scan_wifi
from wificomp.storage.sessions import SessionStore, default_data_dir
from wificomp.wifi_common import Adapter

logger = logging.getLogger(__name__)

# Upper bound on how long the loop waits for a key before ticking.
KEY_WAIT_SECS = 0.25

DEBUG_LOG_NAME = "wificomp-debug.log"


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="wificomp",
        description="WiFi scan sessions, signal history and adapter comparison",
    )
    parser.add_argument(
        "-i", "--interface",
        help="wireless interface to scan with (default: first detected adapter)",
    )
    parser.add_argument(
        "--no-auto-scan",
        action="store_true",
        help="start with auto-scan off; press space to scan",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help=f"write debug logging to {DEBUG_LOG_NAME} in the data directory",
    )
    parser.add_argument(
        "--list-adapters",
        action="store_true",
        help="list detected wireless adapters and exit",
    )
    return parser.parse_args(argv)


def _configure_logging(debug: bool, data_dir: str) -> str | None:
    """Route log records to a file when *debug* is set.

    The TUI owns the terminal, so nothing goes to stderr while it runs.
    Returns the log path, or None when file logging is off or unavailable.
    """
    root = logging.getLogger()
    if not debug:
        root.addHandler(logging.NullHandler())
        return None

    log_path = os.path.join(data_dir, DEBUG_LOG_NAME)
    try:
        os.makedirs(data_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    except OSError as exc:
        print(f"Warning: cannot open debug log {log_path}: {exc}", file=sys.stderr)
        return None
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s %(name)s: %(levelname)s: %(message)s")
    )
    root.addHandler(file_handler)
    root.setLevel(logging.DEBUG)
    return log_path


def _list_adapters(console: Console) -> int:
    try:
        adapters = detect_adapters()
    except AdapterDetectionError as exc:
        console.print(f"[red]{exc}[/red]")
        return 1
    if not adapters:
        console.print("[yellow]No wireless adapters detected.[/yellow]")
        return 0
    for adapter in adapters:
        console.print(
            f"  [bold]{adapter.interface}[/bold]  driver={adapter.driver}  "
            f"chipset={adapter.chipset}"
        )
    return 0


def _select_adapter(state: app.AppState, interface: str | None) -> None:
    """Make the requested (or first detected) adapter current.

    Detection problems open an error popup instead of aborting, so saved
    sessions can still be browsed.
    """
    try:
        adapters = detect_adapters()
    except AdapterDetectionError as exc:
        logger.warning("adapter detection failed: %s", exc)
        adapters = []
        if interface is None:
            app.show_error(state, str(exc))
            return

    if interface is not None:
        adapter = next((a for a in adapters if a.interface == interface), None)
        app.set_adapter(state, adapter or Adapter(interface=interface))
        return
    if not adapters:
        app.show_error(state, "No wireless adapters found")
        return
    logger.debug("auto-selected adapter: %s", adapters[0].interface)
    app.set_adapter(state, adapters[0])


def _run_loop(state: app.AppState, console: Console) -> None:
    with KeyReader() as keys, Live(
        console=console, screen=True, auto_refresh=False,
    ) as live:
        while state.running:
            live.update(render_app(state, console.width, console.height), refresh=True)
            key = keys.read_key(KEY_WAIT_SECS)
            if key is not None:
                app.handle_key(state, key)
            app.tick(state)


def run(argv: list[str] | None = None) -> int:
    """Run wificomp and return the process exit code."""
    args = _parse_args(argv)
    data_dir = default_data_dir()
    log_path = _configure_logging(args.debug, data_dir)
    console = Console()

    if args.list_adapters:
        return _list_adapters(console)

    config_path = default_config_path()
    config = load_config(config_path)
    state = app.new_app_state(
        config,
        ScanController(scan_wifi),
        store=SessionStore(data_dir),
        config_path=config_path,
    )
    if args.no_auto_scan:
        state.live.auto_scan = False
    _select_adapter(state, args.interface)
    logger.debug(
        "startup: interface=%s auto_scan=%s data_dir=%s config=%s log=%s",
        args.interface, state.live.auto_scan, data_dir, config_path, log_path,
    )

    try:
        _run_loop(state, console)
    except KeyboardInterrupt:
        app.quit_app(state, save=True)

    for message in state.exit_messages:
        print(message, file=sys.stderr)
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
