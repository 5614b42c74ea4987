"""Export sessions and comparison results as JSON or CSV."""

from __future__ import annotations

import csv
import json
import logging
import os
from datetime import datetime, timezone
from typing import Sequence

from wificomp.errors import PersistenceError
from wificomp.storage.sessions import session_to_dict
from wificomp.wifi_common import Session, utc_now

logger = logging.getLogger(__name__)

SCAN_CSV_HEADER = [
    "timestamp", "bssid", "ssid", "signal_dbm", "channel", "frequency_mhz", "band",
]
COMPARISON_CSV_HEADER = [
    "adapter", "interface", "label", "avg_signal", "min_signal", "max_signal", "scan_count",
]


def export_filename(ext: str, *, now: datetime | None = None) -> str:
    """Return ``wificomp_export_<YYYYmmdd_HHMMSS>.<ext>`` for local time *now*."""
    now = now or datetime.now()
    return f"wificomp_export_{now.strftime('%Y%m%d_%H%M%S')}.{ext}"


def _write_text(path: str, writer_fn) -> None:
    try:
        with open(path, "w", encoding="utf-8", newline="") as f:
            writer_fn(f)
    except OSError as exc:
        raise PersistenceError(f"Failed to write {os.path.basename(path)}: {exc}") from exc


def _csv_writer(f):
    # QUOTE_MINIMAL quotes fields holding a comma, quote or newline and
    # doubles embedded quotes.
    return csv.writer(f, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")


def export_json(session: Session, path: str) -> None:
    """Write *session* to *path* in the session file format.

    Raises:
        PersistenceError: the file could not be written.
    """
    def _write(f):
        json.dump(session_to_dict(session), f, indent=2)
        f.write("\n")

    _write_text(path, _write)
    logger.debug("export: wrote JSON session to %s", path)


def export_csv(session: Session, path: str) -> None:
    """Write one CSV row per access point sighting in *session*.

    Raises:
        PersistenceError: the file could not be written.
    """
    def _write(f):
        writer = _csv_writer(f)
        writer.writerow(SCAN_CSV_HEADER)
        for scan in session.scans:
            stamp = scan.timestamp.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
            for ap in scan.access_points:
                writer.writerow([
                    stamp, ap.bssid, ap.ssid, ap.signal_dbm,
                    ap.channel, ap.frequency_mhz, ap.band,
                ])

    _write_text(path, _write)
    logger.debug("export: wrote %d scan(s) as CSV to %s", len(session.scans), path)


def export_comparison_csv(sessions: Sequence[Session], bssid: str, path: str) -> None:
    """Write one row per session with its statistics for *bssid*.

    Sessions that never saw *bssid* get ``N/A`` statistics and a count of 0.

    Raises:
        PersistenceError: the file could not be written.
    """
    def _write(f):
        writer = _csv_writer(f)
        writer.writerow(COMPARISON_CSV_HEADER)
        for session in sessions:
            adapter = session.adapter
            prefix = [adapter.chipset, adapter.interface, adapter.label or ""]
            stats = session.ap_stats(bssid)
            if stats is None:
                writer.writerow(prefix + ["N/A", "N/A", "N/A", 0])
            else:
                writer.writerow(prefix + [stats.avg, stats.min, stats.max, stats.count])

    _write_text(path, _write)
    logger.debug("export: wrote comparison of %d session(s) to %s", len(sessions), path)


def export_to_cwd(kind: str, write_fn, *, now: datetime | None = None) -> str:
    """Export into the working directory under a timestamped filename.

    Args:
        kind: File extension, ``"json"`` or ``"csv"``.
        write_fn: Callable taking the destination path.
        now: Override for the filename timestamp (for testing).

    Returns:
        The filename written.
    """
    filename = export_filename(kind, now=now or utc_now().astimezone())
    write_fn(os.path.join(os.getcwd(), filename))
    return filename
