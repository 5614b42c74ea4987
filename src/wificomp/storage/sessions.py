"""Session persistence: JSON save/load, validation and listing.

Sessions live under a per-adapter subdirectory of the data directory::

    <base>/<adapter.safe_name()>/<YYYYmmdd_HHMMSS_ffffff>.json

Files are created exclusively and never overwritten or deleted.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from wificomp.errors import PersistenceError
from wificomp.wifi_common import (
    SESSION_VERSION,
    AccessPoint,
    Adapter,
    ScanResult,
    Session,
    SessionValidation,
    utc_now,
)

logger = logging.getLogger(__name__)

_TIMESTAMP_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d+))?"
    r"(?P<tz>Z|z|[+-]\d{2}:?\d{2})?$"
)


def default_data_dir() -> str:
    """Return the base directory for saved sessions.

    ``$WIFICOMP_DATA_DIR`` wins, then ``$XDG_DATA_HOME/wificomp/sessions``,
    then ``~/.local/share/wificomp/sessions``.
    """
    override = os.environ.get("WIFICOMP_DATA_DIR")
    if override:
        return override
    xdg = os.environ.get("XDG_DATA_HOME") or os.path.join(
        os.path.expanduser("~"), ".local", "share",
    )
    return os.path.join(xdg, "wificomp", "sessions")


# ---------------------------------------------------------------------------
# Timestamp encoding
# ---------------------------------------------------------------------------

def format_timestamp(value: datetime) -> str:
    """Encode *value* as RFC 3339 UTC with microseconds and a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_timestamp(text: str) -> datetime:
    """Decode an RFC 3339 timestamp into an aware UTC datetime.

    Accepts ``Z`` or numeric offsets and any number of fractional digits
    (extra precision beyond microseconds is truncated).  A timestamp with
    no offset is taken as UTC.

    Raises:
        TypeError: *text* is not a string.
        ValueError: *text* is not a recognizable timestamp.
    """
    if not isinstance(text, str):
        raise TypeError(f"timestamp must be a string, got {type(text).__name__}")
    match = _TIMESTAMP_RE.match(text.strip())
    if not match:
        raise ValueError(f"invalid timestamp: {text!r}")
    normalized = match.group("base").replace(" ", "T")
    frac = match.group("frac")
    if frac:
        normalized += "." + frac[:6].ljust(6, "0")
    tz = match.group("tz")
    if tz is None or tz in ("Z", "z"):
        tz = "+00:00"
    elif ":" not in tz:
        tz = f"{tz[:3]}:{tz[3:]}"
    return datetime.fromisoformat(normalized + tz).astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def session_to_dict(session: Session) -> dict[str, Any]:
    """Return the JSON-ready representation of *session*."""
    adapter = session.adapter
    return {
        "version": session.version,
        "adapter": {
            "interface": adapter.interface,
            "driver": adapter.driver,
            "chipset": adapter.chipset,
            "label": adapter.label,
        },
        "started_at": format_timestamp(session.started_at),
        "duration_target_secs": session.duration_target_secs,
        "scans": [
            {
                "timestamp": format_timestamp(scan.timestamp),
                "access_points": [
                    {
                        "bssid": ap.bssid,
                        "ssid": ap.ssid,
                        "signal_dbm": ap.signal_dbm,
                        "channel": ap.channel,
                        "frequency_mhz": ap.frequency_mhz,
                    }
                    for ap in scan.access_points
                ],
            }
            for scan in session.scans
        ],
    }


def _access_point_from_dict(data: dict[str, Any]) -> AccessPoint:
    return AccessPoint(
        bssid=str(data["bssid"]),
        ssid=str(data.get("ssid") or ""),
        signal_dbm=int(data["signal_dbm"]),
        channel=int(data["channel"]),
        frequency_mhz=int(data["frequency_mhz"]),
    )


def session_from_dict(data: dict[str, Any]) -> Session:
    """Build a Session from its JSON representation.

    Optional fields take their defaults: ``version`` -> ``"1.0"``,
    ``duration_target_secs`` and ``label`` -> None, ``ssid`` -> ``""``.

    Raises:
        KeyError, TypeError, ValueError: a required field is missing or
            has the wrong type.
    """
    adapter_data = data["adapter"]
    if not isinstance(adapter_data, dict):
        raise TypeError("adapter must be an object")
    label = adapter_data.get("label")
    if label is not None and not isinstance(label, str):
        raise TypeError(f"adapter label must be a string, got {type(label).__name__}")
    adapter = Adapter(
        interface=str(adapter_data["interface"]),
        driver=str(adapter_data.get("driver", "unknown")),
        chipset=str(adapter_data.get("chipset", "unknown")),
        label=label,
    )
    target = data.get("duration_target_secs")
    scans = [
        ScanResult(
            timestamp=parse_timestamp(scan["timestamp"]),
            access_points=tuple(
                _access_point_from_dict(ap) for ap in scan.get("access_points", [])
            ),
        )
        for scan in data.get("scans", [])
    ]
    return Session(
        adapter=adapter,
        started_at=parse_timestamp(data["started_at"]),
        duration_target_secs=int(target) if target is not None else None,
        scans=scans,
        version=str(data.get("version") or SESSION_VERSION),
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate(session: Session) -> SessionValidation:
    """Check *session* for integrity problems.

    A session is valid when it has at least one scan and at least one
    distinct access point.  Problems are reported as warnings; the session
    remains usable either way.
    """
    warnings: list[str] = []
    scan_count = len(session.scans)
    has_scans = scan_count > 0
    ap_count = len(session.unique_aps())

    if not has_scans:
        warnings.append("Session has no scan data")
    if not session.adapter.interface:
        warnings.append("Session has no adapter interface")
    empty_scans = sum(1 for scan in session.scans if not scan.access_points)
    if empty_scans > 0 and empty_scans == scan_count:
        warnings.append("All scans are empty (no APs detected)")

    return SessionValidation(
        is_valid=has_scans and ap_count > 0,
        has_scans=has_scans,
        scan_count=scan_count,
        ap_count=ap_count,
        warnings=warnings,
    )


# ---------------------------------------------------------------------------
# Listing records
# ---------------------------------------------------------------------------

@dataclass
class AdapterDirInfo:
    """An adapter subdirectory holding at least one saved session."""

    path: str
    name: str
    session_count: int

    def display_string(self) -> str:
        return f"[{self.name}] ({self.session_count} sessions)"


@dataclass
class SessionInfo:
    """Summary of one saved session, used by the file picker."""

    path: str
    adapter_name: str
    interface: str
    chipset: str
    label: str | None
    started_at: datetime
    scan_count: int

    @classmethod
    def from_session(cls, path: str, session: Session) -> "SessionInfo":
        return cls(
            path=path,
            adapter_name=session.adapter.display_name(),
            interface=session.adapter.interface,
            chipset=session.adapter.chipset,
            label=session.adapter.label,
            started_at=session.started_at,
            scan_count=len(session.scans),
        )

    def display_string(self) -> str:
        """Short form used inside an adapter directory."""
        return f"{self.started_at.strftime('%m-%d %H:%M')} - {self.scan_count} scans"


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

def _json_files(directory: str) -> list[str]:
    try:
        names = os.listdir(directory)
    except OSError:
        return []
    return [
        os.path.join(directory, name)
        for name in names
        if name.endswith(".json") and os.path.isfile(os.path.join(directory, name))
    ]


def _mtime(path: str) -> float:
    try:
        return os.path.getmtime(path)
    except OSError:
        return 0.0


class SessionStore:
    """Reads and writes sessions under *base_dir*.

    Args:
        base_dir: Root of the per-adapter session directories.  Defaults to
            :func:`default_data_dir`.
    """

    def __init__(self, base_dir: str | None = None) -> None:
        self.base_dir = base_dir or default_data_dir()

    def adapter_dir(self, adapter: Adapter) -> str:
        return os.path.join(self.base_dir, adapter.safe_name())

    def save(self, session: Session, *, now: datetime | None = None) -> str:
        """Write *session* to a new file and return its path.

        The filename is the UTC save time with microseconds.  The file is
        opened in exclusive-create mode; if the name is taken a ``-N``
        suffix is appended until a free name is found.

        Raises:
            PersistenceError: the directory or file could not be written.
        """
        directory = self.adapter_dir(session.adapter)
        stamp = (now or utc_now()).astimezone(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
        payload = json.dumps(session_to_dict(session), indent=2)

        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as exc:
            raise PersistenceError(f"Failed to create session directory: {exc}") from exc

        counter = 0
        while True:
            name = f"{stamp}.json" if counter == 0 else f"{stamp}-{counter}.json"
            path = os.path.join(directory, name)
            try:
                with open(path, "x", encoding="utf-8") as f:
                    f.write(payload)
                    f.write("\n")
            except FileExistsError:
                counter += 1
                continue
            except OSError as exc:
                raise PersistenceError(f"Failed to write session file: {exc}") from exc
            break

        logger.debug("sessions: saved %d scan(s) to %s", len(session.scans), path)
        return path

    def load(self, path: str) -> Session:
        """Read the session stored at *path*.

        Raises:
            PersistenceError: the file is unreadable, not JSON, or missing
                required fields.
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except OSError as exc:
            raise PersistenceError(f"Failed to read session file: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"Failed to parse session file: {exc}") from exc

        if not isinstance(data, dict):
            raise PersistenceError("Failed to parse session file: expected a JSON object")
        try:
            return session_from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Failed to parse session file: {exc!r}") from exc

    def load_validated(self, path: str) -> tuple[Session, SessionValidation]:
        session = self.load(path)
        return session, validate(session)

    def list_adapter_dirs(self) -> list[AdapterDirInfo]:
        """Adapter directories with at least one session, sorted by name."""
        try:
            names = os.listdir(self.base_dir)
        except OSError:
            return []

        dirs: list[AdapterDirInfo] = []
        for name in names:
            path = os.path.join(self.base_dir, name)
            if not os.path.isdir(path):
                continue
            count = len(_json_files(path))
            if count > 0:
                dirs.append(AdapterDirInfo(path=path, name=name, session_count=count))
        dirs.sort(key=lambda d: d.name.lower())
        return dirs

    def list_sessions_in_dir(self, directory: str) -> list[str]:
        """Session file paths in *directory*, newest first by mtime."""
        return sorted(_json_files(directory), key=_mtime, reverse=True)

    def list_session_infos(self, adapter_dir: str | None = None) -> list[SessionInfo]:
        """Summaries of every readable session.

        Args:
            adapter_dir: Restrict the listing to one adapter directory.
                When None, every adapter directory is listed.

        Corrupt or unreadable files are skipped with a warning.
        """
        if adapter_dir is not None:
            paths = self.list_sessions_in_dir(adapter_dir)
        else:
            paths = []
            for info in self.list_adapter_dirs():
                paths.extend(_json_files(info.path))
            paths.sort(key=_mtime, reverse=True)

        infos: list[SessionInfo] = []
        for path in paths:
            try:
                session = self.load(path)
            except PersistenceError as exc:
                logger.warning("sessions: skipping %s: %s", path, exc)
                continue
            infos.append(SessionInfo.from_session(path, session))
        return infos
