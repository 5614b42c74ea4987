"""Popup dialogs as immutable variants with explicit key transitions.

Each popup is a frozen dataclass carrying only the fields its transitions
need.  :func:`handle_key` maps ``(popup, key)`` to ``(next_popup, action)``
where ``next_popup`` is None once the dialog closes and ``action`` is a
request for the application to carry out (or None).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Tuple, Union

# ---------------------------------------------------------------------------
# Popup variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RenameAdapter:
    input: str = ""
    cursor: int = 0


@dataclass(frozen=True)
class TimerSetup:
    input: str = ""
    cursor: int = 0


PICKER_ADAPTERS = "adapters"
PICKER_SESSIONS = "sessions"


@dataclass(frozen=True)
class FilePicker:
    """Two-level picker: adapter directories, then sessions inside one."""

    level: str = PICKER_ADAPTERS
    labels: Tuple[str, ...] = ()
    paths: Tuple[str, ...] = ()
    selected: int = 0


@dataclass(frozen=True)
class ExportChoice:
    selected: int = 0


@dataclass(frozen=True)
class Message:
    """A dismiss-only message; used for errors and notices."""

    message: str
    title: str = "Error"


@dataclass(frozen=True)
class ConfirmQuit:
    selected: int = 0
    scanning: bool = False


@dataclass(frozen=True)
class ExcludeAp:
    bssid: str
    ssid: str
    selected: int = 0


@dataclass(frozen=True)
class SessionWarning:
    message: str
    path: str


Popup = Union[
    RenameAdapter, TimerSetup, FilePicker, ExportChoice, Message,
    ConfirmQuit, ExcludeAp, SessionWarning,
]

EXPORT_OPTIONS = ("JSON", "CSV")
QUIT_OPTIONS = ("Save & Quit", "Quit Without Save", "Cancel")
EXCLUDE_OPTIONS = ("This Session", "Permanently", "Cancel")

# ---------------------------------------------------------------------------
# Actions requested by popups
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApplyRename:
    label: str


@dataclass(frozen=True)
class ApplyTimer:
    minutes: str


@dataclass(frozen=True)
class OpenAdapterDir:
    path: str


@dataclass(frozen=True)
class LoadSession:
    path: str


@dataclass(frozen=True)
class PickerBack:
    pass


@dataclass(frozen=True)
class Export:
    fmt: str  # "json" or "csv"


@dataclass(frozen=True)
class Quit:
    save: bool


@dataclass(frozen=True)
class Exclude:
    bssid: str
    ssid: str
    scope: str  # "session" or "permanent"


Action = Union[
    ApplyRename, ApplyTimer, OpenAdapterDir, LoadSession, PickerBack,
    Export, Quit, Exclude,
]

Transition = Tuple[Optional[Popup], Optional[Action]]


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

def _move(selected: int, key: str, count: int) -> int:
    if key == "up":
        return max(0, selected - 1)
    if key == "down":
        return min(count - 1, selected + 1)
    return selected


def _edit(text: str, cursor: int, key: str, *, digits_only: bool = False) -> tuple[str, int]:
    """Apply a line-editing key to ``(text, cursor)``."""
    if key == "backspace":
        if cursor > 0:
            return text[:cursor - 1] + text[cursor:], cursor - 1
        return text, cursor
    if key == "left":
        return text, max(0, cursor - 1)
    if key == "right":
        return text, min(len(text), cursor + 1)
    if len(key) == 1 and key.isprintable():
        if digits_only and not key.isdigit():
            return text, cursor
        return text[:cursor] + key + text[cursor:], cursor + 1
    return text, cursor


def _handle_text(popup, key: str, *, digits_only: bool) -> Transition:
    if key == "esc":
        return None, None
    if key == "enter":
        if isinstance(popup, RenameAdapter):
            return None, ApplyRename(popup.input)
        return None, ApplyTimer(popup.input)
    text, cursor = _edit(popup.input, popup.cursor, key, digits_only=digits_only)
    return replace(popup, input=text, cursor=cursor), None


def _handle_picker(popup: FilePicker, key: str) -> Transition:
    if key == "esc":
        return None, None
    if key in ("up", "down"):
        if not popup.paths:
            return popup, None
        return replace(popup, selected=_move(popup.selected, key, len(popup.paths))), None
    if key == "enter":
        if not popup.paths:
            return popup, None
        path = popup.paths[popup.selected]
        if popup.level == PICKER_ADAPTERS:
            return popup, OpenAdapterDir(path)
        return popup, LoadSession(path)
    if key == "backspace" and popup.level == PICKER_SESSIONS:
        return popup, PickerBack()
    return popup, None


def _handle_choice(popup, key: str, options: tuple, choose) -> Transition:
    """Shared handling for dialogs that pick one of *options*.

    Digit keys select an option directly; ``choose(index)`` turns a pick
    into a transition.
    """
    if key == "esc":
        return None, None
    if key in ("up", "down"):
        return replace(popup, selected=_move(popup.selected, key, len(options))), None
    if key == "enter":
        return choose(popup.selected)
    if key.isdigit() and 1 <= int(key) <= len(options):
        return choose(int(key) - 1)
    return popup, None


def handle_key(popup: Popup, key: str) -> Transition:
    """Advance *popup* by one key press.

    Args:
        popup: The open popup.
        key: Key name as produced by :class:`wificomp.display.keys.KeyReader`
            (a printable character, or ``"up"``, ``"enter"``, ``"esc"``...).

    Returns:
        ``(next_popup, action)``; ``next_popup`` is None when the popup
        closes.  The application may replace the popup after applying the
        action (for example with an error message).
    """
    if isinstance(popup, RenameAdapter):
        return _handle_text(popup, key, digits_only=False)
    if isinstance(popup, TimerSetup):
        return _handle_text(popup, key, digits_only=True)
    if isinstance(popup, FilePicker):
        return _handle_picker(popup, key)

    if isinstance(popup, ExportChoice):
        def choose_export(idx: int) -> Transition:
            return None, Export("csv" if idx == 1 else "json")
        return _handle_choice(popup, key, EXPORT_OPTIONS, choose_export)

    if isinstance(popup, ConfirmQuit):
        def choose_quit(idx: int) -> Transition:
            if idx == 0:
                return None, Quit(save=True)
            if idx == 1:
                return None, Quit(save=False)
            return None, None
        return _handle_choice(popup, key, QUIT_OPTIONS, choose_quit)

    if isinstance(popup, ExcludeAp):
        def choose_exclude(idx: int) -> Transition:
            if idx == 0:
                return None, Exclude(popup.bssid, popup.ssid, "session")
            if idx == 1:
                return None, Exclude(popup.bssid, popup.ssid, "permanent")
            return None, None
        return _handle_choice(popup, key, EXCLUDE_OPTIONS, choose_exclude)

    # Message and SessionWarning are dismiss-only.
    if key in ("enter", "esc"):
        return None, None
    return popup, None
