"""Non-blocking keyboard input for the TUI.

:class:`KeyReader` puts the terminal in cbreak mode for the lifetime of a
``with`` block and returns key names such as ``"q"``, ``"up"`` or
``"enter"``.  :func:`decode_keys` does the byte-to-name mapping and is
independent of any terminal.
"""

from __future__ import annotations

import collections
import os
import select
import sys
import termios
import time
import tty

# ANSI sequences after ESC; both CSI ("[") and SS3 ("O") arrow forms.
_ESCAPE_SEQUENCES: dict[str, str] = {
    "[A": "up",
    "[B": "down",
    "[C": "right",
    "[D": "left",
    "OA": "up",
    "OB": "down",
    "OC": "right",
    "OD": "left",
}

_CONTROL_KEYS: dict[str, str] = {
    "\r": "enter",
    "\n": "enter",
    "\x7f": "backspace",
    "\x08": "backspace",
    "\x03": "ctrl-c",
    "\t": "tab",
}


def decode_keys(data: str) -> list[str]:
    """Split raw terminal input into key names.

    Printable characters map to themselves.  A lone ESC (or an ESC that
    starts an unknown sequence) is reported as ``"esc"``.
    """
    keys: list[str] = []
    i = 0
    while i < len(data):
        ch = data[i]
        if ch == "\x1b":
            seq = data[i + 1:i + 3]
            if seq in _ESCAPE_SEQUENCES:
                keys.append(_ESCAPE_SEQUENCES[seq])
                i += 3
                continue
            keys.append("esc")
            i += 1
            continue
        if ch in _CONTROL_KEYS:
            keys.append(_CONTROL_KEYS[ch])
        elif ch.isprintable():
            keys.append(ch)
        i += 1
    return keys


class KeyReader:
    """Read key presses from a terminal without blocking the draw loop.

    Args:
        stream: Input stream, defaults to ``sys.stdin``.
    """

    def __init__(self, stream=None) -> None:
        self._stream = stream or sys.stdin
        self._fd = self._stream.fileno()
        self._saved: list | None = None
        self._pending: collections.deque[str] = collections.deque()
        self._eof = False

    def __enter__(self) -> "KeyReader":
        if os.isatty(self._fd):
            self._saved = termios.tcgetattr(self._fd)
            tty.setcbreak(self._fd)
        return self

    def __exit__(self, *exc_info) -> None:
        if self._saved is not None:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved)
            self._saved = None

    def read_key(self, timeout: float) -> str | None:
        """Wait up to *timeout* seconds for a key; None if nothing arrived."""
        if self._pending:
            return self._pending.popleft()
        if self._eof:
            # A closed input is always readable; wait out the timeout instead.
            time.sleep(timeout)
            return None
        readable, _, _ = select.select([self._fd], [], [], timeout)
        if not readable:
            return None
        data = os.read(self._fd, 64)
        if not data:
            self._eof = True
            time.sleep(timeout)
            return None
        self._pending.extend(decode_keys(data.decode("utf-8", errors="ignore")))
        if self._pending:
            return self._pending.popleft()
        return None
