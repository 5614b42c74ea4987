"""Cross-session comparison of access point signal strength.

The functions here are pure: they take the loaded sessions plus a match
policy (``"bssid"``, ``"ssid"`` or ``"both"``) and a metric (``"avg"``,
``"min"`` or ``"max"``) and never touch I/O.  :class:`CompareState` keeps
the compare screen's selection on top of them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from wificomp.wifi_common import (
    MATCH_ORDER,
    METRIC_ORDER,
    AccessPoint,
    Session,
    next_in_cycle,
    truncating_div,
)


def identity_key(bssid: str, ssid: str, match: str) -> str:
    """Return the de-duplication key for an access point under *match*."""
    if match == "ssid":
        return ssid
    if match == "both":
        return f"{bssid}|{ssid}"
    return bssid


def matches(ap: AccessPoint, identity: tuple[str, str], match: str) -> bool:
    bssid, ssid = identity
    if match == "ssid":
        return ap.ssid == ssid
    if match == "both":
        return ap.bssid == bssid and ap.ssid == ssid
    return ap.bssid == bssid


def session_name(session: Session) -> str:
    """Label if set, else interface name."""
    return session.adapter.label or session.adapter.interface


def _signals(session: Session, identity: tuple[str, str], match: str) -> list[int]:
    return [
        ap.signal_dbm
        for scan in session.scans
        for ap in scan.access_points
        if matches(ap, identity, match)
    ]


def unique_identities(sessions: Sequence[Session], match: str) -> list[tuple[str, str]]:
    """All ``(bssid, ssid)`` identities across *sessions*, in first-seen order.

    Two access points are the same identity when their :func:`identity_key`
    under *match* is equal; the first sighting's pair is kept.
    """
    seen: set[str] = set()
    identities: list[tuple[str, str]] = []
    for session in sessions:
        for bssid, ssid in session.unique_aps():
            key = identity_key(bssid, ssid, match)
            if key not in seen:
                seen.add(key)
                identities.append((bssid, ssid))
    return identities


def comparison_row(
    identity: tuple[str, str],
    sessions: Sequence[Session],
    match: str,
    metric: str,
) -> list[tuple[str, int | None]]:
    """Reduce each session's sightings of *identity* to one value.

    Returns:
        One ``(adapter_name, value)`` pair per session, in session order.
        ``value`` is None when the session never saw the identity, so "no
        data" stays distinct from a weak signal.  ``avg`` truncates toward
        zero.
    """
    row: list[tuple[str, int | None]] = []
    for session in sessions:
        signals = _signals(session, identity, match)
        value: int | None
        if not signals:
            value = None
        elif metric == "min":
            value = min(signals)
        elif metric == "max":
            value = max(signals)
        else:
            value = truncating_div(sum(signals), len(signals))
        row.append((session_name(session), value))
    return row


def best_adapter(
    sessions: Sequence[Session],
    match: str,
) -> tuple[str, int, int] | None:
    """Find the session with the strongest signal for the most identities.

    Each identity awards one win to the session holding its strongest
    single sighting; on an exact tie the earlier session keeps the win.
    The session with the most wins is reported, the earlier one on ties.

    Returns:
        ``(name, wins, total_identities)``, or None when there are no
        sessions or no identities at all.
    """
    if not sessions:
        return None
    identities = unique_identities(sessions, match)
    if not identities:
        return None

    wins = [0] * len(sessions)
    for identity in identities:
        best_signal: int | None = None
        best_idx: int | None = None
        for idx, session in enumerate(sessions):
            signals = _signals(session, identity, match)
            if not signals:
                continue
            strongest = max(signals)
            if best_signal is None or strongest > best_signal:
                best_signal = strongest
                best_idx = idx
        if best_idx is not None:
            wins[best_idx] += 1

    best_idx = 0
    for idx, count in enumerate(wins):
        if count > wins[best_idx]:
            best_idx = idx
    return session_name(sessions[best_idx]), wins[best_idx], len(identities)


# ---------------------------------------------------------------------------
# Compare screen state
# ---------------------------------------------------------------------------

@dataclass
class CompareState:
    """Sessions loaded for comparison plus the current selection."""

    sessions: list[Session] = field(default_factory=list)
    selected_session_idx: int = 0
    session_list_offset: int = 0
    selected_ap_idx: int = 0
    match_by: str = MATCH_ORDER[0]
    metric: str = METRIC_ORDER[0]

    def add_session(self, session: Session) -> None:
        self.sessions.append(session)

    def remove_selected_session(self) -> Session | None:
        if not self.sessions:
            return None
        removed = self.sessions.pop(self.selected_session_idx)
        if self.selected_session_idx >= len(self.sessions) and self.sessions:
            self.selected_session_idx = len(self.sessions) - 1
        if not self.sessions:
            self.selected_session_idx = 0
        if self.session_list_offset > 0 and self.session_list_offset >= len(self.sessions):
            self.session_list_offset = max(0, len(self.sessions) - 1)
        self.clamp_ap_selection()
        return removed

    def selected_session(self) -> Session | None:
        if 0 <= self.selected_session_idx < len(self.sessions):
            return self.sessions[self.selected_session_idx]
        return None

    def select_next_session(self) -> None:
        if self.sessions:
            self.selected_session_idx = min(self.selected_session_idx + 1, len(self.sessions) - 1)

    def select_prev_session(self) -> None:
        self.selected_session_idx = max(0, self.selected_session_idx - 1)

    def ensure_session_visible(self, visible_height: int) -> None:
        """Scroll the session list so the selected row is on screen."""
        if visible_height <= 0:
            return
        if self.selected_session_idx < self.session_list_offset:
            self.session_list_offset = self.selected_session_idx
        elif self.selected_session_idx >= self.session_list_offset + visible_height:
            self.session_list_offset = self.selected_session_idx - visible_height + 1

    def identities(self) -> list[tuple[str, str]]:
        return unique_identities(self.sessions, self.match_by)

    def select_next_ap(self) -> None:
        count = len(self.identities())
        if count:
            self.selected_ap_idx = min(self.selected_ap_idx + 1, count - 1)

    def select_prev_ap(self) -> None:
        self.selected_ap_idx = max(0, self.selected_ap_idx - 1)

    def clamp_ap_selection(self) -> None:
        count = len(self.identities())
        self.selected_ap_idx = min(self.selected_ap_idx, max(0, count - 1))

    def cycle_match(self) -> None:
        self.match_by = next_in_cycle(self.match_by, MATCH_ORDER)
        self.clamp_ap_selection()

    def cycle_metric(self) -> None:
        self.metric = next_in_cycle(self.metric, METRIC_ORDER)

    def selected_identity(self) -> tuple[str, str] | None:
        identities = self.identities()
        if 0 <= self.selected_ap_idx < len(identities):
            return identities[self.selected_ap_idx]
        return None

    def comparison_data(self) -> list[tuple[str, int | None]]:
        identity = self.selected_identity()
        if identity is None:
            return []
        return comparison_row(identity, self.sessions, self.match_by, self.metric)

    def best(self) -> tuple[str, int, int] | None:
        return best_adapter(self.sessions, self.match_by)
