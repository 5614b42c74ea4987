"""Per-AP signal history: time-window filtering and column bucketing."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Sequence

from wificomp.wifi_common import (
    TIME_WINDOW_ORDER,
    Session,
    next_in_cycle,
    round_half_away,
    truncating_div,
    utc_now,
)


def ap_history(session: Session, identity: tuple[str, str]) -> list[tuple[datetime, int]]:
    """Return ``(timestamp, signal_dbm)`` for every sighting of the identity's BSSID."""
    bssid = identity[0]
    return [
        (scan.timestamp, ap.signal_dbm)
        for scan in session.scans
        for ap in scan.access_points
        if ap.bssid == bssid
    ]


def windowed(
    data: Sequence[tuple[datetime, int]],
    window_minutes: int,
    now: datetime,
) -> list[tuple[datetime, int]]:
    """Keep samples no older than *window_minutes* before *now* (0 keeps all)."""
    if window_minutes <= 0:
        return list(data)
    start = now - timedelta(minutes=window_minutes)
    return [sample for sample in data if sample[0] >= start]


def bucketize(
    data: Sequence[tuple[datetime, int]],
    columns: int,
    now: datetime,
    *,
    average: bool = False,
) -> list[tuple[int, int]]:
    """Reduce samples to at most one point per display column.

    Columns span ``[earliest sample, now]``.  A sample lands in column
    ``int(elapsed / span * (columns - 1))``, clamped to the last column.
    Each non-empty column reduces to its last sample, or to the truncating
    mean of its samples when *average* is set.  Empty columns are skipped.
    A zero span or a single sample yields one bucket at column 0.

    Returns:
        ``(column, signal_dbm)`` pairs in column order.
    """
    if not data or columns <= 0:
        return []

    start = min(t for t, _ in data)
    span = (now - start).total_seconds()
    last_col = max(1, columns - 1)

    buckets: dict[int, list[int]] = {}
    if span <= 0 or len(data) == 1:
        buckets[0] = [signal for _, signal in data]
    else:
        for timestamp, signal in data:
            elapsed = (timestamp - start).total_seconds()
            col = int(elapsed / span * last_col)
            col = max(0, min(col, last_col, columns - 1))
            buckets.setdefault(col, []).append(signal)

    points: list[tuple[int, int]] = []
    for col in sorted(buckets):
        signals = buckets[col]
        if average:
            value = truncating_div(sum(signals), len(signals))
        else:
            value = signals[-1]
        points.append((col, value))
    return points


def y_range(data: Sequence[tuple[datetime, int]]) -> tuple[int, int]:
    """Graph y-axis bounds: 5 dB of headroom, clamped to [-100, -20], never empty."""
    signals = [s for _, s in data]
    low = max(-100, min(signals, default=-90) - 5)
    high = min(-20, max(signals, default=-40) + 5)
    if high <= low:
        high = low + 1
    return low, high


@dataclass
class HistoryStats:
    current: int
    avg: int
    min: int
    max: int
    count: int


@dataclass
class HistoryState:
    """History screen state: one loaded session and the selected AP."""

    session: Session | None = None
    selected_ap_idx: int = 0
    time_window_mins: int = 5
    show_average: bool = False

    def set_session(self, session: Session) -> None:
        self.session = session
        self.selected_ap_idx = 0

    def select_next_ap(self) -> None:
        if self.session is None:
            return
        count = len(self.session.unique_aps())
        if count:
            self.selected_ap_idx = min(self.selected_ap_idx + 1, count - 1)

    def select_prev_ap(self) -> None:
        self.selected_ap_idx = max(0, self.selected_ap_idx - 1)

    def cycle_time_window(self) -> None:
        self.time_window_mins = next_in_cycle(self.time_window_mins, TIME_WINDOW_ORDER)

    def toggle_average(self) -> None:
        self.show_average = not self.show_average

    def selected_ap(self) -> tuple[str, str] | None:
        if self.session is None:
            return None
        aps = self.session.unique_aps()
        if 0 <= self.selected_ap_idx < len(aps):
            return aps[self.selected_ap_idx]
        return None

    def ap_data(self) -> list[tuple[datetime, int]]:
        identity = self.selected_ap()
        if self.session is None or identity is None:
            return []
        return ap_history(self.session, identity)

    def windowed_data(self, now: datetime | None = None) -> list[tuple[datetime, int]]:
        return windowed(self.ap_data(), self.time_window_mins, now or utc_now())

    def stats(self, now: datetime | None = None) -> HistoryStats | None:
        """Summary of the samples inside the current time window."""
        data = self.windowed_data(now)
        if not data:
            return None
        signals = [s for _, s in data]
        return HistoryStats(
            current=signals[-1],
            avg=round_half_away(sum(signals) / len(signals)),
            min=min(signals),
            max=max(signals),
            count=len(signals),
        )
