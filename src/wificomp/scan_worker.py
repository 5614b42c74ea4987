"""Background scan worker.

Runs one scan at a time on a daemon thread so a slow ``iw`` never blocks
the interactive loop.  The worker sends exactly one message over a
single-use queue and exits; the loop polls without blocking.  A worker
that dies without sending anything is reported as a crash.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Callable, Union

from wificomp.errors import ScanError
from wificomp.wifi_common import ScanResult

logger = logging.getLogger(__name__)

CRASHED_MESSAGE = "Scan worker crashed"


@dataclass(frozen=True)
class ScanDelivered:
    result: ScanResult


@dataclass(frozen=True)
class ScanFailed:
    message: str


@dataclass(frozen=True)
class ScanCrashed:
    message: str = CRASHED_MESSAGE


ScanOutcome = Union[ScanDelivered, ScanFailed, ScanCrashed]
ScanFunction = Callable[[str], ScanResult]


class ScanController:
    """Runs at most one scan in flight and hands back its outcome.

    Args:
        scan_fn: Callable taking an interface name and returning a
            :class:`ScanResult`; raises :class:`ScanError` on failure.
    """

    def __init__(self, scan_fn: ScanFunction) -> None:
        self._scan_fn = scan_fn
        self._thread: threading.Thread | None = None
        self._channel: queue.Queue | None = None

    @property
    def in_flight(self) -> bool:
        return self._thread is not None

    def perform_scan(self, interface: str) -> bool:
        """Start a scan on *interface*.

        Returns:
            False (and does nothing) if a scan is already in flight.
        """
        if self._thread is not None:
            logger.debug("scan already in flight; ignoring request for %s", interface)
            return False

        channel: queue.Queue = queue.Queue(maxsize=1)
        thread = threading.Thread(
            target=self._worker,
            args=(interface, channel),
            name=f"scan-{interface}",
            daemon=True,
        )
        self._channel = channel
        self._thread = thread
        thread.start()
        logger.debug("scan started on %s", interface)
        return True

    def _worker(self, interface: str, channel: queue.Queue) -> None:
        try:
            result = self._scan_fn(interface)
        except ScanError as exc:
            channel.put(ScanFailed(str(exc)))
        except Exception:
            logger.exception("scan worker for %s died", interface)
        else:
            channel.put(ScanDelivered(result))

    def poll(self) -> ScanOutcome | None:
        """Check for a finished scan without blocking.

        Returns:
            None while idle or still in flight, otherwise the outcome of the
            scan (after which the controller is idle again).
        """
        if self._thread is None or self._channel is None:
            return None

        # Liveness must be sampled before the queue: the worker puts its
        # message before it exits.
        alive = self._thread.is_alive()
        try:
            outcome: ScanOutcome = self._channel.get_nowait()
        except queue.Empty:
            if alive:
                return None
            outcome = ScanCrashed()

        self._thread = None
        self._channel = None
        logger.debug("scan finished: %s", type(outcome).__name__)
        return outcome

    def wait(self, timeout: float | None = None) -> None:
        """Block until the in-flight worker exits (used by tests and shutdown)."""
        if self._thread is not None:
            self._thread.join(timeout)
