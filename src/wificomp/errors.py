"""Exception types shared across wificomp."""

from __future__ import annotations


class WificompError(Exception):
    """Base class for all wificomp errors."""


class ScanError(WificompError):
    """A scan could not produce a result."""


class ScanCommandError(ScanError):
    """The external scan command could not be run or exited nonzero."""


class ScanPermissionError(ScanCommandError):
    """The scan command was refused for lack of privileges."""

    def __init__(self, message: str = (
        "Permission denied. Run with sudo or set CAP_NET_ADMIN capability."
    )) -> None:
        super().__init__(message)


class ScanBusyError(ScanCommandError):
    """The adapter was busy (another scan is usually in progress)."""

    def __init__(self, message: str = "Device busy. Another scan may be in progress.") -> None:
        super().__init__(message)


class AdapterDetectionError(WificompError):
    """Wireless adapters could not be enumerated."""


class PersistenceError(WificompError):
    """A session, export or config file could not be read or written."""
