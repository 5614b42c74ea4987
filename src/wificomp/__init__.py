"""wificomp: WiFi scan sessions, signal history and adapter comparison in the terminal."""

__version__ = "0.1.0"
