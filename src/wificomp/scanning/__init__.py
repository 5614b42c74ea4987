"""Scan-tool output parsers and scan runners."""
