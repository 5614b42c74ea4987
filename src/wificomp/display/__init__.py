"""Terminal rendering and keyboard input."""
