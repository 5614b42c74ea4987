"""Session persistence and export."""
