"""livemarks - personal bookmarks with live multi-view sync."""

__version__ = "0.1.0"
