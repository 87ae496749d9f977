"""Family task calendar: recurring tasks, star rewards, offline-first sync."""

__version__ = "0.1.0"
