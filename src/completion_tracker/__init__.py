"""Completion Tracker.

Records per-period completion markers for recurring tasks in Redis and
rotates stale markers on a schedule:
- configuration loaded from `.env`
- structured logging
- a thin REST surface and an operator CLI
"""

__version__ = "0.1.0"

from completion_tracker.config import TrackerSettings

__all__ = ["__version__", "TrackerSettings"]
