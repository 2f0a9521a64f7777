"""FastAPI server adapter for completion-tracker.

Design intent:
- Keep tracking logic in `completion_tracker.tracking.*`
- Keep server-specific concerns (routing, CORS, caller identity, operator secrets) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from completion_tracker.server.app import create_app
