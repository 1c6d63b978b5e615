"""Background worker job definitions.

This package contains the actual job implementations (the work being done):
- notifications/: scheduled delivery, delivery retry and retention cleanup

For scheduler construction and lifecycle, see ``notification_service.tasks``.
"""

from __future__ import annotations

__all__: list[str] = []
