"""Student dashboard module.

Provides:
- Snapshot acquisition from Cassandra
- Enrolled courses, recommendations and schedule
- Dashboard HTTP endpoints
"""

from .models import DashboardSnapshot
from .schemas import DashboardPayload
from .service import DashboardError, DashboardService, SnapshotFetchError


__all__ = [
    "DashboardError",
    "DashboardPayload",
    "DashboardService",
    "DashboardSnapshot",
    "SnapshotFetchError",
]
