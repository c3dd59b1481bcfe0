"""
Attendance Reconciliation Engine

Joins official provider attendance with each user's tracked overlay and
keeps the two consistent.

Components:
- Official map builder for the provider's detailed report
- Pure reconciliation classifier producing mutation intents
- Statistics aggregator and attendance projection
- Effects executor flushing intents to the store and email
- Batch sync manager with chunked concurrency and per-user isolation
"""

from .entities import (
    SyncUser,
    TrackedEntry,
    OfficialSlot,
    NotificationPayload,
    EmailIntent,
    SyncStats,
)
from .official_map import OfficialMap, OfficialDataError, build_official_map, official_map_from_sessions
from .reconciliation import Decision, Reason, ReconciliationPlan, classify
from .statistics import ReconciledStats, AttendanceProjection, aggregate, calculate_attendance
from .store import SyncStore
from .effects import EffectsExecutor
from .sync_manager import AttendanceSyncManager, BatchResult, derive_status

__all__ = [
    "SyncUser",
    "TrackedEntry",
    "OfficialSlot",
    "NotificationPayload",
    "EmailIntent",
    "SyncStats",
    "OfficialMap",
    "OfficialDataError",
    "build_official_map",
    "official_map_from_sessions",
    "Decision",
    "Reason",
    "ReconciliationPlan",
    "classify",
    "ReconciledStats",
    "AttendanceProjection",
    "aggregate",
    "calculate_attendance",
    "SyncStore",
    "EffectsExecutor",
    "AttendanceSyncManager",
    "BatchResult",
    "derive_status",
]
