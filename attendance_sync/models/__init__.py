from .user import User
from .attendance import (
    AttendanceCode, TrackingKind, TrackedAttendance,
    POSITIVE_CODES, is_positive, is_absent
)
from .notifications import Notification

__all__ = [
    "User",
    "AttendanceCode",
    "TrackingKind",
    "TrackedAttendance",
    "POSITIVE_CODES",
    "is_positive",
    "is_absent",
    "Notification",
]
