from .provider import Course, OfficialSessionRaw, AttendanceDetail, parse_courses
from .sync import BatchStatus, SyncStatsResponse

__all__ = [
    "Course",
    "OfficialSessionRaw",
    "AttendanceDetail",
    "parse_courses",
    "BatchStatus",
    "SyncStatsResponse",
]
