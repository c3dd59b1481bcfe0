from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, Index
from sqlalchemy.sql import func
from typing import Optional
import enum

from attendance_sync.core.database import Base


class AttendanceCode(int, enum.Enum):
    """Attendance status codes as reported by the official provider."""
    PRESENT = 110
    ABSENT = 111
    OTHER_LEAVE = 112
    DUTY_LEAVE = 225


POSITIVE_CODES = frozenset(
    code.value for code in (
        AttendanceCode.PRESENT,
        AttendanceCode.DUTY_LEAVE,
        AttendanceCode.OTHER_LEAVE,
    )
)


def _as_int(code) -> Optional[int]:
    try:
        return int(code)
    except (TypeError, ValueError):
        return None


def is_positive(code) -> bool:
    """Present, duty leave and other leave count toward attendance."""
    return _as_int(code) in POSITIVE_CODES


def is_absent(code) -> bool:
    # 0 and unknown codes are not absences
    return _as_int(code) == AttendanceCode.ABSENT.value


class TrackingKind(str, enum.Enum):
    EXTRA = "extra"
    CORRECTION = "correction"


class TrackedAttendance(Base):
    """A user-authored overlay record (extra class or correction of an official slot)."""
    __tablename__ = "tracker"

    id = Column(Integer, primary_key=True, index=True)
    auth_user_id = Column(String(64), nullable=False, index=True)

    course = Column(String(64), nullable=False)
    date = Column(String(32), nullable=False)
    session = Column(String(32), nullable=False)
    attendance = Column(Integer, nullable=True)
    status = Column(
        SQLEnum(TrackingKind, values_callable=lambda kinds: [k.value for k in kinds]),
        nullable=False,
        default=TrackingKind.EXTRA,
    )

    semester = Column(String(16), nullable=True)
    year = Column(String(16), nullable=True)
    remarks = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_tracker_user_course", "auth_user_id", "course"),
    )
