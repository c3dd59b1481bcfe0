"""
Plain value objects shared by the reconciliation pipeline.

They carry no database session, so the classifier and the statistics
aggregator can be exercised with literal fixtures.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, Optional

from attendance_sync.models.attendance import TrackingKind


@dataclass(frozen=True)
class SyncUser:
    """A user eligible for sync, as read from the record store."""
    auth_id: str
    username: str
    email: Optional[str] = None
    provider_token: Optional[str] = None
    provider_iv: Optional[str] = None
    last_synced_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record) -> "SyncUser":
        return cls(
            auth_id=record.auth_id,
            username=record.username,
            email=record.email,
            provider_token=record.provider_token,
            provider_iv=record.provider_iv,
            last_synced_at=record.last_synced_at,
        )


@dataclass(frozen=True)
class TrackedEntry:
    """A user-authored tracker row."""
    id: int
    course_id: str
    date: str
    session: str
    attendance: Optional[int]
    kind: TrackingKind

    @classmethod
    def from_record(cls, record) -> "TrackedEntry":
        # Unknown kinds raise ValueError instead of being guessed
        kind = record.status if isinstance(record.status, TrackingKind) else TrackingKind(record.status)
        try:
            attendance = int(record.attendance) if record.attendance is not None else None
        except (TypeError, ValueError):
            attendance = None
        return cls(
            id=record.id,
            course_id=str(record.course),
            date=str(record.date),
            session=str(record.session),
            attendance=attendance,
            kind=kind,
        )


@dataclass(frozen=True)
class OfficialSlot:
    """Official attendance for one slot."""
    code: int
    course_id: str
    course_name: str


@dataclass(frozen=True)
class NotificationPayload:
    user_id: str
    title: str
    description: str
    topic: str


@dataclass(frozen=True)
class EmailIntent:
    """An email to render and send once the store mutations are flushed."""
    to: str
    subject: str
    template_id: str
    context: Dict[str, Any] = field(default_factory=dict, hash=False, compare=False)


@dataclass
class SyncStats:
    """Per-user and per-batch sync counters."""
    processed: int = 0
    deletions: int = 0
    conflicts: int = 0
    updates: int = 0
    errors: int = 0

    def merge(self, other: "SyncStats") -> "SyncStats":
        self.processed += other.processed
        self.deletions += other.deletions
        self.conflicts += other.conflicts
        self.updates += other.updates
        self.errors += other.errors
        return self

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)
