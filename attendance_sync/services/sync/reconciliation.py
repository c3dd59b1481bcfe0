"""
Reconciliation Classifier.

Joins a user's tracked entries to the official map and decides, per entry,
whether it is deleted, escalated to a correction, or left open. The
classifier is pure: it returns a ``ReconciliationPlan`` of intents and the
effects executor flushes them to the store, the notification table and email.

Rules, applied in order for each tracked entry:

1. Revision slot: delete. Extra entries get a notification and an email;
   corrections are removed silently.
2. Course mismatch (extra entries only): delete and notify with both
   course names. Corrections dispute a slot's status, so their course is
   not compared.
3. Status resolution against the official code:
   - official positive, or equal codes: delete. A negative tracked code
     under a positive official code also yields "Attendance Updated".
   - official absent, tracked positive, kind extra: escalate to
     correction, count a conflict, notify and email.
   - anything else stays as an open correction.
4. No official slot yet: leave the entry for a later run.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

from attendance_sync.models.attendance import TrackingKind, is_positive, is_absent
from attendance_sync.utils.slot_key import slot_key, split_slot_key
from .entities import EmailIntent, NotificationPayload, OfficialSlot, SyncUser, TrackedEntry
from .official_map import OfficialMap

logger = logging.getLogger(__name__)


class Decision(str, Enum):
    DELETE = "delete"
    MARK_CORRECTION = "mark_correction"
    KEEP = "keep"


class Reason(str, Enum):
    REVISION = "revision"
    COURSE_MISMATCH = "course_mismatch"
    CONFIRMED = "confirmed"
    SUPERSEDED = "superseded"
    CONFLICT = "conflict"
    OPEN_DISPUTE = "open_dispute"
    UNMATCHED = "unmatched"


@dataclass
class ReconciliationPlan:
    """Mutation intents produced by one classification pass."""
    to_delete: List[int] = field(default_factory=list)
    to_mark_correction: List[int] = field(default_factory=list)
    notifications: List[NotificationPayload] = field(default_factory=list)
    emails: List[EmailIntent] = field(default_factory=list)
    conflicts: int = 0
    decisions: Dict[int, Decision] = field(default_factory=dict)
    reasons: Dict[int, Reason] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.to_delete or self.to_mark_correction or self.notifications or self.emails)


class _PlanBuilder:
    def __init__(self, user: SyncUser, course_names: Mapping[str, str], dashboard_url: str):
        self.user = user
        self.course_names = course_names
        self.dashboard_url = dashboard_url
        self.plan = ReconciliationPlan()

    def course_name(self, course_id: str) -> str:
        return self.course_names.get(course_id, course_id)

    def decide(self, entry: TrackedEntry, decision: Decision, reason: Reason):
        # Duplicate ids are decided once
        if entry.id in self.plan.decisions:
            return False
        self.plan.decisions[entry.id] = decision
        self.plan.reasons[entry.id] = reason
        if decision == Decision.DELETE:
            self.plan.to_delete.append(entry.id)
        elif decision == Decision.MARK_CORRECTION:
            self.plan.to_mark_correction.append(entry.id)
        return True

    def notify(self, title: str, description: str, topic: str):
        self.plan.notifications.append(NotificationPayload(
            user_id=self.user.auth_id,
            title=title,
            description=description,
            topic=topic,
        ))

    def email(self, subject: str, template_id: str, **context: Any):
        if not self.user.email:
            return
        context.setdefault("username", self.user.username)
        context.setdefault("dashboard_url", self.dashboard_url)
        self.plan.emails.append(EmailIntent(
            to=self.user.email,
            subject=subject,
            template_id=template_id,
            context=context,
        ))


def _revision_positions(revision_keys: Iterable[str]) -> Set[str]:
    return {split_slot_key(key)[1] for key in revision_keys}


def _classify_entry(
    builder: _PlanBuilder,
    entry: TrackedEntry,
    key: str,
    position: str,
    official: Optional[OfficialSlot],
    revision_positions: Set[str],
):
    if position in revision_positions:
        if not builder.decide(entry, Decision.DELETE, Reason.REVISION):
            return
        if entry.kind == TrackingKind.EXTRA:
            course_name = builder.course_name(entry.course_id)
            builder.notify(
                "Revision Class - Not Counted",
                f"{course_name} - {entry.date} ({entry.session}): The official record marks this "
                f"as a Revision class. It won't count toward attendance, so your manual entry was removed.",
                f"revision-{key}",
            )
            builder.email(
                f"Revision Class: {course_name}",
                "revision_class",
                course_name=course_name,
                date=entry.date,
                session=entry.session,
            )
        return

    if official is None:
        builder.decide(entry, Decision.KEEP, Reason.UNMATCHED)
        return

    if entry.kind == TrackingKind.EXTRA and official.course_id != entry.course_id:
        if not builder.decide(entry, Decision.DELETE, Reason.COURSE_MISMATCH):
            return
        manual_course = builder.course_name(entry.course_id)
        builder.notify(
            "Course Mismatch",
            f"{entry.date} ({entry.session}): Removed {manual_course}. Official: {official.course_name}",
            f"conflict-course-{key}",
        )
        builder.email(
            f"Course Conflict: {official.course_name}",
            "course_mismatch",
            date=entry.date,
            session=entry.session,
            manual_course_name=manual_course,
            course_label=official.course_name,
        )
        return

    official_positive = is_positive(official.code)
    tracked_positive = is_positive(entry.attendance)

    if official_positive or official.code == entry.attendance:
        reason = Reason.SUPERSEDED if official_positive and not tracked_positive else Reason.CONFIRMED
        if not builder.decide(entry, Decision.DELETE, reason):
            return
        if reason == Reason.SUPERSEDED:
            builder.notify(
                "Attendance Updated",
                f"{official.course_name} - {entry.date} ({entry.session}): Official record is Present. "
                f"Manual entry removed.",
                f"sync-surprise-{key}",
            )
    elif is_absent(official.code) and tracked_positive and entry.kind == TrackingKind.EXTRA:
        if not builder.decide(entry, Decision.MARK_CORRECTION, Reason.CONFLICT):
            return
        builder.plan.conflicts += 1
        builder.notify(
            "Attendance Conflict",
            f"{official.course_name} - {entry.date} ({entry.session}): You marked Present, Official says Absent.",
            f"conflict-{key}",
        )
        builder.email(
            f"Attendance Conflict: {official.course_name}",
            "attendance_conflict",
            course_label=official.course_name,
            date=entry.date,
            session=entry.session,
        )
    else:
        builder.decide(entry, Decision.KEEP, Reason.OPEN_DISPUTE)


def classify(
    tracked_entries: Iterable[TrackedEntry],
    official_map: OfficialMap,
    revision_keys: Optional[Iterable[str]] = None,
    *,
    user: SyncUser,
    course_names: Optional[Mapping[Any, str]] = None,
    dashboard_url: str = "",
) -> ReconciliationPlan:
    """
    Classify tracked entries against the official map.

    Args:
        tracked_entries: The user's tracker rows
        official_map: Output of ``build_official_map``
        revision_keys: Revision slot keys; defaults to ``official_map.revision_keys``
        user: Owner of the entries, used for notification and email addressing
        course_names: Course id -> display name for messages
        dashboard_url: Link placed in emails

    Returns:
        ReconciliationPlan with de-duplicated delete/update ids and queued messages

    Raises:
        SlotKeyError: If a tracked entry's date or session cannot be normalised
    """
    names = {str(k): v for k, v in (course_names or {}).items()}
    builder = _PlanBuilder(user, names, dashboard_url)
    revisions = _revision_positions(
        official_map.revision_keys if revision_keys is None else revision_keys
    )

    for entry in tracked_entries:
        key = slot_key(entry.course_id, entry.date, entry.session)
        _, position = split_slot_key(key)
        official = official_map.get(key) or official_map.at_position(position)
        _classify_entry(builder, entry, key, position, official, revisions)

    plan = builder.plan
    logger.debug(
        f"Classified {len(plan.decisions)} entries: {len(plan.to_delete)} deletions, "
        f"{len(plan.to_mark_correction)} escalations, {plan.conflicts} conflicts"
    )
    return plan
