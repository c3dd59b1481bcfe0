"""
Statistics Aggregator.

Merges official totals with the tracker overlay for one course and projects
how many classes can be skipped (or must be attended) to hold a target.
"""

import logging
import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, Mapping, Optional, Set

from attendance_sync.models.attendance import AttendanceCode, TrackingKind, is_positive
from attendance_sync.utils.slot_key import normalize_course, slot_key, split_slot_key
from .entities import TrackedEntry
from .official_map import OfficialMap, official_map_from_sessions

logger = logging.getLogger(__name__)

DEFAULT_TARGET_PERCENTAGE = 75.0
BORDERLINE_THRESHOLD = 0.9
PERCENTAGE_EPSILON = 1e-9


@dataclass
class ReconciledStats:
    """Official and tracker-adjusted counters for one course."""
    real_present: int = 0
    real_total: int = 0
    real_absent: int = 0
    real_dl: int = 0
    real_other: int = 0

    correction_present: int = 0
    saved_absent: int = 0
    correction_dl: int = 0

    extra_present: int = 0
    extra_absent: int = 0
    extra_dl: int = 0
    extras_count: int = 0

    final_present: int = 0
    final_total: int = 0
    official_percentage: float = 0.0
    final_percentage: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AttendanceProjection:
    can_bunk: int
    required_to_attend: int
    target_percentage: float
    is_exact: bool = False
    is_borderline: bool = False
    is_unreachable: bool = False


def _percentage(present: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(present / total * 100, 2)


def _count_official(stats: ReconciledStats, official_map: OfficialMap, course: str) -> None:
    for slot in official_map.for_course(course).values():
        stats.real_total += 1
        if is_positive(slot.code):
            stats.real_present += 1
        else:
            stats.real_absent += 1
        if slot.code == AttendanceCode.DUTY_LEAVE:
            stats.real_dl += 1
        elif slot.code == AttendanceCode.OTHER_LEAVE:
            stats.real_other += 1


def _count_tracked(
    stats: ReconciledStats,
    official_map: OfficialMap,
    tracked_entries: Iterable[TrackedEntry],
    course: str,
) -> None:
    revision_positions = {split_slot_key(key)[1] for key in official_map.revision_keys}
    seen: Set[str] = set()

    for entry in tracked_entries:
        if entry.course_id != course or entry.attendance is None:
            continue

        key = slot_key(course, entry.date, entry.session)
        # One tracked record per slot keeps the three present sets disjoint
        if key in seen:
            continue
        seen.add(key)

        if split_slot_key(key)[1] in revision_positions:
            continue

        tracked_positive = is_positive(entry.attendance)
        tracked_dl = entry.attendance == AttendanceCode.DUTY_LEAVE
        official = official_map.get(key)

        if official is None:
            if entry.kind != TrackingKind.EXTRA:
                continue
            stats.extras_count += 1
            if tracked_positive:
                stats.extra_present += 1
            else:
                stats.extra_absent += 1
            if tracked_dl:
                stats.extra_dl += 1
            continue

        if is_positive(official.code):
            continue
        if tracked_positive:
            stats.correction_present += 1
            stats.saved_absent += 1
        if tracked_dl and official.code != AttendanceCode.DUTY_LEAVE:
            stats.correction_dl += 1


def aggregate(
    course_id: Any,
    official_sessions: Optional[Iterable[Mapping[str, Any]]] = None,
    tracked_entries: Optional[Iterable[TrackedEntry]] = None,
    *,
    official_map: Optional[OfficialMap] = None,
    official_aggregate: Optional[Mapping[str, int]] = None,
) -> ReconciledStats:
    """
    Reconcile one course's official record with the user's tracker entries.

    Args:
        course_id: Course to aggregate
        official_sessions: Flat ``{course, date, session, attendance, class_type}`` rows
        tracked_entries: The user's tracked entries, any course
        official_map: A prebuilt map, used instead of ``official_sessions``
        official_aggregate: Provider totals ``{present, absent, total}`` used when
            the course has no official sessions

    Returns:
        ReconciledStats where ``final_present`` is the sum of the real,
        correction and extra present counts and ``final_total`` is
        ``real_total + extras_count``
    """
    course = normalize_course(course_id)
    if official_map is None:
        official_map = official_map_from_sessions(official_sessions or [], course_id=course)

    stats = ReconciledStats()
    if official_map.for_course(course) or not official_aggregate:
        _count_official(stats, official_map, course)
    else:
        stats.real_present = int(official_aggregate.get("present", 0))
        stats.real_absent = int(official_aggregate.get("absent", 0))
        stats.real_total = int(official_aggregate.get("total", 0))

    _count_tracked(stats, official_map, tracked_entries or [], course)

    stats.final_present = stats.real_present + stats.correction_present + stats.extra_present
    stats.final_total = stats.real_total + stats.extras_count
    stats.official_percentage = _percentage(stats.real_present, stats.real_total)
    stats.final_percentage = _percentage(stats.final_present, stats.final_total)
    return stats


def calculate_attendance(present: float, total: float, target_percentage: float = DEFAULT_TARGET_PERCENTAGE) -> AttendanceProjection:
    """
    Project skippable or required classes for a target percentage.

    ``required_to_attend`` solves ``(P + x) / (T + x) >= t`` and
    ``can_bunk`` solves ``P / (T + y) >= t``, both rounded toward the safe side.

    A 100% target cannot be reached once a class has been missed, so
    ``required_to_attend`` then reports the missed classes and
    ``is_unreachable`` is set.
    """
    try:
        target = float(target_percentage)
    except (TypeError, ValueError):
        target = DEFAULT_TARGET_PERCENTAGE
    target = min(100.0, max(1.0, target)) if math.isfinite(target) else DEFAULT_TARGET_PERCENTAGE

    if total <= 0 or present < 0 or present > total:
        return AttendanceProjection(can_bunk=0, required_to_attend=0, target_percentage=target)

    current = present / total * 100

    if abs(current - target) < PERCENTAGE_EPSILON:
        return AttendanceProjection(can_bunk=0, required_to_attend=0, target_percentage=target, is_exact=True)

    if current < target:
        if target >= 100:
            return AttendanceProjection(
                can_bunk=0,
                required_to_attend=int(total - present),
                target_percentage=target,
                is_unreachable=True,
            )
        required = math.ceil((target * total - 100 * present) / (100 - target))
        return AttendanceProjection(can_bunk=0, required_to_attend=max(0, required), target_percentage=target)

    bunkable_exact = (100 * present - target * total) / target
    bunkable = math.floor(bunkable_exact)
    return AttendanceProjection(
        can_bunk=max(0, bunkable),
        required_to_attend=0,
        target_percentage=target,
        is_borderline=0 < bunkable_exact < BORDERLINE_THRESHOLD and bunkable == 0,
    )
