"""
Official Map Builder.

Turns the provider's detailed attendance report into a lookup of official
status per slot key, keeping Revision slots in a separate set.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Set, Union

from attendance_sync.schemas.provider import OfficialSessionRaw
from attendance_sync.utils.slot_key import (
    SlotKeyError, normalize_course, official_session_raw, position_key, split_slot_key
)
from .entities import OfficialSlot

logger = logging.getLogger(__name__)


class OfficialDataError(SlotKeyError):
    """Raised when an official entry carries a value that cannot be interpreted."""
    pass


@dataclass
class OfficialMap:
    """
    Official slots keyed by slot key, plus the Revision slot keys.

    A timetable position (date + session) holds one class, so slots are also
    indexed by position. The classifier uses that index to find the official
    slot for a tracked entry filed under a different course.
    """
    slots: Dict[str, OfficialSlot] = field(default_factory=dict)
    revision_keys: Set[str] = field(default_factory=set)
    _positions: Dict[str, str] = field(default_factory=dict, repr=False)

    def add(self, key: str, slot: OfficialSlot) -> None:
        _, position = split_slot_key(key)
        self.slots[key] = slot
        self._positions[position] = key

    def add_revision(self, key: str) -> None:
        self.revision_keys.add(key)

    def get(self, key: str) -> Optional[OfficialSlot]:
        return self.slots.get(key)

    def at_position(self, position: str) -> Optional[OfficialSlot]:
        key = self._positions.get(position)
        return self.slots.get(key) if key is not None else None

    def for_course(self, course_id: Any) -> Dict[str, OfficialSlot]:
        course = normalize_course(course_id)
        return {key: slot for key, slot in self.slots.items() if slot.course_id == course}

    def __contains__(self, key: str) -> bool:
        return key in self.slots

    def __len__(self) -> int:
        return len(self.slots)


def _as_entry(entry: Union[OfficialSessionRaw, Mapping[str, Any]]) -> OfficialSessionRaw:
    if isinstance(entry, OfficialSessionRaw):
        return entry
    return OfficialSessionRaw.model_validate(entry)


def _attendance_code(entry: OfficialSessionRaw) -> int:
    try:
        return int(entry.attendance)
    except (TypeError, ValueError) as e:
        raise OfficialDataError(f"Non-numeric attendance code: {entry.attendance!r}") from e


def _add_entry(
    official_map: OfficialMap,
    date_value: str,
    session_key: Union[str, int],
    entry: OfficialSessionRaw,
    course_names: Mapping[str, str],
    course_id: Optional[str],
) -> None:
    # Holidays and unscheduled periods are not absences
    if entry.is_holiday:
        return

    course = normalize_course(entry.course)
    if course_id is not None and course != course_id:
        return

    raw_session = official_session_raw({"session": entry.session}, session_key)
    key = f"{course}_{position_key(date_value, raw_session)}"

    if entry.is_revision:
        official_map.add_revision(key)
        return

    official_map.add(key, OfficialSlot(
        code=_attendance_code(entry),
        course_id=course,
        course_name=course_names.get(course, course),
    ))


def build_official_map(
    raw_payload: Mapping[str, Mapping[str, Union[OfficialSessionRaw, Mapping[str, Any]]]],
    course_names: Optional[Mapping[Any, str]] = None,
    course_id: Any = None,
) -> OfficialMap:
    """
    Build the official map from ``studentAttendanceData``.

    Args:
        raw_payload: ``{date: {session_key: entry}}`` as returned by the provider
        course_names: Optional course id -> display name
        course_id: Restrict the map to one course

    Returns:
        OfficialMap with the last-seen entry winning for a repeated key

    Raises:
        SlotKeyError: If a date or session cannot be normalised
    """
    names = {str(k): v for k, v in (course_names or {}).items()}
    only_course = normalize_course(course_id) if course_id is not None else None
    official_map = OfficialMap()

    for date_value, sessions in raw_payload.items():
        for session_key, raw_entry in (sessions or {}).items():
            _add_entry(official_map, date_value, session_key, _as_entry(raw_entry), names, only_course)

    logger.debug(
        f"Built official map with {len(official_map)} slots and "
        f"{len(official_map.revision_keys)} revision slots"
    )
    return official_map


def official_map_from_sessions(
    sessions: Iterable[Mapping[str, Any]],
    course_id: Any = None,
    course_names: Optional[Mapping[Any, str]] = None,
) -> OfficialMap:
    """Build an official map from a flat list of ``{course, date, session, attendance, class_type}`` rows."""
    names = {str(k): v for k, v in (course_names or {}).items()}
    only_course = normalize_course(course_id) if course_id is not None else None
    official_map = OfficialMap()

    for row in sessions:
        entry = _as_entry(row)
        _add_entry(official_map, row.get("date"), entry.session, entry, names, only_course)

    return official_map
