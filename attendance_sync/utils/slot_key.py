"""
Canonical slot keys for joining official and tracked attendance.

A slot is one (course, calendar date, teaching session) triple. The provider
and the tracker describe dates and sessions in different notations, so both
sides are normalised here into ``{course}_{YYYYMMDD}_{SESSION}`` before any
lookup. Unrecognised formats raise ``SlotKeyError`` instead of guessing.
"""
import re
from datetime import date, datetime
from typing import Any, Mapping, Optional, Tuple, Union


class SlotKeyError(ValueError):
    """Raised for a date, session or course that cannot be normalised."""
    pass


ROMAN_NUMERALS = {
    "i": 1, "ii": 2, "iii": 3, "iv": 4, "v": 5,
    "vi": 6, "vii": 7, "viii": 8, "ix": 9, "x": 10,
}

_ROMAN_TABLE = (
    (1000, "M"), (900, "CM"), (500, "D"), (400, "CD"),
    (100, "C"), (90, "XC"), (50, "L"), (40, "XL"),
    (10, "X"), (9, "IX"), (5, "V"), (4, "IV"), (1, "I"),
)

# Noise words only match as whole words so labels like "Laboratory" survive
_NOISE_RE = re.compile(r"(?<![a-z])(?:session|hour|lecture|lab|period)s?(?![a-z])", re.IGNORECASE)
_ORDINAL_RE = re.compile(r"^(\d+)(?:st|nd|rd|th)$", re.IGNORECASE)
_COMPACT_DATE_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")
_SEPARATED_DATE_RE = re.compile(r"^(\d{1,4})([-/])(\d{1,2})\2(\d{1,4})$")


def to_roman(number: int) -> str:
    """Upper-case Roman numeral for a positive integer."""
    if number < 1:
        raise SlotKeyError(f"Session number must be positive, got {number}")
    parts = []
    for value, numeral in _ROMAN_TABLE:
        count, number = divmod(number, value)
        parts.append(numeral * count)
    return "".join(parts)


def normalize_date(value: Union[str, int, date, datetime]) -> str:
    """
    Normalise a date to ``YYYYMMDD``.

    Accepts ISO-8601 with a time component, ``YYYY-MM-DD``, ``YYYY/MM/DD``,
    ``DD-MM-YYYY``, ``DD/MM/YYYY``, compact ``YYYYMMDD`` and date objects.
    A four digit first segment is read year-first, a four digit last segment
    year-last.

    Raises:
        SlotKeyError: For any other shape or an impossible calendar date
    """
    if isinstance(value, (date, datetime)):
        return value.strftime("%Y%m%d")
    if value is None or isinstance(value, bool):
        raise SlotKeyError(f"Unrecognised date: {value!r}")

    text = str(value).strip()
    # Drop the time component of ISO timestamps ("2025-10-24T09:30:00Z")
    text = re.split(r"[T ]", text, maxsplit=1)[0]

    match = _COMPACT_DATE_RE.match(text)
    if match:
        year, month, day = match.groups()
    else:
        match = _SEPARATED_DATE_RE.match(text)
        if not match:
            raise SlotKeyError(f"Unrecognised date format: {value!r}")
        first, _, middle, last = match.groups()
        if len(first) == 4 and len(last) <= 2:
            year, month, day = first, middle, last
        elif len(last) == 4 and len(first) <= 2:
            day, month, year = first, middle, last
        else:
            raise SlotKeyError(f"Ambiguous date format: {value!r}")

    try:
        parsed = date(int(year), int(month), int(day))
    except ValueError as e:
        raise SlotKeyError(f"Invalid calendar date: {value!r}") from e
    return parsed.strftime("%Y%m%d")


def parse_session(value: Union[str, int]) -> Union[int, str]:
    """
    Resolve a session descriptor to its number, or to an upper-case label.

    "III", "3", 3, "3rd", "Session 3" and "3rd Hour" all resolve to 3;
    "Extra" resolves to "EXTRA".
    """
    if value is None or isinstance(value, bool):
        raise SlotKeyError(f"Unrecognised session: {value!r}")
    if isinstance(value, int):
        if value < 1:
            raise SlotKeyError(f"Session number must be positive, got {value}")
        return value

    text = _NOISE_RE.sub(" ", str(value))
    text = " ".join(text.split()).strip(" -_:.#")
    if not text:
        raise SlotKeyError(f"Unrecognised session: {value!r}")

    lowered = text.lower()
    if lowered in ROMAN_NUMERALS:
        return ROMAN_NUMERALS[lowered]

    ordinal = _ORDINAL_RE.match(lowered)
    if ordinal:
        lowered = ordinal.group(1)

    if lowered.isdigit():
        number = int(lowered)
        if number < 1:
            raise SlotKeyError(f"Session number must be positive, got {value!r}")
        return number

    return text.upper()


def normalize_session(value: Union[str, int]) -> str:
    """Canonical session token: Roman numeral for numbered sessions, else the upper-case label."""
    resolved = parse_session(value)
    if isinstance(resolved, int):
        return to_roman(resolved)
    return resolved


def normalize_course(course_id: Any) -> str:
    if course_id is None or isinstance(course_id, bool):
        raise SlotKeyError(f"Missing course id: {course_id!r}")
    text = str(course_id).strip()
    if not text:
        raise SlotKeyError("Missing course id")
    return text


def position_key(date_value: Union[str, int, date], session: Union[str, int]) -> str:
    """Course-independent ``{YYYYMMDD}_{SESSION}`` part of a slot key (a timetable position)."""
    return f"{normalize_date(date_value)}_{normalize_session(session)}"


def slot_key(course_id: Any, date_value: Union[str, int, date], session: Union[str, int]) -> str:
    """Build the canonical ``{course}_{YYYYMMDD}_{SESSION}`` key for a slot."""
    return f"{normalize_course(course_id)}_{position_key(date_value, session)}"


_SLOT_KEY_RE = re.compile(r"^(?P<course>.+?)_(?P<position>\d{8}_.+)$")


def split_slot_key(key: str) -> Tuple[str, str]:
    """Split a slot key into ``(course, position)``."""
    match = _SLOT_KEY_RE.match(key)
    if not match:
        raise SlotKeyError(f"Not a slot key: {key!r}")
    return match.group("course"), match.group("position")


def official_session_raw(entry: Optional[Mapping[str, Any]], session_key: Union[str, int]) -> Union[str, int]:
    """Prefer the entry's own ``session`` field over the key it was stored under."""
    if entry:
        session = entry.get("session")
        if session is not None and session != "":
            return session
    return session_key
