"""
Utility modules for attendance reconciliation.
"""

from .slot_key import (
    SlotKeyError,
    normalize_date,
    normalize_session,
    parse_session,
    position_key,
    slot_key,
    split_slot_key,
    to_roman,
    official_session_raw,
)

__all__ = [
    "SlotKeyError",
    "normalize_date",
    "normalize_session",
    "parse_session",
    "position_key",
    "slot_key",
    "split_slot_key",
    "to_roman",
    "official_session_raw",
]
