"""Tests for slot key normalisation."""

import pytest
from datetime import date, datetime

from attendance_sync.utils.slot_key import (
    SlotKeyError,
    normalize_date,
    normalize_session,
    official_session_raw,
    parse_session,
    position_key,
    slot_key,
    split_slot_key,
    to_roman,
)


class TestNormalizeDate:
    """Date normalisation to YYYYMMDD."""

    @pytest.mark.parametrize("value", [
        "2025-10-24",
        "2025/10/24",
        "24-10-2025",
        "24/10/2025",
        "20251024",
        "2025-10-24T09:30:00Z",
        "2025-10-24 09:30:00",
        date(2025, 10, 24),
        datetime(2025, 10, 24, 9, 30),
    ])
    def test_supported_formats(self, value):
        assert normalize_date(value) == "20251024"

    def test_single_digit_day_and_month(self):
        assert normalize_date("4/1/2025") == "20250104"
        assert normalize_date("2025-1-4") == "20250104"

    @pytest.mark.parametrize("value", [
        "24-10-25",
        "Oct 24 2025",
        "2025.10.24",
        "",
        None,
        "2025-10/24",
    ])
    def test_unrecognised_formats_fail_closed(self, value):
        with pytest.raises(SlotKeyError):
            normalize_date(value)

    def test_impossible_calendar_date(self):
        with pytest.raises(SlotKeyError):
            normalize_date("2025-02-30")


class TestNormalizeSession:
    """Session normalisation to the canonical token."""

    @pytest.mark.parametrize("value", ["III", "iii", "3", 3, "3rd", "Session 3", "3rd Hour", " lecture III ", "Period 3"])
    def test_numbered_sessions(self, value):
        assert normalize_session(value) == "III"

    def test_twelfth_session(self):
        assert normalize_session(12) == "XII"
        assert normalize_session("12th") == "XII"

    def test_non_numeric_label_is_uppercased(self):
        assert normalize_session("Extra") == "EXTRA"
        assert normalize_session("  extra   class ") == "EXTRA CLASS"

    def test_noise_words_only_match_whole_words(self):
        assert parse_session("Laboratory") == "LABORATORY"

    @pytest.mark.parametrize("value", ["", "   ", "Session", None, 0, -1, "0"])
    def test_invalid_sessions(self, value):
        with pytest.raises(SlotKeyError):
            normalize_session(value)


class TestSlotKey:
    """Slot key construction."""

    def test_format_invariance(self):
        expected = "101_20251024_III"
        assert slot_key("101", "2025-10-24", "III") == expected
        assert slot_key("101", "24-10-2025", 3) == expected
        assert slot_key(101, "20251024", "3rd") == expected

    def test_course_is_stripped(self):
        assert slot_key(" 101 ", "2025-10-24", 1) == "101_20251024_I"

    def test_missing_course(self):
        with pytest.raises(SlotKeyError):
            slot_key("", "2025-10-24", 1)

    def test_split_round_trip(self):
        key = slot_key("CS_101", "2025-10-24", 2)
        assert split_slot_key(key) == ("CS_101", "20251024_II")

    def test_split_rejects_non_keys(self):
        with pytest.raises(SlotKeyError):
            split_slot_key("not-a-key")

    def test_position_key_ignores_course(self):
        assert position_key("24/10/2025", "2nd") == "20251024_II"


def test_to_roman():
    assert [to_roman(n) for n in (1, 4, 9, 10, 14, 40)] == ["I", "IV", "IX", "X", "XIV", "XL"]
    with pytest.raises(SlotKeyError):
        to_roman(0)


def test_official_session_raw_prefers_entry_field():
    assert official_session_raw({"session": "IV"}, "1") == "IV"
    assert official_session_raw({"session": ""}, "1") == "1"
    assert official_session_raw({"session": None}, 2) == 2
    assert official_session_raw(None, "3") == "3"
