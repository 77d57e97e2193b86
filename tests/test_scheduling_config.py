from datetime import datetime, time, timedelta

import pytest

from turnos.scheduling_config import (
    ALL_WEEK,
    MON_TO_SAT,
    SchedulingConfig,
    get_scheduling_config,
    parse_working_days,
    resolve_config,
)
from turnos.slot_validator import validate_slot


class DictStore:
    def __init__(self, values=None):
        self.values = values or {}

    def get_values(self, keys):
        return {k: v for k, v in self.values.items() if k in keys}


def test_defaults_when_store_is_empty():
    config = resolve_config(DictStore())

    assert config.duration_minutes == 60
    assert config.max_active_per_client == 3
    assert config.min_lead_hours == 2
    assert config.min_cancel_notice_hours == 1
    assert config.working_days == MON_TO_SAT
    assert config.cancellation_note_enabled is False
    assert config.max_advance_days is None

    morning, afternoon = config.windows
    assert (morning.start, morning.end, morning.last_start) == (time(10), time(13), time(12))
    assert (afternoon.start, afternoon.end, afternoon.last_start) == (time(17), time(21), time(20))


def test_matches_the_default_value_object():
    assert resolve_config(DictStore()) == SchedulingConfig()


def test_bad_values_fall_back_to_defaults():
    config = resolve_config(
        DictStore(
            {
                "APPOINTMENT_DURATION_MINUTES": "abc",
                "MAX_ACTIVE_APPOINTMENTS_PER_CLIENT": "-2",
                "MIN_LEAD_HOURS": "soon",
                "MORNING_START": "25:99",
                "SUNDAY_CLOSED": "maybe",
            }
        )
    )

    assert config.duration_minutes == 60
    assert config.max_active_per_client == 3
    assert config.min_lead_hours == 2
    assert config.windows[0].start == time(10)
    assert config.working_days == MON_TO_SAT


@pytest.mark.parametrize(
    "key,raw",
    [
        ("MIN_LEAD_HOURS", "nan"),
        ("MIN_LEAD_HOURS", "inf"),
        ("MIN_CANCEL_NOTICE_HOURS", "1e12"),
        ("APPOINTMENT_DURATION_MINUTES", "99999999999"),
        ("MAX_ADVANCE_DAYS", "1000000000"),
    ],
)
def test_unusable_numbers_fall_back_to_defaults(key, raw):
    config = resolve_config(DictStore({key: raw}))

    assert config == SchedulingConfig()
    # the resolved rules must still be usable for a booking
    now = datetime(2026, 11, 2, 8, 0)
    assert validate_slot(datetime(2026, 11, 3, 11, 0), config, now).name == "morning"
    assert config.min_cancel_notice == timedelta(hours=1)


def test_zero_duration_is_rejected():
    assert resolve_config(DictStore({"APPOINTMENT_DURATION_MINUTES": "0"})).duration_minutes == 60


def test_last_start_follows_duration_when_unset():
    config = resolve_config(DictStore({"APPOINTMENT_DURATION_MINUTES": "30"}))

    assert config.windows[0].last_start == time(12, 30)
    assert config.windows[1].last_start == time(20, 30)


def test_explicit_last_start_wins():
    config = resolve_config(DictStore({"MORNING_LAST_START": "11:00"}))
    assert config.windows[0].last_start == time(11)


def test_empty_window_uses_default_pair():
    config = resolve_config(DictStore({"AFTERNOON_START": "22:00", "AFTERNOON_END": "21:00"}))
    assert (config.windows[1].start, config.windows[1].end) == (time(17), time(21))


def test_custom_hours_and_decimal_comma():
    config = resolve_config(
        DictStore({"MORNING_START": "09:30", "MORNING_END": "14:00", "MIN_LEAD_HOURS": "1,5"})
    )

    assert config.windows[0].start == time(9, 30)
    assert config.windows[0].last_start == time(13)
    assert config.min_lead_hours == 1.5


def test_sunday_open_means_whole_week():
    assert resolve_config(DictStore({"SUNDAY_CLOSED": "false"})).working_days == ALL_WEEK


def test_working_days_override_sunday_flag():
    config = resolve_config(DictStore({"WORKING_DAYS": "L,M,X", "SUNDAY_CLOSED": "false"}))
    assert config.working_days == frozenset({0, 1, 2})


def test_invalid_working_days_are_ignored():
    assert resolve_config(DictStore({"WORKING_DAYS": "L,Q"})).working_days == MON_TO_SAT


def test_parse_working_days_accepts_every_notation():
    assert parse_working_days("MON, sun") == frozenset({0, 6})
    assert parse_working_days("0;5") == frozenset({0, 5})
    assert parse_working_days("") is None
    assert parse_working_days("7") is None


def test_flags_and_advance_window():
    config = resolve_config(DictStore({"CANCELLATION_NOTE_ENABLED": "si", "MAX_ADVANCE_DAYS": "30"}))
    assert config.cancellation_note_enabled is True
    assert config.max_advance_days == 30

    assert resolve_config(DictStore({"MAX_ADVANCE_DAYS": "0"})).max_advance_days is None


def test_reads_settings_table(session, set_setting):
    set_setting("MAX_ACTIVE_APPOINTMENTS_PER_CLIENT", "5")
    set_setting("UNRELATED_KEY", "x")

    config = get_scheduling_config(session)

    assert config.max_active_per_client == 5
    assert config.duration_minutes == 60
