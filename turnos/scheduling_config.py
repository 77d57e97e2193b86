# turnos/scheduling_config.py
"""
Scheduling rules read from the system_setting key-value table.

Every request resolves a fresh SchedulingConfig; nothing is cached between
requests so an admin edit takes effect on the next booking. Each key falls
back to its default when it is missing or does not parse, so resolving a
config never fails because of a bad value.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from sqlmodel import Session, select

from turnos.models import SystemSetting

logger = logging.getLogger(__name__)

DURATION_KEY = "APPOINTMENT_DURATION_MINUTES"
MAX_ACTIVE_KEY = "MAX_ACTIVE_APPOINTMENTS_PER_CLIENT"
MIN_LEAD_KEY = "MIN_LEAD_HOURS"
MIN_CANCEL_NOTICE_KEY = "MIN_CANCEL_NOTICE_HOURS"
MORNING_START_KEY = "MORNING_START"
MORNING_END_KEY = "MORNING_END"
MORNING_LAST_START_KEY = "MORNING_LAST_START"
AFTERNOON_START_KEY = "AFTERNOON_START"
AFTERNOON_END_KEY = "AFTERNOON_END"
AFTERNOON_LAST_START_KEY = "AFTERNOON_LAST_START"
SUNDAY_CLOSED_KEY = "SUNDAY_CLOSED"
WORKING_DAYS_KEY = "WORKING_DAYS"
CANCELLATION_NOTE_KEY = "CANCELLATION_NOTE_ENABLED"
MAX_ADVANCE_DAYS_KEY = "MAX_ADVANCE_DAYS"

SCHEDULING_KEYS = frozenset(
    {
        DURATION_KEY,
        MAX_ACTIVE_KEY,
        MIN_LEAD_KEY,
        MIN_CANCEL_NOTICE_KEY,
        MORNING_START_KEY,
        MORNING_END_KEY,
        MORNING_LAST_START_KEY,
        AFTERNOON_START_KEY,
        AFTERNOON_END_KEY,
        AFTERNOON_LAST_START_KEY,
        SUNDAY_CLOSED_KEY,
        WORKING_DAYS_KEY,
        CANCELLATION_NOTE_KEY,
        MAX_ADVANCE_DAYS_KEY,
    }
)

DEFAULT_DURATION_MINUTES = 60
DEFAULT_MAX_ACTIVE_PER_CLIENT = 3
DEFAULT_MIN_LEAD_HOURS = 2.0
DEFAULT_MIN_CANCEL_NOTICE_HOURS = 1.0
DEFAULT_MORNING = (time(10, 0), time(13, 0))
DEFAULT_AFTERNOON = (time(17, 0), time(21, 0))
MON_TO_SAT = frozenset(range(6))
ALL_WEEK = frozenset(range(7))

# upper bounds keep every value representable as a timedelta from today
MAX_DURATION_MINUTES = 24 * 60
MAX_HOURS = 24 * 366
MAX_ADVANCE_DAYS = 3660

# weekday() numbering: 0=Mon ... 6=Sun
DAY_CODES = {
    "L": 0, "M": 1, "X": 2, "J": 3, "V": 4, "S": 5, "D": 6,
    "MON": 0, "TUE": 1, "WED": 2, "THU": 3, "FRI": 4, "SAT": 5, "SUN": 6,
}

_TRUE = {"true", "1", "yes", "y", "si", "sí", "on"}
_FALSE = {"false", "0", "no", "n", "off"}


@dataclass(frozen=True)
class BusinessWindow:
    name: str
    start: time
    end: time
    last_start: time

    def contains_slot(self, start: datetime, duration: timedelta) -> bool:
        """True when [start, start+duration) sits inside this window on start's day."""
        day = start.date()
        window_start = datetime.combine(day, self.start)
        window_end = datetime.combine(day, self.end)
        last_start = datetime.combine(day, self.last_start)
        return window_start <= start <= last_start and start + duration <= window_end

    def label(self) -> str:
        return f"{self.start:%H:%M}-{self.end:%H:%M}"


DEFAULT_WINDOWS = (
    BusinessWindow("morning", time(10, 0), time(13, 0), time(12, 0)),
    BusinessWindow("afternoon", time(17, 0), time(21, 0), time(20, 0)),
)


@dataclass(frozen=True)
class SchedulingConfig:
    duration_minutes: int = DEFAULT_DURATION_MINUTES
    max_active_per_client: int = DEFAULT_MAX_ACTIVE_PER_CLIENT
    min_lead_hours: float = DEFAULT_MIN_LEAD_HOURS
    min_cancel_notice_hours: float = DEFAULT_MIN_CANCEL_NOTICE_HOURS
    windows: Tuple[BusinessWindow, ...] = DEFAULT_WINDOWS
    working_days: FrozenSet[int] = MON_TO_SAT
    cancellation_note_enabled: bool = False
    max_advance_days: Optional[int] = None

    @property
    def duration(self) -> timedelta:
        return timedelta(minutes=self.duration_minutes)

    @property
    def min_lead(self) -> timedelta:
        return timedelta(hours=self.min_lead_hours)

    @property
    def min_cancel_notice(self) -> timedelta:
        return timedelta(hours=self.min_cancel_notice_hours)

    def is_working_day(self, when) -> bool:
        return when.weekday() in self.working_days

    def hours_description(self) -> str:
        return " or ".join(w.label() for w in self.windows)


class SettingsStore:
    """Raw key-value reads over the system_setting table."""

    def __init__(self, session: Session):
        self.session = session

    def get_values(self, keys: Iterable[str]) -> Dict[str, str]:
        keys = list(keys)
        rows = self.session.exec(select(SystemSetting).where(SystemSetting.key.in_(keys))).all()
        return {row.key: row.value for row in rows}


def _parse_int(raw: Optional[str], key: str, default, minimum: int = 0, maximum: Optional[int] = None):
    if raw is None:
        return default
    try:
        value = int(raw.strip())
    except (TypeError, ValueError):
        logger.warning(f"Invalid integer for {key}: {raw!r}; using {default}")
        return default
    if value < minimum:
        logger.warning(f"{key}={value} below {minimum}; using {default}")
        return default
    if maximum is not None and value > maximum:
        logger.warning(f"{key}={value} above {maximum}; using {default}")
        return default
    return value


def _parse_hours(raw: Optional[str], key: str, default: float) -> float:
    if raw is None:
        return default
    try:
        value = float(raw.strip().replace(",", "."))
    except (TypeError, ValueError):
        logger.warning(f"Invalid number of hours for {key}: {raw!r}; using {default}")
        return default
    if not math.isfinite(value) or not 0 <= value <= MAX_HOURS:
        logger.warning(f"{key}={raw!r} outside 0-{MAX_HOURS} hours; using {default}")
        return default
    return value


def _parse_time(raw: Optional[str]) -> Optional[time]:
    if raw is None:
        return None
    try:
        return time.fromisoformat(raw.strip())
    except (TypeError, ValueError):
        return None


def _parse_bool(raw: Optional[str], key: str, default: bool) -> bool:
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    logger.warning(f"Invalid boolean for {key}: {raw!r}; using {default}")
    return default


def parse_working_days(raw: Optional[str]) -> Optional[FrozenSet[int]]:
    """Parse "L,M,X,J,V,S" (or "MON,TUE", or "0,1,2") into weekday numbers.

    Returns None when the value is empty or any token is unknown.
    """
    if raw is None:
        return None
    days = set()
    for token in raw.replace(";", ",").split(","):
        token = token.strip().upper()
        if not token:
            continue
        if token.isdigit() and 0 <= int(token) <= 6:
            days.add(int(token))
        elif token in DAY_CODES:
            days.add(DAY_CODES[token])
        else:
            return None
    return frozenset(days) if days else None


def _minus(t: time, delta: timedelta) -> time:
    anchor = date(2000, 1, 1)
    shifted = datetime.combine(anchor, t) - delta
    if shifted.date() != anchor:
        return time(0, 0)
    return shifted.time()


def _window(values, name, start_key, end_key, last_key, default, duration) -> BusinessWindow:
    start = _parse_time(values.get(start_key))
    end = _parse_time(values.get(end_key))
    if start is None:
        start = default[0]
    if end is None:
        end = default[1]
    if start >= end:
        logger.warning(f"{name} window {start}-{end} is empty; using default")
        start, end = default

    last_start = _parse_time(values.get(last_key))
    if last_start is None:
        # last bookable start keeps the slot inside the window
        last_start = _minus(end, duration)
    return BusinessWindow(name=name, start=start, end=end, last_start=last_start)


def resolve_config(store) -> SchedulingConfig:
    values = store.get_values(SCHEDULING_KEYS)

    duration_minutes = _parse_int(
        values.get(DURATION_KEY), DURATION_KEY, DEFAULT_DURATION_MINUTES, minimum=1, maximum=MAX_DURATION_MINUTES
    )
    duration = timedelta(minutes=duration_minutes)

    windows = (
        _window(values, "morning", MORNING_START_KEY, MORNING_END_KEY, MORNING_LAST_START_KEY,
                DEFAULT_MORNING, duration),
        _window(values, "afternoon", AFTERNOON_START_KEY, AFTERNOON_END_KEY, AFTERNOON_LAST_START_KEY,
                DEFAULT_AFTERNOON, duration),
    )

    sunday_closed = _parse_bool(values.get(SUNDAY_CLOSED_KEY), SUNDAY_CLOSED_KEY, True)
    working_days = parse_working_days(values.get(WORKING_DAYS_KEY))
    if working_days is None:
        if values.get(WORKING_DAYS_KEY) is not None:
            logger.warning(f"Invalid {WORKING_DAYS_KEY}: {values.get(WORKING_DAYS_KEY)!r}; ignoring")
        working_days = MON_TO_SAT if sunday_closed else ALL_WEEK

    return SchedulingConfig(
        duration_minutes=duration_minutes,
        max_active_per_client=_parse_int(
            values.get(MAX_ACTIVE_KEY), MAX_ACTIVE_KEY, DEFAULT_MAX_ACTIVE_PER_CLIENT
        ),
        min_lead_hours=_parse_hours(values.get(MIN_LEAD_KEY), MIN_LEAD_KEY, DEFAULT_MIN_LEAD_HOURS),
        min_cancel_notice_hours=_parse_hours(
            values.get(MIN_CANCEL_NOTICE_KEY), MIN_CANCEL_NOTICE_KEY, DEFAULT_MIN_CANCEL_NOTICE_HOURS
        ),
        windows=windows,
        working_days=working_days,
        cancellation_note_enabled=_parse_bool(values.get(CANCELLATION_NOTE_KEY), CANCELLATION_NOTE_KEY, False),
        max_advance_days=_parse_int(
            values.get(MAX_ADVANCE_DAYS_KEY), MAX_ADVANCE_DAYS_KEY, None, minimum=1, maximum=MAX_ADVANCE_DAYS
        ),
    )


def get_scheduling_config(session: Session) -> SchedulingConfig:
    return resolve_config(SettingsStore(session))
