# turnos/core.py

from datetime import datetime, timedelta


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    # half-open ranges: touching ends do not overlap
    return a_start < b_end and b_start < a_end


def slot_end(start: datetime, duration_minutes: int) -> datetime:
    return start + timedelta(minutes=duration_minutes)


def truncate(text, limit: int):
    if text is None:
        return None
    text = text.strip()
    if not text:
        return None
    return text[:limit]


def to_local_naive(value: datetime) -> datetime:
    # bookings are stored as naive local wall-clock times
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value
