# turnos/availability.py

import logging
from datetime import datetime
from typing import List

from sqlmodel import Session, select

from turnos.core import overlaps
from turnos.errors import (
    AuthorizationError,
    NotFoundError,
    RejectionReason,
    StateConflict,
    ValidationRejection,
)
from turnos.models import BarberAvailability, ScheduleBlock

logger = logging.getLogger(__name__)


def has_recurring_availability(session: Session, barber_id: int) -> bool:
    stmt = (
        select(BarberAvailability.id)
        .where(BarberAvailability.barber_id == barber_id)
        .where(BarberAvailability.active == True)  # noqa: E712
    )
    return session.exec(stmt).first() is not None


def active_windows(session: Session, barber_id: int, weekday: int) -> List[BarberAvailability]:
    stmt = (
        select(BarberAvailability)
        .where(BarberAvailability.barber_id == barber_id)
        .where(BarberAvailability.weekday == weekday)
        .where(BarberAvailability.active == True)  # noqa: E712
        .order_by(BarberAvailability.start_time)
    )
    return list(session.exec(stmt).all())


def is_within_recurring_availability(session: Session, barber_id: int, start: datetime) -> bool:
    # start_time <= t < end_time: a slot may not start exactly at closing
    t = start.time()
    for window in active_windows(session, barber_id, start.weekday()):
        if window.start_time <= t < window.end_time:
            return True
    return False


def blocks_between(session: Session, barber_id: int, start: datetime, end: datetime) -> List[ScheduleBlock]:
    stmt = (
        select(ScheduleBlock)
        .where(ScheduleBlock.barber_id == barber_id)
        .where(ScheduleBlock.starts_at < end)
        .where(ScheduleBlock.ends_at > start)
        .order_by(ScheduleBlock.starts_at)
    )
    return list(session.exec(stmt).all())


def is_blocked(session: Session, barber_id: int, start: datetime, end: datetime) -> bool:
    return len(blocks_between(session, barber_id, start, end)) > 0


def check_barber_availability(session: Session, barber_id: int, start: datetime, end: datetime) -> None:
    """Barber-specific checks: weekly windows (when configured) then blocks."""
    if has_recurring_availability(session, barber_id) and not is_within_recurring_availability(
        session, barber_id, start
    ):
        raise ValidationRejection(
            RejectionReason.BARBER_UNAVAILABLE,
            "The barber does not work at the requested time",
        )

    if is_blocked(session, barber_id, start, end):
        raise ValidationRejection(
            RejectionReason.SLOT_BLOCKED,
            "The barber has blocked the requested time",
        )


def replace_weekly_availability(session: Session, barber_id: int, windows) -> List[BarberAvailability]:
    """Upsert the barber's whole weekly schedule (one call replaces every window)."""
    by_day = {}
    for w in windows:
        for other in by_day.get(w.weekday, []):
            if overlaps(w.start_time, w.end_time, other.start_time, other.end_time):
                raise ValidationRejection(
                    RejectionReason.INVALID_BLOCK,
                    f"Availability windows overlap on weekday {w.weekday}",
                )
        by_day.setdefault(w.weekday, []).append(w)

    existing = session.exec(select(BarberAvailability).where(BarberAvailability.barber_id == barber_id)).all()
    for row in existing:
        session.delete(row)

    rows = [
        BarberAvailability(
            barber_id=barber_id,
            weekday=w.weekday,
            start_time=w.start_time,
            end_time=w.end_time,
            active=w.active,
        )
        for w in windows
    ]
    session.add_all(rows)
    session.commit()
    for row in rows:
        session.refresh(row)
    logger.info(f"Barber {barber_id} weekly availability replaced ({len(rows)} windows)")
    return rows


def add_block(session: Session, barber_id: int, start: datetime, end: datetime, reason=None) -> ScheduleBlock:
    if end <= start:
        raise ValidationRejection(RejectionReason.INVALID_BLOCK, "Block end must be after its start")

    if is_blocked(session, barber_id, start, end):
        raise StateConflict(RejectionReason.INVALID_BLOCK, "Block overlaps existing block")

    block = ScheduleBlock(barber_id=barber_id, starts_at=start, ends_at=end, reason=reason)
    session.add(block)
    session.commit()
    session.refresh(block)
    logger.info(f"Barber {barber_id} blocked {start:%Y-%m-%d %H:%M} - {end:%Y-%m-%d %H:%M}")
    return block


def delete_block(session: Session, barber_id: int, block_id: int) -> None:
    block = session.get(ScheduleBlock, block_id)
    if block is None:
        raise NotFoundError(RejectionReason.INVALID_BLOCK, "Block not found")
    if block.barber_id != barber_id:
        raise AuthorizationError(RejectionReason.NOT_OWNER, "Block belongs to another barber")
    session.delete(block)
    session.commit()


def weekly_availability(session: Session, barber_id: int) -> List[BarberAvailability]:
    stmt = (
        select(BarberAvailability)
        .where(BarberAvailability.barber_id == barber_id)
        .order_by(BarberAvailability.weekday, BarberAvailability.start_time)
    )
    return list(session.exec(stmt).all())


def list_blocks(session: Session, barber_id: int, start=None, end=None) -> List[ScheduleBlock]:
    stmt = select(ScheduleBlock).where(ScheduleBlock.barber_id == barber_id)
    if start is not None:
        stmt = stmt.where(ScheduleBlock.ends_at > start)
    if end is not None:
        stmt = stmt.where(ScheduleBlock.starts_at < end)
    return list(session.exec(stmt.order_by(ScheduleBlock.starts_at)).all())
