# turnos/conflicts.py

from datetime import datetime, timedelta
from typing import List, Optional

from sqlmodel import Session, select

from turnos.models import Appointment
from turnos.schemas import AppointmentState

# states that occupy a slot; cancelled/expired/attended free it for rebooking
ACTIVE_STATES = (AppointmentState.pending.value, AppointmentState.confirmed.value)


def _occupying(barber_id: int, start: datetime, end: datetime, duration: timedelta):
    # existing.start < end and existing.start + duration > start
    return (
        select(Appointment)
        .where(Appointment.barber_id == barber_id)
        .where(Appointment.state_id.in_(ACTIVE_STATES))
        .where(Appointment.starts_at < end)
        .where(Appointment.starts_at > start - duration)
    )


def has_conflict(
    session: Session,
    barber_id: int,
    start: datetime,
    end: datetime,
    duration: timedelta,
    exclude_id: Optional[int] = None,
) -> bool:
    stmt = _occupying(barber_id, start, end, duration)
    if exclude_id is not None:
        stmt = stmt.where(Appointment.id != exclude_id)
    return session.exec(stmt).first() is not None


def occupied_ranges(
    session: Session,
    barber_id: int,
    start: datetime,
    end: datetime,
    duration: timedelta,
) -> List[dict]:
    appts = session.exec(_occupying(barber_id, start, end, duration).order_by(Appointment.starts_at)).all()
    return [
        {
            "id": a.id,
            "start": a.starts_at,
            "end": a.starts_at + duration,
            "state": AppointmentState(a.state_id),
        }
        for a in appts
    ]
