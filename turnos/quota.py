# turnos/quota.py

from typing import Optional

from sqlalchemy import func
from sqlmodel import Session, select

from turnos.conflicts import ACTIVE_STATES
from turnos.errors import RejectionReason, ValidationRejection
from turnos.models import Appointment
from turnos.scheduling_config import SchedulingConfig


def count_active(session: Session, client_id: int, exclude_id: Optional[int] = None) -> int:
    """Standing quota: every Pending/Confirmed appointment counts, whatever its date."""
    stmt = (
        select(func.count())
        .select_from(Appointment)
        .where(Appointment.client_id == client_id)
        .where(Appointment.state_id.in_(ACTIVE_STATES))
    )
    if exclude_id is not None:
        stmt = stmt.where(Appointment.id != exclude_id)
    return session.exec(stmt).one()


def enforce_quota(session: Session, client_id: int, config: SchedulingConfig, exclude_id: Optional[int] = None):
    active = count_active(session, client_id, exclude_id=exclude_id)
    if active >= config.max_active_per_client:
        raise ValidationRejection(
            RejectionReason.QUOTA_EXCEEDED,
            f"You cannot hold more than {config.max_active_per_client} active appointments",
        )
