# turnos/lifecycle.py
"""
Appointment state machine.

    Pending   -> Confirmed | Cancelled | Expired (system)
    Confirmed -> Cancelled | Attended (system)
    Cancelled, Expired, Attended: terminal

Staff and admins can only move an appointment to Confirmed or Cancelled by
hand; Expired and Attended are assigned by the sweep once the start time has
passed.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from turnos.conflicts import ACTIVE_STATES
from turnos.core import truncate
from turnos.errors import (
    AuthorizationError,
    RejectionReason,
    StateConflict,
    ValidationRejection,
)
from turnos.models import NOTE_MAX_LENGTH, Appointment
from turnos.schemas import Actor, AppointmentState, SweepResult, UserRole

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"

TRANSITIONS = {
    AppointmentState.pending: {AppointmentState.confirmed, AppointmentState.cancelled, AppointmentState.expired},
    AppointmentState.confirmed: {AppointmentState.cancelled, AppointmentState.attended},
    AppointmentState.cancelled: set(),
    AppointmentState.expired: set(),
    AppointmentState.attended: set(),
}

MANUAL_TARGETS = {AppointmentState.confirmed, AppointmentState.cancelled}

EXPIRED_NOTE = "Expired: client did not attend."
ATTENDED_NOTE = "Confirmed and past: marked as attended."


def is_terminal(state: AppointmentState) -> bool:
    return not TRANSITIONS[state]


def actor_stamp(actor: Actor) -> str:
    return f"{actor.role.value}:{actor.id}"


def authorize_state_change(appointment: Appointment, actor: Actor) -> None:
    if actor.role == UserRole.admin:
        return
    if actor.role == UserRole.barber:
        if appointment.barber_id != actor.id:
            raise AuthorizationError(
                RejectionReason.NOT_OWNER,
                "You do not have permission to change the state of this appointment",
            )
        return
    if actor.role == UserRole.client:
        raise AuthorizationError(
            RejectionReason.ROLE_NOT_PERMITTED,
            "Clients cannot change appointment state; use the cancellation endpoint",
        )
    raise AuthorizationError(RejectionReason.ROLE_NOT_PERMITTED, "Role not allowed")


def ensure_manual_transition(appointment: Appointment, new_state: AppointmentState) -> None:
    if new_state not in MANUAL_TARGETS:
        raise ValidationRejection(
            RejectionReason.INVALID_STATE_TRANSITION,
            "Only Confirmed or Cancelled can be set manually",
        )
    current = AppointmentState(appointment.state_id)
    if is_terminal(current):
        raise StateConflict(
            RejectionReason.ALREADY_TERMINAL,
            f"Appointment is already {current.label}",
        )
    if new_state not in TRANSITIONS[current]:
        raise StateConflict(
            RejectionReason.INVALID_STATE_TRANSITION,
            f"Cannot move an appointment from {current.label} to {new_state.label}",
        )


def apply_transition(
    appointment: Appointment,
    new_state: AppointmentState,
    modified_by: str,
    now: datetime,
    note: Optional[str] = None,
) -> Appointment:
    appointment.state_id = new_state.value
    appointment.modified_by = modified_by
    appointment.modified_at = now
    note = truncate(note, NOTE_MAX_LENGTH)
    if note is not None:
        appointment.note = note
    return appointment


def _expire(appointment: Appointment, now: datetime) -> Optional[AppointmentState]:
    state = AppointmentState(appointment.state_id)
    if state == AppointmentState.pending:
        apply_transition(appointment, AppointmentState.expired, SYSTEM_ACTOR, now)
        appointment.note = appointment.note or EXPIRED_NOTE
        return AppointmentState.expired
    if state == AppointmentState.confirmed:
        apply_transition(appointment, AppointmentState.attended, SYSTEM_ACTOR, now)
        appointment.note = appointment.note or ATTENDED_NOTE
        return AppointmentState.attended
    return None


def _count(result: SweepResult, state: Optional[AppointmentState]) -> None:
    if state == AppointmentState.expired:
        result.expired += 1
    elif state == AppointmentState.attended:
        result.attended += 1


def _retry_one_by_one(session: Session, ids, now: datetime, result: SweepResult) -> None:
    for appt_id in ids:
        try:
            appointment = session.get(Appointment, appt_id)
            if appointment is None or appointment.state_id not in ACTIVE_STATES or appointment.starts_at >= now:
                continue
            state = _expire(appointment, now)
            session.commit()
            _count(result, state)
        except SQLAlchemyError:
            session.rollback()
            logger.exception(f"Sweep could not update appointment {appt_id}; skipping")


def sweep_expired(session: Session, now: datetime, batch_size: int = 200) -> SweepResult:
    """Flip past Pending appointments to Expired and past Confirmed ones to Attended.

    Works in committed batches so an interrupted run keeps its progress;
    running it again only picks up what is still stale. Future appointments
    are never touched.
    """
    result = SweepResult()
    last_id = 0
    while True:
        stmt = (
            select(Appointment)
            .where(Appointment.starts_at < now)
            .where(Appointment.state_id.in_(ACTIVE_STATES))
            .where(Appointment.id > last_id)
            .order_by(Appointment.id)
            .limit(batch_size)
        )
        batch = session.exec(stmt).all()
        if not batch:
            break

        ids = [a.id for a in batch]
        last_id = ids[-1]
        pending = SweepResult()
        for appointment in batch:
            _count(pending, _expire(appointment, now))
        try:
            session.commit()
            result.expired += pending.expired
            result.attended += pending.attended
        except SQLAlchemyError:
            session.rollback()
            logger.warning(f"Sweep batch of {len(ids)} failed; retrying appointments one at a time")
            _retry_one_by_one(session, ids, now, result)

    if result.expired or result.attended:
        logger.info(f"Appointment states updated: {result.expired} expired, {result.attended} attended")
    return result


def sweep_best_effort(session: Session, now: datetime) -> Optional[SweepResult]:
    """Sweep before a read; a failure is logged and never breaks the read."""
    try:
        return sweep_expired(session, now)
    except Exception:
        session.rollback()
        logger.warning("Best-effort sweep failed; continuing with possibly stale states", exc_info=True)
        return None
