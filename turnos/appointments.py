# turnos/appointments.py

import logging
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from turnos.availability import (
    active_windows,
    blocks_between,
    check_barber_availability,
    has_recurring_availability,
)
from turnos.config import SWEEP_BATCH_SIZE
from turnos.conflicts import has_conflict, occupied_ranges
from turnos.core import overlaps, slot_end, to_local_naive
from turnos.directory import UserDirectory
from turnos.errors import (
    AuthorizationError,
    CommitConflict,
    NotFoundError,
    RejectionReason,
    SlotConflict,
    StateConflict,
    ValidationRejection,
)
from turnos.lifecycle import (
    actor_stamp,
    apply_transition,
    authorize_state_change,
    ensure_manual_transition,
    is_terminal,
    sweep_best_effort,
    sweep_expired,
)
from turnos.models import Appointment
from turnos.notifications import enqueue_state_notification
from turnos.quota import enforce_quota
from turnos.scheduling_config import SchedulingConfig, get_scheduling_config
from turnos.schemas import Actor, AppointmentState, SweepResult, UserRole
from turnos.slot_validator import validate_slot

logger = logging.getLogger(__name__)


class AppointmentService:
    """Booking operations for one request.

    The scheduling config is resolved once when the service is built and
    passed explicitly to every rule, so one request sees one consistent set
    of rules.
    """

    def __init__(
        self,
        session: Session,
        config: Optional[SchedulingConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.session = session
        self.config = config if config is not None else get_scheduling_config(session)
        self.clock = clock
        self.directory = UserDirectory(session)

    # -- helpers -------------------------------------------------------------

    def _get(self, appt_id: int) -> Appointment:
        appointment = self.session.get(Appointment, appt_id)
        if appointment is None:
            raise NotFoundError(RejectionReason.APPOINTMENT_NOT_FOUND, "Appointment not found")
        return appointment

    def _check_barber_slot(self, barber_id: int, start: datetime, exclude_id: Optional[int] = None):
        """Barber-specific rules: weekly windows, blocks, then overlap with active bookings."""
        end = slot_end(start, self.config.duration_minutes)
        check_barber_availability(self.session, barber_id, start, end)

        if has_conflict(self.session, barber_id, start, end, self.config.duration, exclude_id=exclude_id):
            raise SlotConflict(
                f"The barber already has an appointment in that time range "
                f"(appointments last {self.config.duration_minutes} minutes)"
            )

    def _commit_booking(self, appointment: Appointment) -> Appointment:
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            logger.info(
                f"Slot {appointment.starts_at:%Y-%m-%d %H:%M} for barber {appointment.barber_id} "
                f"was taken by a concurrent request"
            )
            raise CommitConflict("Appointment already exists for that start time; please pick another slot")
        self.session.refresh(appointment)
        return appointment

    def _commit_transition(self, appointment: Appointment) -> Appointment:
        self.session.flush()
        enqueue_state_notification(self.session, appointment, self.config.duration_minutes)
        return self._commit_booking(appointment)

    # -- reads ---------------------------------------------------------------

    def get_appointment(self, appt_id: int, actor: Actor) -> Appointment:
        sweep_best_effort(self.session, self.clock())
        appointment = self._get(appt_id)
        if actor.role == UserRole.admin:
            return appointment
        if actor.role == UserRole.barber and appointment.barber_id == actor.id:
            return appointment
        if actor.role == UserRole.client and appointment.client_id == actor.id:
            return appointment
        raise AuthorizationError(RejectionReason.NOT_OWNER, "You do not have permission to view this appointment")

    def list_appointments(self, actor: Actor) -> List[Appointment]:
        sweep_best_effort(self.session, self.clock())

        stmt = select(Appointment)
        if actor.role == UserRole.barber:
            stmt = stmt.where(Appointment.barber_id == actor.id)
        elif actor.role == UserRole.client:
            stmt = stmt.where(Appointment.client_id == actor.id)
        elif actor.role != UserRole.admin:
            raise AuthorizationError(RejectionReason.ROLE_NOT_PERMITTED, "Role not allowed to list appointments")
        return list(self.session.exec(stmt.order_by(Appointment.starts_at.desc())).all())

    def list_available_slots(self, barber_id: int, day: date) -> List[dict]:
        """Free slots for one barber on one day, in chronological order.

        A listed slot passes the same rules create_appointment applies
        (quota aside), evaluated against the bookings present right now.
        """
        self.directory.require_barber(barber_id)
        if not self.config.is_working_day(day):
            return []

        now = self.clock()
        duration = self.config.duration
        day_start = datetime.combine(day, datetime.min.time())
        day_end = day_start + timedelta(days=1)

        weekly = active_windows(self.session, barber_id, day.weekday())
        uses_weekly = has_recurring_availability(self.session, barber_id)
        blocks = blocks_between(self.session, barber_id, day_start, day_end)
        taken = occupied_ranges(self.session, barber_id, day_start, day_end, duration)

        slots = []
        for window in self.config.windows:
            current = datetime.combine(day, window.start)
            while window.contains_slot(current, duration):
                end = current + duration
                if self._slot_is_free(current, end, now, uses_weekly, weekly, blocks, taken):
                    slots.append(
                        {
                            "starts_at": current,
                            "ends_at": end,
                            "label": current.strftime("%H:%M"),
                            "period": window.name,
                        }
                    )
                current = end
        return sorted(slots, key=lambda s: s["starts_at"])

    def _slot_is_free(self, start, end, now, uses_weekly, weekly, blocks, taken) -> bool:
        try:
            validate_slot(start, self.config, now)
        except ValidationRejection:
            return False
        if uses_weekly and not any(w.start_time <= start.time() < w.end_time for w in weekly):
            return False
        if any(overlaps(start, end, b.starts_at, b.ends_at) for b in blocks):
            return False
        return not any(overlaps(start, end, r["start"], r["end"]) for r in taken)

    def list_occupied_ranges(self, barber_id: int, start: datetime, end: datetime) -> List[dict]:
        self.directory.require_barber(barber_id)
        sweep_best_effort(self.session, self.clock())
        return occupied_ranges(
            self.session, barber_id, to_local_naive(start), to_local_naive(end), self.config.duration
        )

    # -- writes --------------------------------------------------------------

    def create_appointment(
        self,
        barber_id: int,
        starts_at: datetime,
        actor: Actor,
        client_id: Optional[int] = None,
    ) -> Appointment:
        now = self.clock()
        starts_at = to_local_naive(starts_at)

        if actor.role == UserRole.client:
            # an authenticated client always books for themselves
            client_id = actor.id
        elif actor.role in (UserRole.barber, UserRole.admin):
            if client_id is None:
                raise ValidationRejection(
                    RejectionReason.CLIENT_REQUIRED,
                    "client_id is required when the creator is not a client",
                )
        else:
            raise AuthorizationError(RejectionReason.ROLE_NOT_PERMITTED, "Role not allowed to book")

        validate_slot(starts_at, self.config, now)
        self.directory.require_barber(barber_id, lock=True)
        self.directory.require_client(client_id)
        self._check_barber_slot(barber_id, starts_at)
        enforce_quota(self.session, client_id, self.config)

        appointment = Appointment(
            starts_at=starts_at,
            client_id=client_id,
            barber_id=barber_id,
            state_id=AppointmentState.pending.value,
            modified_by=actor_stamp(actor),
            modified_at=now,
        )
        self.session.add(appointment)
        appointment = self._commit_booking(appointment)
        logger.info(
            f"Appointment {appointment.id} booked: barber {barber_id}, client {client_id}, "
            f"{starts_at:%Y-%m-%d %H:%M}"
        )
        return appointment

    def update_appointment(
        self,
        appt_id: int,
        barber_id: int,
        starts_at: datetime,
        actor: Actor,
        new_state: Optional[AppointmentState] = None,
    ) -> Appointment:
        now = self.clock()
        starts_at = to_local_naive(starts_at)
        appointment = self._get(appt_id)

        if actor.role == UserRole.client:
            raise AuthorizationError(RejectionReason.ROLE_NOT_PERMITTED, "Clients cannot modify appointments")
        if actor.role == UserRole.barber and appointment.barber_id != actor.id:
            raise AuthorizationError(RejectionReason.NOT_OWNER, "You do not have permission to modify this appointment")
        if actor.role not in (UserRole.barber, UserRole.admin):
            raise AuthorizationError(RejectionReason.ROLE_NOT_PERMITTED, "Role not allowed")

        current = AppointmentState(appointment.state_id)
        if is_terminal(current):
            raise StateConflict(RejectionReason.ALREADY_TERMINAL, f"Appointment is already {current.label}")

        moved = barber_id != appointment.barber_id or starts_at != appointment.starts_at
        if moved:
            validate_slot(starts_at, self.config, now)
            self.directory.require_barber(barber_id, lock=True)
            self._check_barber_slot(barber_id, starts_at, exclude_id=appointment.id)
        else:
            self.directory.require_barber(barber_id)

        state_changed = new_state is not None and new_state != current
        if state_changed:
            ensure_manual_transition(appointment, new_state)

        appointment.barber_id = barber_id
        appointment.starts_at = starts_at
        appointment.modified_by = actor_stamp(actor)
        appointment.modified_at = now
        self.session.add(appointment)

        if state_changed:
            apply_transition(appointment, new_state, actor_stamp(actor), now)
            appointment = self._commit_transition(appointment)
        else:
            appointment = self._commit_booking(appointment)
        logger.info(f"Appointment {appointment.id} updated by {actor_stamp(actor)}")
        return appointment

    def cancel_own_appointment(self, appt_id: int, client_id: int, note: Optional[str] = None) -> Appointment:
        now = self.clock()
        appointment = self._get(appt_id)

        if appointment.client_id != client_id:
            raise AuthorizationError(RejectionReason.NOT_OWNER, "You can only cancel your own appointments")

        current = AppointmentState(appointment.state_id)
        if is_terminal(current):
            raise StateConflict(RejectionReason.ALREADY_TERMINAL, f"Appointment is already {current.label}")

        if note and note.strip() and not self.config.cancellation_note_enabled:
            raise ValidationRejection(
                RejectionReason.NOTE_NOT_ALLOWED,
                "Cancellation notes are not enabled",
            )

        if appointment.starts_at - now < self.config.min_cancel_notice:
            raise ValidationRejection(
                RejectionReason.CANCELLATION_WINDOW_VIOLATED,
                f"Appointments can only be cancelled at least "
                f"{self.config.min_cancel_notice_hours:g} hours in advance",
            )

        apply_transition(appointment, AppointmentState.cancelled, f"{UserRole.client.value}:{client_id}", now, note)
        self.session.add(appointment)
        appointment = self._commit_transition(appointment)
        logger.info(f"Appointment {appointment.id} cancelled by client {client_id}")
        return appointment

    def change_state(
        self,
        appt_id: int,
        new_state: AppointmentState,
        actor: Actor,
        note: Optional[str] = None,
    ) -> Appointment:
        now = self.clock()
        appointment = self._get(appt_id)

        authorize_state_change(appointment, actor)
        ensure_manual_transition(appointment, new_state)

        apply_transition(appointment, new_state, actor_stamp(actor), now, note)
        self.session.add(appointment)
        appointment = self._commit_transition(appointment)
        logger.info(f"Appointment {appointment.id} -> {new_state.label} by {actor_stamp(actor)}")
        return appointment

    def delete_appointment(self, appt_id: int, actor: Actor) -> None:
        appointment = self._get(appt_id)

        if actor.role == UserRole.barber and appointment.barber_id != actor.id:
            raise AuthorizationError(RejectionReason.NOT_OWNER, "You do not have permission to delete this appointment")
        if actor.role not in (UserRole.barber, UserRole.admin):
            raise AuthorizationError(RejectionReason.ROLE_NOT_PERMITTED, "Clients cannot delete appointments")

        self.session.delete(appointment)
        self.session.commit()
        logger.info(f"Appointment {appt_id} deleted by {actor_stamp(actor)}")

    def sweep_expired(self, now: Optional[datetime] = None) -> SweepResult:
        return sweep_expired(self.session, now or self.clock(), batch_size=SWEEP_BATCH_SIZE)
