# turnos/notifications.py
"""
Post-commit notifications for appointment state changes.

A state change to Confirmed or Cancelled writes a NotificationOutbox row in
the same transaction as the change itself. Rows are delivered after commit
(request background task or the periodic job). A failed delivery is logged
and retried later; it never rolls back the state change.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from sqlmodel import Session, select

from turnos.config import NOTIFICATION_MAX_ATTEMPTS, SHOP_NAME
from turnos.core import slot_end
from turnos.directory import UserDirectory
from turnos.models import Appointment, NotificationOutbox
from turnos.schemas import AppointmentState

logger = logging.getLogger(__name__)

NOTIFIED_STATES = {AppointmentState.confirmed, AppointmentState.cancelled}


class EmailSender(ABC):
    @abstractmethod
    def send(self, to: str, subject: str, body: str) -> None:
        ...


class LoggingEmailSender(EmailSender):
    """Default sender: records the message in the log instead of delivering it."""

    def send(self, to: str, subject: str, body: str) -> None:
        logger.info(f"📧 Email to {to}: {subject}")
        logger.debug(body)


default_sender: EmailSender = LoggingEmailSender()


def enqueue_state_notification(
    session: Session, appointment: Appointment, duration_minutes: int
) -> Optional[NotificationOutbox]:
    """Add an outbox row for the appointment's new state (not committed here)."""
    state = AppointmentState(appointment.state_id)
    if state not in NOTIFIED_STATES:
        return None

    directory = UserDirectory(session)
    client = directory.get_by_id(appointment.client_id)
    barber = directory.get_by_id(appointment.barber_id)

    row = NotificationOutbox(
        appointment_id=appointment.id,
        recipient_email=client.email if client else None,
        client_name=(client.name if client and client.name else "Client"),
        barber_name=(barber.name if barber and barber.name else ""),
        slot_start=appointment.starts_at,
        slot_end=slot_end(appointment.starts_at, duration_minutes),
        state_id=state.value,
        note=appointment.note,
    )
    session.add(row)
    return row


def render(row: NotificationOutbox):
    when = f"{row.slot_start:%A %d %B %Y}, {row.slot_start:%H:%M}-{row.slot_end:%H:%M}"
    if row.state_id == AppointmentState.confirmed.value:
        subject = f"✅ Appointment confirmed - {SHOP_NAME}"
        lines = [f"Hi {row.client_name},", f"Your appointment with {row.barber_name} on {when} is confirmed."]
    else:
        subject = f"❌ Appointment cancelled - {SHOP_NAME}"
        lines = [f"Hi {row.client_name},", f"Your appointment with {row.barber_name} on {when} was cancelled."]
    if row.note:
        lines.append(f"Note: {row.note}")
    return subject, "\n".join(lines)


def dispatch_pending(
    session: Session,
    sender: Optional[EmailSender] = None,
    max_attempts: int = NOTIFICATION_MAX_ATTEMPTS,
    limit: int = 100,
) -> dict:
    """Deliver unsent outbox rows; each row succeeds or fails on its own."""
    sender = sender or default_sender
    summary = {"sent": 0, "failed": 0, "skipped": 0}

    rows = session.exec(
        select(NotificationOutbox)
        .where(NotificationOutbox.sent_at == None)  # noqa: E711
        .where(NotificationOutbox.attempts < max_attempts)
        .order_by(NotificationOutbox.id)
        .limit(limit)
    ).all()

    for row in rows:
        if not row.recipient_email:
            logger.warning(f"No email for client of appointment {row.appointment_id}; dropping notification")
            row.attempts = max_attempts
            row.last_error = "missing recipient email"
            session.commit()
            summary["skipped"] += 1
            continue

        subject, body = render(row)
        try:
            sender.send(row.recipient_email, subject, body)
        except Exception as e:
            row.attempts += 1
            row.last_error = str(e)[:500]
            session.commit()
            summary["failed"] += 1
            logger.error(f"❌ Failed to notify {row.recipient_email} for appointment {row.appointment_id}: {e}")
            continue

        row.attempts += 1
        row.sent_at = datetime.now()
        session.commit()
        summary["sent"] += 1

    return summary


def dispatch_outbox(bind) -> None:
    """Background-task entry point: drains the outbox with its own session."""
    try:
        with Session(bind) as session:
            dispatch_pending(session)
    except Exception:
        logger.exception("Notification dispatch failed")
