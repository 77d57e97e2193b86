# turnos/models.py

from typing import Optional
from datetime import datetime, time

from sqlalchemy import Index, UniqueConstraint, text
from sqlmodel import SQLModel, Field

NOTE_MAX_LENGTH = 500

# Pending(1) and Confirmed(2) occupy a slot
_ACTIVE_STATES_SQL = text("state_id IN (1, 2)")


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    name: str = ""
    password_hash: str
    role: str  # client, barber or admin
    active: bool = True


class Appointment(SQLModel, table=True):
    __table_args__ = (
        # one active appointment per (barber, start); cancelled/expired/attended rows stay as history
        Index(
            "uq_appointment_active_slot",
            "barber_id",
            "starts_at",
            unique=True,
            sqlite_where=_ACTIVE_STATES_SQL,
            postgresql_where=_ACTIVE_STATES_SQL,
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    starts_at: datetime = Field(index=True)
    client_id: int = Field(foreign_key="user.id", index=True)
    barber_id: int = Field(foreign_key="user.id", index=True)
    state_id: int = Field(default=1, index=True)
    note: Optional[str] = Field(default=None, max_length=NOTE_MAX_LENGTH)

    modified_by: Optional[str] = None
    modified_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.now)


class BarberAvailability(SQLModel, table=True):
    __tablename__ = "barber_availability"

    id: Optional[int] = Field(default=None, primary_key=True)

    barber_id: int = Field(foreign_key="user.id", index=True)
    weekday: int = Field(index=True)  # 0=Mon ... 6=Sun
    start_time: time
    end_time: time
    active: bool = True


class ScheduleBlock(SQLModel, table=True):
    __tablename__ = "schedule_block"

    id: Optional[int] = Field(default=None, primary_key=True)

    barber_id: int = Field(foreign_key="user.id", index=True)
    starts_at: datetime = Field(index=True)
    ends_at: datetime
    reason: Optional[str] = None  # vacation, lunch break, ...


class SystemSetting(SQLModel, table=True):
    __tablename__ = "system_setting"
    __table_args__ = (UniqueConstraint("key", name="uq_system_setting_key"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    key: str = Field(max_length=100)
    value: str = Field(max_length=500)
    description: Optional[str] = Field(default=None, max_length=200)
    updated_at: datetime = Field(default_factory=datetime.now)


class NotificationOutbox(SQLModel, table=True):
    __tablename__ = "notification_outbox"

    id: Optional[int] = Field(default=None, primary_key=True)

    appointment_id: int = Field(index=True)
    recipient_email: Optional[str] = None
    client_name: str = ""
    barber_name: str = ""
    slot_start: datetime
    slot_end: datetime
    state_id: int
    note: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.now)
    sent_at: Optional[datetime] = Field(default=None, index=True)
    attempts: int = 0
    last_error: Optional[str] = None
