# turnos/schemas.py

from pydantic import BaseModel, ConfigDict, Field, field_validator
from enum import Enum, IntEnum
from datetime import datetime, date, time
from typing import List, Optional


class AppointmentState(IntEnum):
    pending = 1
    confirmed = 2
    cancelled = 3
    expired = 4
    attended = 5

    @property
    def label(self) -> str:
        return self.name.capitalize()


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserRole(str, Enum):
    client = "client"
    barber = "barber"
    admin = "admin"


class Actor(BaseModel):
    """Who is calling: resolved from the bearer token."""

    model_config = ConfigDict(frozen=True)

    id: int
    role: UserRole
    email: str = ""


class UserPublic(BaseModel):
    id: int
    email: str
    name: str
    role: UserRole


class UserCreate(BaseModel):
    email: str
    name: str = Field(default="", max_length=120)
    password: str = Field(min_length=8, max_length=72)
    role: UserRole = UserRole.client


class AppointmentCreate(BaseModel):
    starts_at: datetime
    barber_id: int
    # required when the creator is a barber or an admin
    client_id: Optional[int] = None


class AppointmentUpdate(BaseModel):
    starts_at: datetime
    barber_id: int
    state: Optional[AppointmentState] = None


class StateChange(BaseModel):
    state: AppointmentState
    note: Optional[str] = None


class CancelRequest(BaseModel):
    note: Optional[str] = None


class AppointmentPublic(BaseModel):
    id: int
    starts_at: datetime
    ends_at: datetime
    client_id: int
    barber_id: int
    state: AppointmentState
    state_label: str
    note: Optional[str] = None
    modified_by: Optional[str] = None
    modified_at: Optional[datetime] = None


class AvailabilityWindow(BaseModel):
    weekday: int = Field(ge=0, le=6)  # 0=Mon, 1=Tues....
    start_time: time
    end_time: time
    active: bool = True

    @field_validator("end_time")
    @classmethod
    def end_after_start(cls, v, info):
        start = info.data.get("start_time")
        if start is not None and v <= start:
            raise ValueError("end_time must be after start_time")
        return v


class WeeklyAvailability(BaseModel):
    windows: List[AvailabilityWindow]


class BlockCreate(BaseModel):
    starts_at: datetime
    ends_at: datetime
    reason: Optional[str] = Field(default=None, max_length=200)


class BlockPublic(BaseModel):
    id: int
    barber_id: int
    starts_at: datetime
    ends_at: datetime
    reason: Optional[str] = None


class SlotPublic(BaseModel):
    starts_at: datetime
    ends_at: datetime
    label: str
    period: str


class AvailableSlotsResponse(BaseModel):
    barber_id: int
    date: date
    slots: List[SlotPublic]


class OccupiedRange(BaseModel):
    id: int
    start: datetime
    end: datetime
    state: AppointmentState


class SweepResult(BaseModel):
    expired: int = 0
    attended: int = 0


class SettingPublic(BaseModel):
    key: str
    value: str
    description: Optional[str] = None


class SettingUpdate(BaseModel):
    value: str = Field(max_length=500)
    description: Optional[str] = Field(default=None, max_length=200)
