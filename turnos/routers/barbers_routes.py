# turnos/routers/barbers_routes.py

from datetime import datetime, timedelta, date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlmodel import Session, select

from turnos import availability
from turnos.appointments import AppointmentService
from turnos.auth import get_current_user
from turnos.db import get_session
from turnos.deps import get_appointment_service, get_clock, require_role
from turnos.models import User
from turnos.schemas import (
    Actor,
    AvailabilityWindow,
    AvailableSlotsResponse,
    BlockCreate,
    BlockPublic,
    OccupiedRange,
    UserPublic,
    UserRole,
    WeeklyAvailability,
)
from turnos.core import to_local_naive

router = APIRouter(
    prefix="/barbers",
    tags=["barbers"],
)


def _windows_public(rows) -> WeeklyAvailability:
    return WeeklyAvailability(
        windows=[
            AvailabilityWindow(
                weekday=r.weekday,
                start_time=r.start_time,
                end_time=r.end_time,
                active=r.active,
            )
            for r in rows
        ]
    )


@router.get("", response_model=List[UserPublic])
def list_barbers(
    search: Optional[str] = None,
    only_active: bool = True,
    limit: int = 100,
    session: Session = Depends(get_session),
):
    # Normalize limit
    limit = min(max(limit, 1), 1000)

    stmt = select(User).where(User.role == UserRole.barber.value)
    if only_active:
        stmt = stmt.where(User.active == True)  # noqa: E712
    if search and search.strip():
        stmt = stmt.where(User.name.ilike(f"%{search.strip()}%"))

    barbers = session.exec(stmt.order_by(User.name).limit(limit)).all()
    return [{"id": b.id, "email": b.email, "name": b.name, "role": b.role} for b in barbers]


@router.put("/me/availability", response_model=WeeklyAvailability)
def set_my_availability(
    schedule: WeeklyAvailability,
    session: Session = Depends(get_session),
    current_user: Actor = Depends(get_current_user),
):
    require_role(current_user, UserRole.barber)  # only barbers can set their week
    rows = availability.replace_weekly_availability(session, current_user.id, schedule.windows)
    return _windows_public(rows)


@router.get("/{barber_id}/availability", response_model=WeeklyAvailability)
def get_availability(
    barber_id: int,
    session: Session = Depends(get_session),
):
    return _windows_public(availability.weekly_availability(session, barber_id))


@router.post("/me/blocks", response_model=BlockPublic, status_code=201)
def create_block(
    block: BlockCreate,
    session: Session = Depends(get_session),
    current_user: Actor = Depends(get_current_user),
):
    require_role(current_user, UserRole.barber)
    db_block = availability.add_block(
        session,
        current_user.id,
        to_local_naive(block.starts_at),
        to_local_naive(block.ends_at),
        reason=block.reason,
    )
    return db_block


@router.get("/me/blocks", response_model=List[BlockPublic])
def list_my_blocks(
    session: Session = Depends(get_session),
    current_user: Actor = Depends(get_current_user),
    clock=Depends(get_clock),
):
    require_role(current_user, UserRole.barber)
    return availability.list_blocks(session, current_user.id, start=clock())


@router.delete("/me/blocks/{block_id}", status_code=204)
def delete_block(
    block_id: int,
    session: Session = Depends(get_session),
    current_user: Actor = Depends(get_current_user),
):
    require_role(current_user, UserRole.barber)
    availability.delete_block(session, current_user.id, block_id)
    return Response(status_code=204)


@router.get("/{barber_id}/slots", response_model=AvailableSlotsResponse)
def available_slots(
    barber_id: int,
    date: date,
    service: AppointmentService = Depends(get_appointment_service),
):
    slots = service.list_available_slots(barber_id, date)
    return {"barber_id": barber_id, "date": date, "slots": slots}


@router.get("/{barber_id}/occupied", response_model=List[OccupiedRange])
def occupied(
    barber_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    service: AppointmentService = Depends(get_appointment_service),
    clock=Depends(get_clock),
):
    start = to_local_naive(start) if start else clock()
    end = to_local_naive(end) if end else start + timedelta(days=7)
    if start > end:
        raise HTTPException(status_code=422, detail="start cannot be after end")
    return service.list_occupied_ranges(barber_id, start, end)
