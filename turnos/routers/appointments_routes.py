# turnos/routers/appointments_routes.py

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Response

from turnos.appointments import AppointmentService
from turnos.auth import get_current_user
from turnos.core import slot_end
from turnos.deps import get_appointment_service, require_role
from turnos.models import Appointment
from turnos.notifications import dispatch_outbox
from turnos.schemas import (
    Actor,
    AppointmentCreate,
    AppointmentPublic,
    AppointmentState,
    AppointmentUpdate,
    CancelRequest,
    StateChange,
    SweepResult,
    UserRole,
)

router = APIRouter(
    prefix="/appointments",
    tags=["appointments"],
)


def to_public(appt: Appointment, duration_minutes: int) -> AppointmentPublic:
    state = AppointmentState(appt.state_id)
    return AppointmentPublic(
        id=appt.id,
        starts_at=appt.starts_at,
        ends_at=slot_end(appt.starts_at, duration_minutes),
        client_id=appt.client_id,
        barber_id=appt.barber_id,
        state=state,
        state_label=state.label,
        note=appt.note,
        modified_by=appt.modified_by,
        modified_at=appt.modified_at,
    )


def _notify_after_commit(background_tasks: BackgroundTasks, service: AppointmentService):
    background_tasks.add_task(dispatch_outbox, service.session.get_bind())


@router.post("", response_model=AppointmentPublic, status_code=201)
def create_appointment(
    appt: AppointmentCreate,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: Actor = Depends(get_current_user),
):
    db_appt = service.create_appointment(
        barber_id=appt.barber_id,
        starts_at=appt.starts_at,
        actor=current_user,
        client_id=appt.client_id,
    )
    return to_public(db_appt, service.config.duration_minutes)


@router.get("", response_model=List[AppointmentPublic])
def list_appointments(
    service: AppointmentService = Depends(get_appointment_service),
    current_user: Actor = Depends(get_current_user),
):
    appts = service.list_appointments(current_user)
    return [to_public(a, service.config.duration_minutes) for a in appts]


@router.post("/sweep", response_model=SweepResult)
def sweep_appointments(
    service: AppointmentService = Depends(get_appointment_service),
    current_user: Actor = Depends(get_current_user),
):
    require_role(current_user, UserRole.admin)
    return service.sweep_expired()


@router.get("/{appt_id}", response_model=AppointmentPublic)
def get_appointment(
    appt_id: int,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: Actor = Depends(get_current_user),
):
    appt = service.get_appointment(appt_id, current_user)
    return to_public(appt, service.config.duration_minutes)


@router.put("/{appt_id}", response_model=AppointmentPublic)
def update_appointment(
    appt_id: int,
    appt: AppointmentUpdate,
    background_tasks: BackgroundTasks,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: Actor = Depends(get_current_user),
):
    db_appt = service.update_appointment(
        appt_id,
        barber_id=appt.barber_id,
        starts_at=appt.starts_at,
        actor=current_user,
        new_state=appt.state,
    )
    if appt.state is not None:
        _notify_after_commit(background_tasks, service)
    return to_public(db_appt, service.config.duration_minutes)


@router.post("/{appt_id}/state", response_model=AppointmentPublic)
def change_state(
    appt_id: int,
    change: StateChange,
    background_tasks: BackgroundTasks,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: Actor = Depends(get_current_user),
):
    db_appt = service.change_state(appt_id, change.state, current_user, note=change.note)
    _notify_after_commit(background_tasks, service)
    return to_public(db_appt, service.config.duration_minutes)


@router.post("/{appt_id}/cancel", response_model=AppointmentPublic)
def cancel_my_appointment(
    appt_id: int,
    background_tasks: BackgroundTasks,
    body: Optional[CancelRequest] = None,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: Actor = Depends(get_current_user),
):
    require_role(current_user, UserRole.client)
    note = body.note if body is not None else None
    db_appt = service.cancel_own_appointment(appt_id, current_user.id, note=note)
    _notify_after_commit(background_tasks, service)
    return to_public(db_appt, service.config.duration_minutes)


@router.delete("/{appt_id}", status_code=204)
def delete_appointment(
    appt_id: int,
    service: AppointmentService = Depends(get_appointment_service),
    current_user: Actor = Depends(get_current_user),
):
    service.delete_appointment(appt_id, current_user)
    return Response(status_code=204)
