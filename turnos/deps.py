# turnos/deps.py

from datetime import datetime

from fastapi import Depends, HTTPException
from sqlmodel import Session

from turnos.appointments import AppointmentService
from turnos.db import get_session
from turnos.schemas import Actor, UserRole


def require_role(user: Actor, *roles: UserRole):
    if user.role not in roles:
        raise HTTPException(status_code=403, detail="Forbidden")


def get_clock():
    return datetime.now


# Dependency: scheduling rules are resolved fresh for every request
def get_appointment_service(
    session: Session = Depends(get_session),
    clock=Depends(get_clock),
) -> AppointmentService:
    return AppointmentService(session, clock=clock)
