# turnos/routers/admin_routes.py

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlmodel import Session, select

from turnos.auth import get_current_user
from turnos.db import get_session
from turnos.deps import require_role
from turnos.models import SystemSetting, User
from turnos.notifications import dispatch_pending
from turnos.routers.users_routes import create_user_record, to_user_public
from turnos.scheduling_config import SCHEDULING_KEYS, get_scheduling_config
from turnos.schemas import Actor, SettingPublic, SettingUpdate, UserCreate, UserPublic, UserRole

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
)


@router.get("/settings", response_model=List[SettingPublic])
def list_settings(
    session: Session = Depends(get_session),
    current_user: Actor = Depends(get_current_user),
):
    require_role(current_user, UserRole.admin)
    return session.exec(select(SystemSetting).order_by(SystemSetting.key)).all()


@router.get("/settings/effective")
def effective_settings(
    session: Session = Depends(get_session),
    current_user: Actor = Depends(get_current_user),
):
    """The rules bookings are validated against right now, defaults included."""
    require_role(current_user, UserRole.admin)
    config = get_scheduling_config(session)
    return {
        "duration_minutes": config.duration_minutes,
        "max_active_per_client": config.max_active_per_client,
        "min_lead_hours": config.min_lead_hours,
        "min_cancel_notice_hours": config.min_cancel_notice_hours,
        "windows": [
            {
                "name": w.name,
                "start": w.start.strftime("%H:%M"),
                "end": w.end.strftime("%H:%M"),
                "last_start": w.last_start.strftime("%H:%M"),
            }
            for w in config.windows
        ],
        "working_days": sorted(config.working_days),
        "cancellation_note_enabled": config.cancellation_note_enabled,
        "max_advance_days": config.max_advance_days,
    }


@router.put("/settings/{key}", response_model=SettingPublic)
def upsert_setting(
    key: str,
    update: SettingUpdate,
    session: Session = Depends(get_session),
    current_user: Actor = Depends(get_current_user),
):
    require_role(current_user, UserRole.admin)
    key = key.upper()
    if key not in SCHEDULING_KEYS:
        raise HTTPException(status_code=422, detail=f"Unknown setting: {key}")

    setting = session.exec(select(SystemSetting).where(SystemSetting.key == key)).first()
    if setting is None:
        setting = SystemSetting(key=key, value=update.value, description=update.description)
        session.add(setting)
    else:
        setting.value = update.value
        if update.description is not None:
            setting.description = update.description
        setting.updated_at = datetime.now()

    session.commit()
    session.refresh(setting)
    logger.info(f"Setting {key} set to {update.value!r} by admin {current_user.id}")
    return setting


@router.delete("/settings/{key}", status_code=204)
def delete_setting(
    key: str,
    session: Session = Depends(get_session),
    current_user: Actor = Depends(get_current_user),
):
    require_role(current_user, UserRole.admin)
    setting = session.exec(select(SystemSetting).where(SystemSetting.key == key.upper())).first()
    if setting is None:
        raise HTTPException(status_code=404, detail="Setting not found")
    session.delete(setting)
    session.commit()
    return Response(status_code=204)


@router.post("/users", status_code=201, response_model=UserPublic)
def create_any_user(
    user: UserCreate,
    session: Session = Depends(get_session),
    current_user: Actor = Depends(get_current_user),
):
    require_role(current_user, UserRole.admin)
    return to_user_public(create_user_record(session, user))


@router.post("/notifications/dispatch")
def dispatch_notifications(
    session: Session = Depends(get_session),
    current_user: Actor = Depends(get_current_user),
):
    require_role(current_user, UserRole.admin)
    return dispatch_pending(session)


def ensure_admin(session: Session, email: Optional[str], password: Optional[str]) -> Optional[User]:
    """Create the first admin account at startup if it does not exist yet."""
    if not email or not password:
        return None
    existing = session.exec(select(User).where(User.email == email)).first()
    if existing is not None:
        return existing
    admin = create_user_record(
        session, UserCreate(email=email, name="Admin", password=password, role=UserRole.admin)
    )
    logger.info(f"Admin account {email} created")
    return admin
