# turnos/routers/users_routes.py

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from turnos.auth import get_current_user, hash_password
from turnos.db import get_session
from turnos.directory import UserDirectory
from turnos.models import User
from turnos.schemas import Actor, UserCreate, UserPublic, UserRole

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["users"],
)


def to_user_public(user: User) -> UserPublic:
    return UserPublic(id=user.id, email=user.email, name=user.name, role=UserRole(user.role))


def create_user_record(session: Session, user: UserCreate) -> User:
    """Insert a user with a hashed password; 409 when the email is taken."""
    if UserDirectory(session).get_by_email(user.email) is not None:
        raise HTTPException(status_code=409, detail="Email already registered")

    db_user = User(
        email=user.email,
        name=user.name,
        password_hash=hash_password(user.password),
        role=user.role.value,
    )
    session.add(db_user)
    session.commit()
    session.refresh(db_user)
    logger.info(f"User {db_user.id} registered as {db_user.role}")
    return db_user


@router.get("/me", response_model=UserPublic)
def me(
    current_user: Actor = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return to_user_public(UserDirectory(session).get_by_id(current_user.id))


@router.post("/users", status_code=201, response_model=UserPublic)
def register(
    user: UserCreate,
    session: Session = Depends(get_session),
):
    # clients and barbers sign up themselves; admins are created by an admin
    if user.role == UserRole.admin:
        raise HTTPException(status_code=403, detail="Admin accounts are created by an admin")

    return to_user_public(create_user_record(session, user))
