# turnos/routers/auth_routes.py

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import OAuth2PasswordRequestForm
from sqlmodel import Session

from turnos.auth import token_for, verify_password
from turnos.db import get_session
from turnos.directory import UserDirectory
from turnos.schemas import Token

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
)


@router.post("/login", response_model=Token)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: Session = Depends(get_session),
):
    # OAuth2 form calls it "username"; accounts are keyed by email
    user = UserDirectory(session).get_by_email(form_data.username)

    if user is None or not user.active or not verify_password(form_data.password, user.password_hash):
        logger.info(f"Failed login for {form_data.username}")
        raise HTTPException(status_code=401, detail="Invalid credentials")

    return Token(access_token=token_for(user))
