# barbershop/routers/auth_routes.py

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import OAuth2PasswordRequestForm
from sqlmodel import Session

from barbershop.auth import authenticate_user, create_access_token
from barbershop.db import get_session
from barbershop.schemas import Token

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
    # staff sign in with their email in the OAuth2 "username" field
    user = authenticate_user(session, form_data.username, form_data.password)
    if user is None:
        logger.warning("Failed login for %s", form_data.username)
        raise HTTPException(
            status_code=401,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.info("Staff member %s signed in", user.id)
    return Token(access_token=create_access_token({"sub": user.email, "role": user.role.value}))
