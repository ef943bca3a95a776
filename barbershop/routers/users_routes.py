# barbershop/routers/users_routes.py

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from barbershop.db import get_session
from barbershop.models import User
from barbershop.schemas import UserCreate, UserPublic
from barbershop.auth import get_current_user, get_optional_user, hash_password
from barbershop.deps import require_role

router = APIRouter(
    tags=["users"],
)


@router.get("/me", response_model=UserPublic)
def me(current_user: dict = Depends(get_current_user)):
    return {
        "id": current_user["id"],
        "name": current_user["name"],
        "email": current_user["email"],
        "role": current_user["role"],
    }


@router.post("/users", status_code=201, response_model=UserPublic)
def create_user(
    user: UserCreate,
    session: Session = Depends(get_session),
    current_user: Optional[dict] = Depends(get_optional_user),
):
    # 1) Only admins add staff, except for the very first account
    if session.exec(select(User)).first() is not None:
        if current_user is None:
            raise HTTPException(status_code=401, detail="Not authenticated")
        require_role(current_user, "admin")

    # 2) Check if email already exists
    existing = session.exec(
        select(User).where(User.email == user.email)
    ).first()
    if existing is not None:
        raise HTTPException(status_code=409, detail="Email already registered")

    # 3) Create user in DB
    db_user = User(
        name=user.name,
        email=user.email,
        password_hash=hash_password(user.password),
        phone=user.phone,
        role=user.role,
    )

    session.add(db_user)
    session.commit()
    session.refresh(db_user)  # fills db_user.id

    return {
        "id": db_user.id,
        "name": db_user.name,
        "email": db_user.email,
        "role": db_user.role,
    }
