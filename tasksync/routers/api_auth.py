from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from ..auth import (
    authenticate_user,
    create_access_token,
    get_current_user_api,
    list_users,
    register_user,
    update_profile,
)
from ..config import get_settings
from ..db import get_db
from ..models import User
from ..schemas import AuthResponse, LoginRequest, ProfileUpdate, RegisterRequest, UserEnvelope, UserOut


router = APIRouter()


def _set_auth_cookie(response: Response, token: str) -> None:
    s = get_settings().security
    response.set_cookie(
        key=s.cookie_name,
        value=token,
        httponly=True,
        secure=bool(s.cookie_secure),
        samesite="lax",
        max_age=int(s.jwt_expire_minutes) * 60,
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def api_register(payload: RegisterRequest, response: Response, db: Session = Depends(get_db)):
    try:
        user = register_user(db, name=payload.name, email=payload.email, password=payload.password)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    token = create_access_token(subject=user.id)
    _set_auth_cookie(response, token)
    return AuthResponse(message="User registered successfully", user=UserOut.model_validate(user), access_token=token)


@router.post("/login", response_model=AuthResponse)
def api_login(payload: LoginRequest, response: Response, db: Session = Depends(get_db)):
    user = authenticate_user(db, payload.email, payload.password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    token = create_access_token(subject=user.id)
    _set_auth_cookie(response, token)
    return AuthResponse(message="Login successful", user=UserOut.model_validate(user), access_token=token)


@router.get("/me", response_model=UserEnvelope)
def api_me(current_user: User = Depends(get_current_user_api)):
    return UserEnvelope(user=UserOut.model_validate(current_user))


@router.put("/profile", response_model=UserEnvelope)
def api_update_profile(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user_api),
):
    try:
        user = update_profile(db, user=current_user, name=payload.name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return UserEnvelope(user=UserOut.model_validate(user))


@router.post("/logout")
def api_logout(response: Response, current_user: User = Depends(get_current_user_api)):
    response.delete_cookie(get_settings().security.cookie_name, httponly=True, samesite="lax")
    return {"message": "Logged out"}


@router.get("/users", response_model=list[UserOut])
def api_list_users(db: Session = Depends(get_db), current_user: User = Depends(get_current_user_api)):
    return list_users(db)
