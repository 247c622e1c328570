from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import func
from sqlalchemy.orm import Session

from .config import get_settings
from .db import get_db
from .models import User


# PBKDF2-SHA256 is implemented fully in passlib (no native bcrypt dependency).
pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
    pbkdf2_sha256__rounds=200_000,
)

# auto_error=False: the token may come from the cookie instead.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

logger = logging.getLogger("tasksync.auth")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def normalize_email(email: str | None) -> str:
    return str(email or "").strip().lower()


def get_user(db: Session, user_id: str) -> Optional[User]:
    return db.query(User).filter(User.id == str(user_id)).first()


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    e = normalize_email(email)
    if not e:
        return None
    return db.query(User).filter(func.lower(User.email) == e).first()


def list_users(db: Session) -> list[User]:
    return db.query(User).order_by(User.name.asc()).all()


def register_user(db: Session, *, name: str, email: str, password: str) -> User:
    uname = (name or "").strip()
    if not uname:
        raise ValueError("Name is required")

    norm_email = normalize_email(email)
    if not norm_email or "@" not in norm_email:
        raise ValueError("A valid email is required")
    if get_user_by_email(db, norm_email):
        raise ValueError("Email already registered")

    user = User(name=uname, email=norm_email, hashed_password=hash_password(password))
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s", user.id)
    return user


def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
    user = get_user_by_email(db, email)
    if not user:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


def update_profile(db: Session, *, user: User, name: str) -> User:
    uname = (name or "").strip()
    if len(uname) < 2:
        raise ValueError("Name must be at least 2 characters")
    user.name = uname
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_access_token(*, subject: str, expires_minutes: int | None = None) -> str:
    settings = get_settings()
    minutes = int(expires_minutes if expires_minutes is not None else settings.security.jwt_expire_minutes)
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    to_encode = {"sub": str(subject), "exp": expire}
    return jwt.encode(to_encode, settings.security.jwt_secret, algorithm="HS256")


def decode_access_token(token: str) -> str:
    """Return the user id carried by `token`; raises JWTError if invalid."""
    settings = get_settings()
    payload = jwt.decode(token, settings.security.jwt_secret, algorithms=["HS256"])
    sub = payload.get("sub")
    if not sub:
        raise JWTError("Token has no subject")
    return str(sub)


def _token_from_request(request: Request, bearer: str | None) -> str | None:
    cookie_name = get_settings().security.cookie_name
    cookie = request.cookies.get(cookie_name)
    return cookie or bearer


def get_current_user_api(
    request: Request,
    db: Session = Depends(get_db),
    bearer: str | None = Depends(oauth2_scheme),
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    token = _token_from_request(request, bearer)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No token provided",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        user_id = decode_access_token(token)
    except JWTError:
        raise credentials_exception

    user = get_user(db, user_id)
    if user is None:
        raise credentials_exception
    return user
