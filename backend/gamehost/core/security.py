from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from fastapi import Depends, HTTPException, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.orm import Session

from gamehost.core.config import settings
from gamehost.db.session import get_db
from gamehost.models.user import User, UserRole


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)

TOKEN_COOKIE = "gh_token"


def create_access_token(*, user_id: str, role: str, minutes: int | None = None) -> str:
    now = datetime.utcnow()
    expire = now + timedelta(minutes=int(minutes or settings.jwt_access_token_minutes))
    payload = {
        "sub": str(user_id),
        "role": str(role),
        "iat": now,
        "exp": expire,
        "iss": str(settings.jwt_issuer),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def _user_from_token(db: Session, token: str) -> User:
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            issuer=str(settings.jwt_issuer),
        )
        user_id = payload.get("sub")
        if not user_id:
            raise HTTPException(status_code=401, detail="invalid token")
    except JWTError as e:
        raise HTTPException(status_code=401, detail="invalid token") from e

    try:
        user_id = uuid.UUID(str(user_id))
    except ValueError as e:
        raise HTTPException(status_code=401, detail="invalid token") from e

    user = db.scalar(select(User).where(User.id == user_id))
    if user is None:
        raise HTTPException(status_code=401, detail="invalid token")
    return user


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    token: str = Depends(oauth2_scheme),
) -> User:
    if not token:
        token = request.cookies.get(TOKEN_COOKIE)
    if not token:
        raise HTTPException(status_code=401, detail="not authenticated")

    user = _user_from_token(db, token)
    request.state.user_id = str(user.id)
    return user


def get_optional_user(
    request: Request,
    db: Session = Depends(get_db),
    token: str = Depends(oauth2_scheme),
) -> User | None:
    """Like ``get_current_user`` but anonymous requests yield ``None``.

    Static build files are loaded by the browser from an iframe, which sends
    the cookie but never the bearer header.
    """

    if not token:
        token = request.cookies.get(TOKEN_COOKIE)
    if not token:
        return None
    try:
        user = _user_from_token(db, token)
    except HTTPException:
        return None
    request.state.user_id = str(user.id)
    return user


def require_roles(*roles: UserRole):
    def _dep(user: User = Depends(get_current_user)) -> User:
        if user.role == UserRole.admin:
            return user

        if user.role not in roles:
            raise HTTPException(status_code=403, detail="forbidden")
        return user

    return _dep
