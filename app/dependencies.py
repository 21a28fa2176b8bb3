"""Dependency helpers.

Provides authentication, session-context and role-gating dependencies for
FastAPI routes.
"""

from fastapi import Cookie, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models import Role, User
from app.principals import SessionContext, context_for
from app.security import read_session_token


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_user(
    authorization: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None),
    db: Session = Depends(get_db),
) -> User:
    token = _bearer_token(authorization) or session_token
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No token provided")
    user_id = read_session_token(token)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized, token failed")
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


def get_session_context(current_user: User = Depends(get_current_user)) -> SessionContext:
    return context_for(current_user)


def require_roles(*roles: Role):
    def _checker(current_user: User = Depends(get_current_user)) -> SessionContext:
        if current_user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return context_for(current_user)

    return _checker
