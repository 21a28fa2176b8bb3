"""Account administration and credential flows.

Covers login, admin-managed accounts with temporary passwords, the
manager/employee assignment graph, password resets and the manager profile.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.config import settings
from app.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from app.models import LeaveRequest, ManagerProfile, Role, Timesheet, User, utcnow
from app.notifications import send_email
from app.principals import SessionContext
from app.security import (
    MIN_PASSWORD_LENGTH,
    create_session_token,
    generate_reset_token,
    generate_temporary_password,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)

FORGOT_PASSWORD_MESSAGE = "If that email exists, a reset link has been sent."

DEFAULT_PROFILE = {
    "title": "People Operations Manager",
    "phone": "",
    "team_name": "",
    "location": "",
    "timezone": "Asia/Kolkata",
    "working_hours_start": "09:00",
    "working_hours_end": "18:00",
}
DEFAULT_PROFILE_SETTINGS = {
    "email_notifications": True,
    "slack_notifications": False,
    "weekly_digest": True,
    "auto_approve_short_leaves": False,
}


@dataclass(frozen=True)
class LoginResult:
    token: str
    user: User


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def _require_admin(ctx: SessionContext) -> None:
    if not ctx.is_admin:
        raise AuthorizationError("Forbidden")


def _check_password(password: str | None) -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return password


def authenticate(db: Session, email: str | None, password: str | None) -> LoginResult | None:
    """Return a session for valid credentials, or None without saying which part was wrong."""
    email = normalize_email(email)
    password = (password or "").strip()
    if not email or not password:
        raise ValidationError("Email and password are required")

    user = db.scalar(select(User).where(func.lower(User.email) == email))
    if user is None or not verify_password(password, user.hashed_password):
        logger.info("Failed login for %s", email)
        return None
    return LoginResult(token=create_session_token(user.id), user=user)


def list_users(db: Session, ctx: SessionContext) -> list[User]:
    _require_admin(ctx)
    return list(db.scalars(select(User).options(selectinload(User.manager)).order_by(User.created_at.asc(), User.id.asc())))


def create_user(db: Session, ctx: SessionContext, *, name: str, email: str, role: Role) -> tuple[User, str]:
    """Create an account with a temporary password the user must change on first login."""
    _require_admin(ctx)
    email = normalize_email(email)
    if db.scalar(select(User.id).where(func.lower(User.email) == email)) is not None:
        raise ConflictError("Email already exists")

    temporary_password = generate_temporary_password()
    user = User(
        name=name.strip(),
        email=email,
        hashed_password=hash_password(temporary_password),
        role=Role(role),
        must_reset_password=True,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Email already exists") from exc
    db.refresh(user)
    logger.info("Admin=%s created user id=%s role=%s", ctx.principal_id, user.id, user.role.value)

    send_email(
        user.email,
        "Your Timesheet Account",
        f"Hello {user.name},\n\nYour account has been created as {user.role.value}.\n"
        f"Temporary password: {temporary_password}\n\nPlease log in and reset your password immediately.",
    )
    return user, temporary_password


def delete_user(db: Session, ctx: SessionContext, user_id: int) -> None:
    _require_admin(ctx)
    if user_id == ctx.principal_id:
        raise ValidationError("You cannot delete your own account")
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    # Timesheets and leave requests are kept; every reference to the account
    # is cleared here because SQLite does not enforce ON DELETE SET NULL.
    for column in (
        User.manager_id,
        Timesheet.user_id,
        Timesheet.reviewed_by_id,
        LeaveRequest.employee_id,
        LeaveRequest.manager_id,
    ):
        db.execute(
            update(column.class_)
            .where(column == user_id)
            .values({column.key: None})
            .execution_options(synchronize_session=False)
        )
    db.expire_all()
    db.delete(user)
    db.commit()
    logger.info("Admin=%s deleted user id=%s", ctx.principal_id, user_id)


def assign_manager(db: Session, ctx: SessionContext, user_id: int, manager_id: int | None) -> User:
    """Point an account at its manager; the target must hold the manager role."""
    _require_admin(ctx)
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")

    if manager_id is not None:
        if manager_id == user_id:
            raise ValidationError("A user cannot be their own manager")
        manager = db.get(User, manager_id)
        if manager is None:
            raise NotFoundError("Manager not found")
        if manager.role != Role.MANAGER:
            raise ValidationError("Assigned manager must have the manager role")

    user.manager_id = manager_id
    db.commit()
    db.refresh(user)
    logger.info("Admin=%s assigned user id=%s to manager=%s", ctx.principal_id, user_id, manager_id)
    return user


def request_password_reset(db: Session, email: str | None) -> str | None:
    """Store a reset token and email the link. Returns the link when a user matched."""
    email = normalize_email(email)
    if not email:
        raise ValidationError("Email is required")

    user = db.scalar(select(User).where(func.lower(User.email) == email))
    if user is None:
        logger.info("Forgot-password requested for unknown email %s", email)
        return None

    token, expires_at = generate_reset_token()
    user.reset_password_token = token
    user.reset_password_expires_at = expires_at
    db.commit()

    reset_link = f"{settings.client_url.rstrip('/')}/reset-password/{token}"
    send_email(
        user.email,
        "Reset your Timesheet password",
        f"Hello {user.name},\n\nYou requested a password reset for your Timesheet account.\n"
        f"Reset it here: {reset_link}\n\nThis link expires in {settings.password_reset_ttl_minutes} minutes. "
        "If you didn't request this, you can ignore this email.",
    )
    return reset_link


def reset_password_with_token(db: Session, token: str, new_password: str | None) -> User:
    _check_password(new_password)
    user = db.scalar(
        select(User).where(
            User.reset_password_token == token,
            User.reset_password_expires_at > utcnow(),
        )
    )
    if user is None:
        raise ValidationError("Invalid or expired token")

    user.hashed_password = hash_password(new_password)
    user.must_reset_password = False
    user.reset_password_token = None
    user.reset_password_expires_at = None
    db.commit()
    logger.info("Password reset via token for user id=%s", user.id)
    return user


def change_password(db: Session, ctx: SessionContext, new_password: str | None) -> User:
    _check_password(new_password)
    user = db.get(User, ctx.principal_id)
    if user is None:
        raise NotFoundError("User not found")
    user.hashed_password = hash_password(new_password)
    user.must_reset_password = False
    db.commit()
    return user


def get_manager_profile(db: Session, ctx: SessionContext) -> dict:
    """Stored profile merged over defaults; name and email fall back to the account."""
    if not ctx.is_manager:
        raise AuthorizationError("Forbidden")
    user = db.get(User, ctx.principal_id)
    if user is None:
        raise NotFoundError("Manager not found")
    stored = user.manager_profile

    profile = dict(DEFAULT_PROFILE)
    settings_ = dict(DEFAULT_PROFILE_SETTINGS)
    if stored is not None:
        profile.update({field: getattr(stored, field) for field in DEFAULT_PROFILE if getattr(stored, field)})
        settings_.update({field: getattr(stored, field) for field in DEFAULT_PROFILE_SETTINGS})
    profile["name"] = (stored.name if stored else "") or user.name
    profile["email"] = (stored.email if stored else "") or user.email
    return {
        "profile": profile,
        "settings": settings_,
        "updated_at": stored.updated_at if stored else user.updated_at,
    }


def update_manager_profile(db: Session, ctx: SessionContext, profile: dict, profile_settings: dict) -> dict:
    """Upsert the profile; a changed name or email is copied onto the account too."""
    if not ctx.is_manager:
        raise AuthorizationError("Forbidden")
    user = db.get(User, ctx.principal_id)
    if user is None:
        raise NotFoundError("Manager not found")

    stored = user.manager_profile
    if stored is None:
        stored = ManagerProfile(manager=user, **DEFAULT_PROFILE, **DEFAULT_PROFILE_SETTINGS)
        db.add(stored)

    for field, value in profile.items():
        if value is None or field not in {*DEFAULT_PROFILE, "name", "email"}:
            continue
        value = value.strip()
        setattr(stored, field, value.lower() if field == "email" else value)
    for field, value in profile_settings.items():
        if value is not None and field in DEFAULT_PROFILE_SETTINGS:
            setattr(stored, field, bool(value))

    stored.name = stored.name or user.name
    stored.email = stored.email or user.email
    if stored.name != user.name:
        user.name = stored.name
    if stored.email != user.email:
        user.email = stored.email

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Email already exists") from exc
    return get_manager_profile(db, ctx)
