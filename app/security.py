"""Security helpers.

Contains password hashing/verification, signed session-token utilities and
single-use password reset tokens.
"""

import secrets
from datetime import datetime, timedelta, timezone

from itsdangerous import BadSignature, URLSafeSerializer
from passlib.context import CryptContext
from passlib.exc import MissingBackendError

from app.config import settings

# Argon2 is memory-hard and resilient against GPU/ASIC cracking.
pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto",
)
# Signed serializer protects session payload integrity.
serializer = URLSafeSerializer(settings.secret_key, salt="weekly-timesheet-session")

MIN_PASSWORD_LENGTH = 6


def hash_password(password: str) -> str:
    """Hash a plaintext password using Argon2."""
    return pwd_context.hash(password)


def ensure_password_backend() -> None:
    """Validate Argon2 backend availability with a lightweight hash."""
    try:
        pwd_context.hash("argon2-backend-check")
    except MissingBackendError as exc:
        raise RuntimeError(
            "Argon2 backend unavailable. Install argon2-cffi in the active virtual environment."
        ) from exc


def verify_password(password: str, hashed_password: str) -> bool:
    """Verify a plaintext password against a stored hash."""
    try:
        return pwd_context.verify(password, hashed_password)
    except ValueError:
        # Stored value is not a recognised hash.
        return False


def create_session_token(user_id: int) -> str:
    """Sign a user id with an expiry; the role is always read from the user row."""
    payload = {
        "sub": user_id,
        "exp": (datetime.now(timezone.utc) + timedelta(hours=settings.session_ttl_hours)).timestamp(),
    }
    return serializer.dumps(payload)


def read_session_token(token: str) -> int | None:
    try:
        payload = serializer.loads(token)
    except BadSignature:
        return None
    if payload.get("exp", 0) < datetime.now(timezone.utc).timestamp():
        return None
    return payload.get("sub")


def generate_temporary_password() -> str:
    return secrets.token_hex(6)


def generate_reset_token() -> tuple[str, datetime]:
    """Return a random reset token and its naive-UTC expiry."""
    expires_at = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(minutes=settings.password_reset_ttl_minutes)
    return secrets.token_hex(32), expires_at
