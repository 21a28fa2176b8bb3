"""Mini-README: Bootstrap admin operational helpers.

Seeds the first admin account on startup and lets operators rotate its
password without ad-hoc SQL. The bootstrap password from the environment is
only ever used for the very first admin; later startups ignore it.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.config import settings
from app.models import Role, User
from app.security import hash_password

logger = logging.getLogger(__name__)


def seed_bootstrap_admin(*, engine) -> bool:
    """Create the bootstrap admin when no admin exists. Returns True when one was created."""
    with Session(engine) as db:
        admin_exists = db.scalar(select(func.count(User.id)).where(User.role == Role.ADMIN))
        if admin_exists:
            logger.info("Admin account present; BOOTSTRAP_ADMIN_PASSWORD ignored after initial bootstrap.")
            return False

        db.add(
            User(
                name="System Admin",
                email=settings.bootstrap_admin_email.strip().lower(),
                hashed_password=hash_password(settings.bootstrap_admin_password),
                role=Role.ADMIN,
                must_reset_password=True,
            )
        )
        db.commit()
    logger.warning("Created bootstrap admin %s; change its password after first login.", settings.bootstrap_admin_email)
    return True


def reset_bootstrap_admin_password(*, engine, new_password: str, bootstrap_email: str | None = None) -> bool:
    """Reset the configured bootstrap admin password using secure hashing.

    Returns True when the target bootstrap admin user is found and updated,
    otherwise False.
    """
    target_email = (bootstrap_email or settings.bootstrap_admin_email).strip().lower()
    with Session(engine) as db:
        bootstrap_admin = db.scalar(
            select(User).where(
                User.role == Role.ADMIN,
                func.lower(User.email) == target_email,
            )
        )
        if not bootstrap_admin:
            return False

        bootstrap_admin.hashed_password = hash_password(new_password)
        bootstrap_admin.must_reset_password = True
        db.commit()

    return True
