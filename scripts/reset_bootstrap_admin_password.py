#!/usr/bin/env python3
"""Mini-README: rotate the bootstrap admin password from the command line.

Once the first admin has been seeded, BOOTSTRAP_ADMIN_PASSWORD in `.env` is
ignored on startup. Run this to set a new (hashed) password for that account;
the admin is asked to choose their own password at next login.

    python scripts/reset_bootstrap_admin_password.py --password 'n3w-secret'
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

from app.bootstrap_admin import reset_bootstrap_admin_password
from app.config import settings
from app.database import engine
from app.logging_config import setup_logging
from app.security import MIN_PASSWORD_LENGTH

logger = logging.getLogger("scripts.reset_bootstrap_admin_password")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Reset the bootstrap admin password and flag it for change at next login.")
    parser.add_argument("--password", default=None, help="New password. Falls back to BOOTSTRAP_ADMIN_PASSWORD.")
    parser.add_argument("--email", default=None, help="Admin email. Defaults to BOOTSTRAP_ADMIN_EMAIL.")
    return parser


def main(argv: list[str] | None = None) -> int:
    setup_logging()
    args = _build_parser().parse_args(argv)
    password = (args.password or os.getenv("BOOTSTRAP_ADMIN_PASSWORD") or settings.bootstrap_admin_password).strip()

    if len(password) < MIN_PASSWORD_LENGTH:
        logger.error("Password must be at least %s characters (use --password or BOOTSTRAP_ADMIN_PASSWORD).", MIN_PASSWORD_LENGTH)
        return 1

    target_email = args.email or settings.bootstrap_admin_email
    if not reset_bootstrap_admin_password(engine=engine, new_password=password, bootstrap_email=target_email):
        logger.error("No admin account found for %s.", target_email)
        return 2

    logger.info("Updated password for %s; a reset is required at next login.", target_email)
    return 0


if __name__ == "__main__":
    sys.exit(main())
