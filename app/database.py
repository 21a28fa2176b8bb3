"""Database module.

Provides SQLAlchemy engine/session setup and migration bootstrap helpers so
schema changes are explicit, reproducible, and safe across environments.
"""

from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from app.config import settings

logger = logging.getLogger(__name__)

# Alembic revision that creates the users/timesheets/leave tables.
BASELINE_REVISION = "3c1d9a7e5b20"


class Base(DeclarativeBase):
    """Base declarative class for all ORM entities."""


connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
engine = create_engine(settings.database_url, connect_args=connect_args, future=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def get_db():
    """FastAPI dependency that yields a transaction-capable DB session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _has_existing_app_schema(db_engine: Engine) -> bool:
    """Return True when application tables are present in the database."""
    existing_tables = set(inspect(db_engine).get_table_names())
    sentinel_tables = {"users", "timesheets", "leave_requests"}
    return any(table in existing_tables for table in sentinel_tables)


def _has_alembic_version(db_engine: Engine) -> bool:
    """Return True when Alembic has already tracked this database."""
    if "alembic_version" not in inspect(db_engine).get_table_names():
        return False
    with db_engine.connect() as connection:
        row = connection.exec_driver_sql("SELECT version_num FROM alembic_version LIMIT 1").first()
    return row is not None and bool(row[0])


def _stamp_unversioned_schema_if_required(alembic_cfg: Config, db_engine: Engine) -> None:
    """Stamp databases built with `create_all` to the baseline before upgrade.

    Without this, a development database that already has the tables but no
    `alembic_version` would re-run the baseline CREATE TABLE DDL and fail.
    """
    if _has_alembic_version(db_engine):
        return
    if not _has_existing_app_schema(db_engine):
        return

    logger.warning(
        "Detected schema without alembic_version; stamping revision %s before upgrade.",
        BASELINE_REVISION,
    )
    command.stamp(alembic_cfg, BASELINE_REVISION)


def alembic_config(database_url: str | None = None) -> Config:
    alembic_ini_path = Path(__file__).resolve().parent.parent / "alembic.ini"
    alembic_cfg = Config(str(alembic_ini_path))
    alembic_cfg.set_main_option("script_location", str(alembic_ini_path.parent / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", database_url or settings.database_url)
    alembic_cfg.attributes["configure_logger"] = False
    return alembic_cfg


def run_migrations(db_engine: Engine | None = None) -> None:
    """Apply migrations up to head for the configured (or given) engine."""
    db_engine = db_engine or engine
    alembic_cfg = alembic_config(db_engine.url.render_as_string(hide_password=False))

    _stamp_unversioned_schema_if_required(alembic_cfg, db_engine)
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations applied successfully")
