"""Configuration module.

This file centralizes runtime configuration for local development and production
deployments. Values can be provided via environment variables or a local `.env`
file.
"""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


PROJECT_ROOT = Path(__file__).resolve().parent.parent
ENV_FILE_PATH = PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    app_name: str = "Weekly Timesheet"
    environment: str = "development"
    debug: bool = True
    secret_key: str = "change-me-in-production"
    database_url: str = "sqlite:///./weekly_timesheet.db"
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = ["http://localhost:3000"]
    session_ttl_hours: int = 168
    password_reset_ttl_minutes: int = 60
    client_url: str = "http://localhost:3000"
    bootstrap_admin_email: str = "admin@change.me"
    bootstrap_admin_password: str = "ChangeMeNow!123"

    # Outbound mail is disabled until an SMTP host is configured.
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    mail_from: str = "timesheets@localhost"

    log_level: str = "INFO"
    log_dir: Path | None = None

    # Use an absolute path so `.env` is consistently discovered regardless of
    # the process working directory used to start uvicorn/gunicorn.
    model_config = SettingsConfigDict(env_file=ENV_FILE_PATH, env_file_encoding="utf-8")


settings = Settings()
