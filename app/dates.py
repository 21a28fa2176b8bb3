"""Calendar-date parsing shared by the timesheet and leave workflows."""

from __future__ import annotations

import re
from datetime import date, datetime, timezone

from app.errors import ValidationError

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_iso_date(value: str | date | None, field_name: str) -> date:
    """Parse a `YYYY-MM-DD` string (or pass a date through) as a UTC calendar day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        raise ValidationError(f"Invalid or missing {field_name} (YYYY-MM-DD)")
    text = value.strip()
    if not _ISO_DATE.match(text):
        raise ValidationError(f"Invalid {field_name}. Expected YYYY-MM-DD")
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(f"Invalid {field_name}. Expected YYYY-MM-DD") from exc


def utc_today() -> date:
    return datetime.now(timezone.utc).date()
