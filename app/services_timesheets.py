"""Timesheet domain helpers.

Normalization and status transitions for weekly timesheets, plus the
role-scoped queries managers and admins use to read them.

Rules:
- rows are normalized on every write: at most MAX_ROWS rows, each with exactly
  DAYS_PER_WEEK hour slots truncated toward zero and clamped to
  [0, MAX_DAILY_HOURS]
- a bare save never moves a sheet back to draft; submitting always sets
  `submitted`
- approved and rejected sheets are locked for their owner
- approve is allowed from submitted/rejected, reject from submitted/approved;
  anything else is a no-op

Status guards are evaluated inside the UPDATE statement itself so a stale
read can never let a concurrent request bypass them.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date
from enum import Enum

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.dates import parse_iso_date
from app.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from app.models import Role, Timesheet, TimesheetStatus, User, utcnow
from app.principals import SessionContext

logger = logging.getLogger(__name__)

DAYS_PER_WEEK = 6  # Mon-Sat
MAX_DAILY_HOURS = 9
MAX_ROWS = 5
ROW_TEXT_FIELDS = ("client", "project", "task", "activity")
LOCKED_STATUSES = (TimesheetStatus.APPROVED, TimesheetStatus.REJECTED)

_INTEGER_TEXT = re.compile(r"^([+-]?)(\d+)$")


class ReviewDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


# decision -> (target status, statuses it may be applied from)
REVIEW_TRANSITIONS: dict[ReviewDecision, tuple[TimesheetStatus, tuple[TimesheetStatus, ...]]] = {
    ReviewDecision.APPROVE: (TimesheetStatus.APPROVED, (TimesheetStatus.SUBMITTED, TimesheetStatus.REJECTED)),
    ReviewDecision.REJECT: (TimesheetStatus.REJECTED, (TimesheetStatus.SUBMITTED, TimesheetStatus.APPROVED)),
}


class UpsertOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"


@dataclass(frozen=True)
class UpsertResult:
    outcome: UpsertOutcome
    timesheet: Timesheet

    @property
    def created(self) -> bool:
        return self.outcome == UpsertOutcome.CREATED


@dataclass(frozen=True)
class ReviewResult:
    timesheet: Timesheet
    applied: bool


def clamp_hour(value: object) -> int:
    """Coerce one hour cell to an int in [0, MAX_DAILY_HOURS]; junk becomes 0."""
    if isinstance(value, str):
        value = value.strip() or 0
        match = _INTEGER_TEXT.match(value) if isinstance(value, str) else None
        if match:
            sign, digits = match.groups()
            # Three significant digits already exceed the cap; int() refuses very long text.
            value = int((digits.lstrip("0") or "0")[:3]) * (-1 if sign == "-" else 1)
    # Integers of any size are clamped exactly; float() would overflow.
    if isinstance(value, int):
        return max(0, min(MAX_DAILY_HOURS, value))
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0
    except OverflowError:
        return 0 if value < 0 else MAX_DAILY_HOURS  # type: ignore[operator]
    if not math.isfinite(number):
        return 0
    return max(0, min(MAX_DAILY_HOURS, math.trunc(number)))


def normalize_hours(values: object) -> list[int]:
    hours = list(values)[:DAYS_PER_WEEK] if isinstance(values, (list, tuple)) else []
    hours.extend([0] * (DAYS_PER_WEEK - len(hours)))
    return [clamp_hour(value) for value in hours]


def normalize_day_comments(values: object) -> list[str | None]:
    comments = list(values)[:DAYS_PER_WEEK] if isinstance(values, (list, tuple)) else []
    comments.extend([None] * (DAYS_PER_WEEK - len(comments)))
    return [None if comment is None or comment == "" else str(comment) for comment in comments]


def normalize_row(row: Mapping | None) -> dict:
    row = row or {}
    normalized = {field: str(row.get(field) or "").strip() for field in ROW_TEXT_FIELDS}
    normalized["hours"] = normalize_hours(row.get("hours"))
    normalized["comments"] = normalize_day_comments(row.get("comments"))
    return normalized


def normalize_rows(rows: Iterable[Mapping] | None) -> list[dict]:
    rows = list(rows or [])
    if len(rows) > MAX_ROWS:
        raise ValidationError(f"A timesheet can have at most {MAX_ROWS} rows")
    return [normalize_row(row) for row in rows]


def blank_row() -> dict:
    return normalize_row({})


def is_editable(status: TimesheetStatus) -> bool:
    return status not in LOCKED_STATUSES


def _week_query(user_id: int, week_start: date):
    return select(Timesheet).where(Timesheet.user_id == user_id, Timesheet.week_start == week_start)


def get_week(db: Session, ctx: SessionContext, week_start: str | date) -> Timesheet | None:
    week = parse_iso_date(week_start, "weekStart")
    return db.scalar(_week_query(ctx.principal_id, week))


def upsert_week(
    db: Session,
    ctx: SessionContext,
    week_start: str | date,
    rows: Iterable[Mapping] | None,
    wants_submit: bool = False,
) -> UpsertResult:
    """Create or update the caller's sheet for one week.

    An existing, unlocked sheet is updated with one guarded UPDATE. Only when
    no sheet exists is one inserted; losing that insert to a concurrent
    request raises ConflictError so the caller can retry.
    """
    week = parse_iso_date(week_start, "weekStart")
    normalized_rows = normalize_rows(rows)
    now = utcnow()

    values: dict[str, object] = {"rows": normalized_rows, "updated_at": now}
    if wants_submit:
        values["status"] = TimesheetStatus.SUBMITTED
        values["submitted_at"] = now

    result = db.execute(
        update(Timesheet)
        .where(
            Timesheet.user_id == ctx.principal_id,
            Timesheet.week_start == week,
            Timesheet.status.not_in(LOCKED_STATUSES),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        db.commit()
        sheet = db.scalar(_week_query(ctx.principal_id, week).execution_options(populate_existing=True))
        logger.info("Updated timesheet id=%s user=%s week=%s status=%s", sheet.id, ctx.principal_id, week, sheet.status.value)
        return UpsertResult(UpsertOutcome.UPDATED, sheet)

    existing = db.scalar(_week_query(ctx.principal_id, week))
    if existing is not None:
        db.rollback()
        logger.warning(
            "Rejected edit of locked timesheet id=%s user=%s status=%s", existing.id, ctx.principal_id, existing.status.value
        )
        raise AuthorizationError(f"Timesheet is {existing.status.value} and can no longer be edited")

    sheet = Timesheet(
        user_id=ctx.principal_id,
        week_start=week,
        rows=normalized_rows,
        status=TimesheetStatus.SUBMITTED if wants_submit else TimesheetStatus.DRAFT,
        submitted_at=now if wants_submit else None,
    )
    db.add(sheet)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Duplicate week record for user=%s week=%s", ctx.principal_id, week)
        raise ConflictError("Duplicate week record. Please retry.") from exc
    db.refresh(sheet)
    logger.info("Created timesheet id=%s user=%s week=%s status=%s", sheet.id, ctx.principal_id, week, sheet.status.value)
    return UpsertResult(UpsertOutcome.CREATED, sheet)


def _is_direct_report(db: Session, manager_id: int, user_id: int) -> bool:
    return (
        db.scalar(select(User.id).where(User.id == user_id, User.manager_id == manager_id, User.role == Role.EMPLOYEE))
        is not None
    )


def review_timesheet(db: Session, ctx: SessionContext, timesheet_id: int, decision: ReviewDecision) -> ReviewResult:
    """Approve or reject a team member's sheet.

    Returns the sheet unchanged with `applied=False` when its current status
    is not a valid source for the decision.
    """
    if not ctx.is_manager:
        raise AuthorizationError("Only managers can review timesheets")
    sheet = db.get(Timesheet, timesheet_id)
    if sheet is None:
        raise NotFoundError("Timesheet not found")
    if not _is_direct_report(db, ctx.principal_id, sheet.user_id):
        raise AuthorizationError("Timesheet does not belong to your team")

    target, sources = REVIEW_TRANSITIONS[ReviewDecision(decision)]
    now = utcnow()
    result = db.execute(
        update(Timesheet)
        .where(Timesheet.id == timesheet_id, Timesheet.status.in_(sources))
        .values(status=target, reviewed_at=now, reviewed_by_id=ctx.principal_id, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(sheet)

    applied = bool(result.rowcount)
    if applied:
        logger.info("Timesheet id=%s %s by manager=%s", timesheet_id, target.value, ctx.principal_id)
    else:
        logger.warning(
            "Ignored %s of timesheet id=%s in status %s", ReviewDecision(decision).value, timesheet_id, sheet.status.value
        )
    return ReviewResult(sheet, applied)


def save_day_comment(
    db: Session,
    ctx: SessionContext,
    *,
    row_index: int,
    day_index: int,
    text: str | None,
    sheet_id: int | None = None,
    week_start: str | date | None = None,
) -> Timesheet:
    """Set one per-day comment, creating the caller's draft week when needed."""
    if not 0 <= day_index < DAYS_PER_WEEK:
        raise ValidationError("dayIndex out of range")
    if not 0 <= row_index < MAX_ROWS:
        raise ValidationError("rowIndex out of range")

    if sheet_id:
        sheet = db.get(Timesheet, sheet_id)
        if sheet is None:
            raise NotFoundError("Timesheet not found")
        if sheet.user_id == ctx.principal_id:
            if not is_editable(sheet.status):
                raise AuthorizationError(f"Timesheet is {sheet.status.value} and can no longer be edited")
        elif ctx.is_manager:
            if not _is_direct_report(db, ctx.principal_id, sheet.user_id):
                raise AuthorizationError("Forbidden")
        elif not ctx.is_admin:
            raise AuthorizationError("Forbidden")
    else:
        week = parse_iso_date(week_start, "weekStart")
        sheet = db.scalar(_week_query(ctx.principal_id, week))
        if sheet is None:
            sheet = Timesheet(user_id=ctx.principal_id, week_start=week, rows=[blank_row()], status=TimesheetStatus.DRAFT)
            db.add(sheet)
        elif not is_editable(sheet.status):
            raise AuthorizationError(f"Timesheet is {sheet.status.value} and can no longer be edited")

    rows = [dict(row) for row in sheet.rows or []]
    while len(rows) <= row_index:
        rows.append(blank_row())
    row = normalize_row(rows[row_index])
    row["comments"][day_index] = None if text in (None, "") else str(text)
    rows[row_index] = row
    sheet.rows = normalize_rows(rows)

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Duplicate week record. Please retry.") from exc
    db.refresh(sheet)
    return sheet


def list_own(db: Session, ctx: SessionContext) -> list[Timesheet]:
    return list(
        db.scalars(select(Timesheet).where(Timesheet.user_id == ctx.principal_id).order_by(Timesheet.week_start.desc()))
    )


def list_for_user(db: Session, ctx: SessionContext, user_id: int) -> list[Timesheet]:
    if not ctx.is_admin:
        raise AuthorizationError("Forbidden")
    return list(db.scalars(select(Timesheet).where(Timesheet.user_id == user_id).order_by(Timesheet.week_start.desc())))


def team_members(db: Session, ctx: SessionContext) -> list[User]:
    if not ctx.is_manager:
        raise AuthorizationError("Forbidden")
    return list(
        db.scalars(
            select(User).where(User.role == Role.EMPLOYEE, User.manager_id == ctx.principal_id).order_by(User.name.asc())
        )
    )


def team_timesheets(
    db: Session,
    ctx: SessionContext,
    *,
    user_id: int | None = None,
    status: str | None = None,
    week_start: str | None = None,
) -> list[Timesheet]:
    """Sheets of the manager's direct reports, optionally filtered."""
    team_ids = {member.id for member in team_members(db, ctx)}
    if not team_ids:
        return []

    query = select(Timesheet)
    if user_id is not None:
        if user_id not in team_ids:
            raise AuthorizationError("Forbidden - user not in your team")
        query = query.where(Timesheet.user_id == user_id)
    else:
        query = query.where(Timesheet.user_id.in_(team_ids))

    if status:
        try:
            query = query.where(Timesheet.status == TimesheetStatus(status.strip().lower()))
        except ValueError as exc:
            raise ValidationError(f"Unknown timesheet status: {status}") from exc
    if week_start:
        query = query.where(Timesheet.week_start == parse_iso_date(week_start, "weekStart"))

    return list(db.scalars(query.order_by(Timesheet.week_start.desc(), Timesheet.updated_at.desc())))


def get_team_timesheet(db: Session, ctx: SessionContext, timesheet_id: int) -> Timesheet:
    if not ctx.is_manager:
        raise AuthorizationError("Forbidden")
    sheet = db.get(Timesheet, timesheet_id)
    if sheet is None:
        raise NotFoundError("Timesheet not found")
    if not _is_direct_report(db, ctx.principal_id, sheet.user_id):
        raise AuthorizationError("Forbidden")
    return sheet
