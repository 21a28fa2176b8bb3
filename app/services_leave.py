"""Leave request lifecycle and balance aggregation.

A request is created Pending, then decided exactly once (Approved/Rejected)
by a manager or admin, or cancelled by its owner while still Pending.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session, selectinload

from app.dates import parse_iso_date, utc_today
from app.errors import AuthorizationError, NotFoundError, StateGuardViolation, ValidationError
from app.models import LeaveRequest, LeaveStatus, LeaveType, User, utcnow
from app.notifications import send_email
from app.principals import Admin, Manager, SessionContext

logger = logging.getLogger(__name__)

# Annual allowance in days per leave type.
LEAVE_ALLOWANCES: dict[LeaveType, int] = {
    LeaveType.CASUAL: 12,
    LeaveType.SICK: 10,
    LeaveType.PAID_TIME_OFF: 15,
    LeaveType.COMP_OFF: 5,
}


class LeaveDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


_DECISION_STATUS = {
    LeaveDecision.APPROVE: LeaveStatus.APPROVED,
    LeaveDecision.REJECT: LeaveStatus.REJECTED,
}


@dataclass(frozen=True)
class TypeBalance:
    total: int
    used: int
    remaining: int


@dataclass
class LeaveStats:
    pending: int = 0
    approved_days: int = 0
    upcoming_approved: int = 0
    total_requests: int = 0


@dataclass(frozen=True)
class LeaveSummary:
    balances: dict[str, int]
    breakdown: dict[str, TypeBalance]
    requests: list[LeaveRequest]
    stats: LeaveStats
    types: list[str]


def parse_leave_type(value: str | LeaveType | None) -> LeaveType:
    try:
        return LeaveType(value)
    except ValueError as exc:
        raise ValidationError("Invalid leave type") from exc


def inclusive_days(start: date, end: date) -> int:
    if end < start:
        raise ValidationError("End date must not be before start date")
    return (end - start).days + 1


def remaining_allowance(allowance: int, used: int) -> int:
    return max(0, allowance - used)


def _get_request(db: Session, request_id: int) -> LeaveRequest:
    leave = db.get(LeaveRequest, request_id)
    if leave is None:
        raise NotFoundError("Leave request not found")
    return leave


def create_request(
    db: Session,
    ctx: SessionContext,
    leave_type: str | LeaveType | None,
    start: str | date | None,
    end: str | date | None = None,
    reason: str | None = "",
) -> LeaveRequest:
    """File a Pending request, snapshotting the employee's current manager."""
    kind = parse_leave_type(leave_type)
    start_date = parse_iso_date(start, "from")
    end_date = parse_iso_date(end, "to") if end else start_date
    days = inclusive_days(start_date, end_date)

    employee = db.get(User, ctx.principal_id)
    if employee is None:
        raise NotFoundError("User not found")

    leave = LeaveRequest(
        employee_id=employee.id,
        manager_id=employee.manager_id,
        leave_type=kind,
        start_date=start_date,
        end_date=end_date,
        days=days,
        reason=(reason or "").strip(),
        status=LeaveStatus.PENDING,
    )
    db.add(leave)
    db.commit()
    db.refresh(leave)
    logger.info("Leave request id=%s created by user=%s (%s, %s days)", leave.id, employee.id, kind.value, days)

    if employee.manager is not None:
        send_email(
            employee.manager.email,
            f"Leave request from {employee.name}",
            f"{employee.name} requested {kind.value} leave from {start_date.isoformat()} "
            f"to {end_date.isoformat()} ({days} day(s)).\n\nReason: {leave.reason or '-'}",
        )
    return leave


def cancel_request(db: Session, ctx: SessionContext, request_id: int) -> LeaveRequest:
    leave = _get_request(db, request_id)
    if leave.employee_id != ctx.principal_id:
        raise AuthorizationError("Forbidden")

    result = db.execute(
        update(LeaveRequest)
        .where(LeaveRequest.id == request_id, LeaveRequest.status == LeaveStatus.PENDING)
        .values(status=LeaveStatus.CANCELLED, decided_at=utcnow(), updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(leave)
    if not result.rowcount:
        logger.warning("Refused cancel of leave id=%s in status %s", request_id, leave.status.value)
        raise StateGuardViolation("Only pending requests can be cancelled")
    logger.info("Leave request id=%s cancelled by user=%s", request_id, ctx.principal_id)
    return leave


def can_decide(ctx: SessionContext, leave: LeaveRequest) -> bool:
    """Admins decide anything; a manager must be the snapshot or the current manager."""
    if isinstance(ctx.principal, Admin):
        return True
    if not isinstance(ctx.principal, Manager):
        return False
    permitted = {leave.manager_id, leave.employee.manager_id if leave.employee else None} - {None}
    return not permitted or ctx.principal_id in permitted


def decide_request(
    db: Session,
    ctx: SessionContext,
    request_id: int,
    decision: LeaveDecision | str,
    note: str | None = "",
) -> LeaveRequest:
    if not ctx.can_review:
        raise AuthorizationError("Forbidden")
    leave = _get_request(db, request_id)
    if not can_decide(ctx, leave):
        logger.warning("Manager=%s refused decision on leave id=%s outside their team", ctx.principal_id, request_id)
        raise AuthorizationError("Forbidden")

    target = _DECISION_STATUS[LeaveDecision(decision)]
    now = utcnow()
    result = db.execute(
        update(LeaveRequest)
        .where(LeaveRequest.id == request_id, LeaveRequest.status == LeaveStatus.PENDING)
        .values(status=target, manager_id=ctx.principal_id, manager_note=(note or "").strip(), decided_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(leave)
    if not result.rowcount:
        logger.warning("Refused %s of leave id=%s in status %s", target.value, request_id, leave.status.value)
        raise StateGuardViolation("Only pending requests can be updated")

    logger.info("Leave request id=%s %s by user=%s", request_id, target.value, ctx.principal_id)
    if leave.employee is not None:
        send_email(
            leave.employee.email,
            f"Your leave request was {target.value.lower()}",
            f"Your {leave.leave_type.value} leave from {leave.start_date.isoformat()} to "
            f"{leave.end_date.isoformat()} was {target.value.lower()}."
            + (f"\n\nNote: {leave.manager_note}" if leave.manager_note else ""),
        )
    return leave


def summarize(db: Session, ctx: SessionContext, as_of: date | None = None) -> LeaveSummary:
    """Balances and stats for the caller.

    Per-type usage counts only Approved requests starting in `as_of`'s year,
    while `approved_days` is an all-time total.
    """
    as_of = as_of or utc_today()
    year_start = date(as_of.year, 1, 1)
    next_year_start = date(as_of.year + 1, 1, 1)

    requests = list(
        db.scalars(
            select(LeaveRequest)
            .options(selectinload(LeaveRequest.manager))
            .where(LeaveRequest.employee_id == ctx.principal_id)
            .order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())
        )
    )

    used_by_type: dict[LeaveType, int] = {}
    stats = LeaveStats(total_requests=len(requests))
    for leave in requests:
        if leave.status == LeaveStatus.PENDING:
            stats.pending += 1
        elif leave.status == LeaveStatus.APPROVED:
            stats.approved_days += leave.days
            if leave.start_date > as_of:
                stats.upcoming_approved += 1
            if year_start <= leave.start_date < next_year_start:
                used_by_type[leave.leave_type] = used_by_type.get(leave.leave_type, 0) + leave.days

    balances: dict[str, int] = {}
    breakdown: dict[str, TypeBalance] = {}
    for leave_type, allowance in LEAVE_ALLOWANCES.items():
        used = used_by_type.get(leave_type, 0)
        remaining = remaining_allowance(allowance, used)
        balances[leave_type.value] = remaining
        breakdown[leave_type.value] = TypeBalance(total=allowance, used=used, remaining=remaining)

    return LeaveSummary(
        balances=balances,
        breakdown=breakdown,
        requests=requests,
        stats=stats,
        types=[leave_type.value for leave_type in LEAVE_ALLOWANCES],
    )


def team_queue(db: Session, ctx: SessionContext) -> list[LeaveRequest]:
    """Requests a reviewer may see: everything for admins, team plus history for managers."""
    query = select(LeaveRequest).options(selectinload(LeaveRequest.employee))
    if isinstance(ctx.principal, Manager):
        direct_reports = select(User.id).where(User.manager_id == ctx.principal_id)
        query = query.where(
            or_(
                LeaveRequest.employee_id.in_(direct_reports),
                LeaveRequest.manager_id == ctx.principal_id,
            )
        )
    elif not isinstance(ctx.principal, Admin):
        raise AuthorizationError("Forbidden")
    return list(db.scalars(query.order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())))
