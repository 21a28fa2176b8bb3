"""Mini-README: leave request lifecycle and balance tests.

A request is filed Pending with a snapshot of the employee's manager, can be
cancelled by its owner only while Pending, and is decided at most once by the
snapshot manager, the employee's current manager or an admin. The summary
counts per-type usage for the current year only.
"""

from datetime import date

import pytest

from app import services_leave
from app.errors import AuthorizationError, NotFoundError, StateGuardViolation, ValidationError
from app.models import LeaveStatus, LeaveType, User
from app.principals import context_for
from app.services_leave import LeaveDecision


def _file(db, user, leave_type="Casual", start="2024-03-04", end=None, reason="Family trip"):
    return services_leave.create_request(db, context_for(user), leave_type, start, end, reason)


def _approve(db, reviewer, leave):
    return services_leave.decide_request(db, context_for(reviewer), leave.id, LeaveDecision.APPROVE)


def test_create_counts_inclusive_days_and_snapshots_manager(db, people) -> None:
    leave = _file(db, people.employee, start="2024-03-04", end="2024-03-06")

    assert leave.days == 3
    assert leave.status == LeaveStatus.PENDING
    assert leave.leave_type == LeaveType.CASUAL
    assert leave.manager_id == people.manager.id
    assert leave.reason == "Family trip"


def test_single_day_when_end_is_omitted(db, people) -> None:
    leave = _file(db, people.employee, leave_type="Paid Time Off", start="2024-05-10")

    assert leave.end_date == date(2024, 5, 10)
    assert leave.days == 1


@pytest.mark.parametrize(
    ("leave_type", "start", "end"),
    [
        ("Vacation", "2024-03-04", None),
        ("Casual", "2024-03-06", "2024-03-04"),
        ("Casual", "04/03/2024", None),
        ("Casual", None, None),
    ],
)
def test_create_rejects_bad_input(db, people, leave_type, start, end) -> None:
    with pytest.raises(ValidationError):
        _file(db, people.employee, leave_type=leave_type, start=start, end=end)


def test_unassigned_employee_request_has_no_manager(db, people) -> None:
    assert _file(db, people.loner).manager_id is None


def test_owner_cancels_pending_request_once(db, people) -> None:
    leave = _file(db, people.employee)

    cancelled = services_leave.cancel_request(db, context_for(people.employee), leave.id)

    assert cancelled.status == LeaveStatus.CANCELLED
    assert cancelled.decided_at is not None
    with pytest.raises(StateGuardViolation):
        services_leave.cancel_request(db, context_for(people.employee), leave.id)


def test_cancel_requires_owner_and_existing_request(db, people) -> None:
    leave = _file(db, people.employee)

    with pytest.raises(AuthorizationError):
        services_leave.cancel_request(db, context_for(people.manager), leave.id)
    with pytest.raises(NotFoundError):
        services_leave.cancel_request(db, context_for(people.employee), 9999)


def test_cannot_cancel_decided_request(db, people) -> None:
    leave = _file(db, people.employee)
    _approve(db, people.manager, leave)

    with pytest.raises(StateGuardViolation):
        services_leave.cancel_request(db, context_for(people.employee), leave.id)


def test_manager_decision_records_reviewer_and_note(db, people) -> None:
    leave = _file(db, people.employee)

    decided = services_leave.decide_request(db, context_for(people.manager), leave.id, LeaveDecision.REJECT, "  Busy week ")

    assert decided.status == LeaveStatus.REJECTED
    assert decided.manager_id == people.manager.id
    assert decided.manager_note == "Busy week"
    assert decided.decided_at is not None


def test_decision_applies_only_once(db, people) -> None:
    leave = _file(db, people.employee)
    _approve(db, people.manager, leave)

    with pytest.raises(StateGuardViolation):
        services_leave.decide_request(db, context_for(people.manager), leave.id, LeaveDecision.REJECT)

    db.expire_all()
    assert services_leave._get_request(db, leave.id).status == LeaveStatus.APPROVED


def test_unrelated_manager_cannot_decide(db, people) -> None:
    leave = _file(db, people.employee)

    with pytest.raises(AuthorizationError):
        _approve(db, people.other_manager, leave)
    with pytest.raises(AuthorizationError):
        _approve(db, people.employee, leave)

    db.expire_all()
    assert services_leave._get_request(db, leave.id).status == LeaveStatus.PENDING


def test_admin_can_decide_any_request(db, people) -> None:
    leave = _file(db, people.employee)

    decided = _approve(db, people.admin, leave)

    assert decided.status == LeaveStatus.APPROVED
    assert decided.manager_id == people.admin.id


def test_snapshot_and_current_manager_may_both_decide(db, people) -> None:
    first = _file(db, people.employee, start="2024-03-04")
    second = _file(db, people.employee, start="2024-04-01")

    employee = db.get(User, people.employee.id)
    employee.manager_id = people.other_manager.id
    db.commit()

    assert _approve(db, people.other_manager, first).status == LeaveStatus.APPROVED
    assert _approve(db, people.manager, second).status == LeaveStatus.APPROVED


def test_any_manager_may_decide_when_no_manager_is_known(db, people) -> None:
    leave = _file(db, people.loner)

    assert _approve(db, people.other_manager, leave).status == LeaveStatus.APPROVED


def test_summary_balances_for_current_year(db, people) -> None:
    as_of = date(2024, 6, 1)
    casual = _file(db, people.employee, start="2024-03-04", end="2024-03-06")
    _approve(db, people.manager, casual)
    last_year = _file(db, people.employee, start="2023-12-27", end="2023-12-28")
    _approve(db, people.manager, last_year)
    upcoming = _file(db, people.employee, leave_type="Sick", start="2024-07-01")
    _approve(db, people.manager, upcoming)
    _file(db, people.employee, leave_type="Comp Off", start="2024-08-01")
    rejected = _file(db, people.employee, leave_type="Paid Time Off", start="2024-02-01", end="2024-02-09")
    services_leave.decide_request(db, context_for(people.manager), rejected.id, LeaveDecision.REJECT)

    summary = services_leave.summarize(db, context_for(people.employee), as_of=as_of)

    assert summary.breakdown["Casual"].total == 12
    assert summary.breakdown["Casual"].used == 3
    assert summary.balances["Casual"] == 9
    assert summary.balances["Sick"] == 9
    assert summary.balances["Paid Time Off"] == 15
    assert summary.balances["Comp Off"] == 5
    assert summary.stats.pending == 1
    assert summary.stats.approved_days == 3 + 2 + 1
    assert summary.stats.upcoming_approved == 1
    assert summary.stats.total_requests == 5
    assert summary.types == ["Casual", "Sick", "Paid Time Off", "Comp Off"]
    assert summary.requests[0].id == rejected.id


def test_remaining_balance_never_goes_negative(db, people) -> None:
    leave = _file(db, people.employee, leave_type="Comp Off", start="2024-03-01", end="2024-03-20")
    _approve(db, people.manager, leave)

    summary = services_leave.summarize(db, context_for(people.employee), as_of=date(2024, 6, 1))

    assert summary.breakdown["Comp Off"].used == 20
    assert summary.balances["Comp Off"] == 0


def test_team_queue_includes_reports_and_decided_history(db, people) -> None:
    mine = _file(db, people.employee)
    _file(db, people.loner)
    decided_elsewhere = _file(db, people.loner, start="2024-05-01")
    _approve(db, people.manager, decided_elsewhere)

    manager_queue = {leave.id for leave in services_leave.team_queue(db, context_for(people.manager))}
    other_queue = services_leave.team_queue(db, context_for(people.other_manager))
    admin_queue = services_leave.team_queue(db, context_for(people.admin))

    assert manager_queue == {mine.id, decided_elsewhere.id}
    assert other_queue == []
    assert len(admin_queue) == 3
    with pytest.raises(AuthorizationError):
        services_leave.team_queue(db, context_for(people.employee))
