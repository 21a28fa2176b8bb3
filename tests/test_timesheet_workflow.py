"""Mini-README: timesheet save, submit, review and comment workflow tests.

Covers the create/update outcome of weekly saves, the rule that a bare save
never downgrades a submitted sheet, locking after review, the review
transition table, team scoping for managers and the duplicate-week conflict.
"""

from datetime import date

import pytest
from sqlalchemy import false, func, select

from app import services_timesheets
from app.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from app.models import Timesheet, TimesheetStatus
from app.principals import context_for
from app.services_timesheets import ReviewDecision, UpsertOutcome

WEEK = "2024-03-04"


def _save(db, user, rows=None, submit=False, week=WEEK):
    return services_timesheets.upsert_week(db, context_for(user), week, rows or [{"client": "Acme", "hours": [8]}], submit)


def test_first_save_creates_draft_and_second_save_updates(db, people) -> None:
    created = _save(db, people.employee)
    updated = _save(db, people.employee, rows=[{"client": "Globex", "hours": [4, 4]}])

    assert created.outcome == UpsertOutcome.CREATED
    assert created.created is True
    assert created.timesheet.status == TimesheetStatus.DRAFT
    assert created.timesheet.week_start == date(2024, 3, 4)
    assert updated.outcome == UpsertOutcome.UPDATED
    assert updated.timesheet.id == created.timesheet.id
    assert updated.timesheet.rows[0]["client"] == "Globex"
    assert updated.timesheet.rows[0]["hours"] == [4, 4, 0, 0, 0, 0]


def test_submit_sets_status_and_timestamp(db, people) -> None:
    _save(db, people.employee)
    result = _save(db, people.employee, submit=True)

    assert result.timesheet.status == TimesheetStatus.SUBMITTED
    assert result.timesheet.submitted_at is not None


def test_submit_on_first_save_creates_submitted_sheet(db, people) -> None:
    result = _save(db, people.employee, submit=True)

    assert result.created
    assert result.timesheet.status == TimesheetStatus.SUBMITTED
    assert result.timesheet.submitted_at is not None


def test_bare_save_never_downgrades_submitted_sheet(db, people) -> None:
    submitted = _save(db, people.employee, submit=True)
    submitted_at = submitted.timesheet.submitted_at

    resaved = _save(db, people.employee, rows=[{"client": "Acme", "hours": [2]}])

    assert resaved.timesheet.status == TimesheetStatus.SUBMITTED
    assert resaved.timesheet.submitted_at == submitted_at
    assert resaved.timesheet.rows[0]["hours"][0] == 2


def test_invalid_week_start_is_rejected(db, people) -> None:
    with pytest.raises(ValidationError):
        _save(db, people.employee, week="2024/03/04")
    with pytest.raises(ValidationError):
        _save(db, people.employee, week="2024-02-30")
    with pytest.raises(ValidationError):
        _save(db, people.employee, week=None)


def test_too_many_rows_is_rejected_before_writing(db, people) -> None:
    with pytest.raises(ValidationError):
        _save(db, people.employee, rows=[{"client": str(i)} for i in range(6)])

    assert db.scalar(select(func.count(Timesheet.id))) == 0


def test_manager_approves_submitted_sheet(db, people) -> None:
    sheet = _save(db, people.employee, submit=True).timesheet

    result = services_timesheets.review_timesheet(db, context_for(people.manager), sheet.id, ReviewDecision.APPROVE)

    assert result.applied is True
    assert result.timesheet.status == TimesheetStatus.APPROVED
    assert result.timesheet.reviewed_by_id == people.manager.id
    assert result.timesheet.reviewed_at is not None


def test_review_transition_table(db, people) -> None:
    sheet = _save(db, people.employee, submit=True).timesheet
    manager = context_for(people.manager)

    assert services_timesheets.review_timesheet(db, manager, sheet.id, ReviewDecision.REJECT).applied
    # rejected -> approved is allowed
    assert services_timesheets.review_timesheet(db, manager, sheet.id, ReviewDecision.APPROVE).applied
    # approving an approved sheet changes nothing
    repeat = services_timesheets.review_timesheet(db, manager, sheet.id, ReviewDecision.APPROVE)
    assert repeat.applied is False
    assert repeat.timesheet.status == TimesheetStatus.APPROVED
    # approved -> rejected is allowed
    assert services_timesheets.review_timesheet(db, manager, sheet.id, ReviewDecision.REJECT).timesheet.status == (
        TimesheetStatus.REJECTED
    )


def test_reviewing_a_draft_is_a_no_op(db, people) -> None:
    sheet = _save(db, people.employee).timesheet

    result = services_timesheets.review_timesheet(db, context_for(people.manager), sheet.id, ReviewDecision.APPROVE)

    assert result.applied is False
    assert result.timesheet.status == TimesheetStatus.DRAFT
    assert result.timesheet.reviewed_by_id is None


def test_reviewed_sheet_is_locked_for_owner(db, people) -> None:
    sheet = _save(db, people.employee, submit=True).timesheet
    services_timesheets.review_timesheet(db, context_for(people.manager), sheet.id, ReviewDecision.APPROVE)

    with pytest.raises(AuthorizationError):
        _save(db, people.employee, rows=[{"client": "Changed"}])
    with pytest.raises(AuthorizationError):
        _save(db, people.employee, submit=True)

    db.expire_all()
    stored = db.get(Timesheet, sheet.id)
    assert stored.status == TimesheetStatus.APPROVED
    assert stored.rows[0]["client"] == "Acme"


def test_review_requires_team_manager(db, people) -> None:
    sheet = _save(db, people.employee, submit=True).timesheet

    with pytest.raises(AuthorizationError):
        services_timesheets.review_timesheet(db, context_for(people.other_manager), sheet.id, ReviewDecision.APPROVE)
    with pytest.raises(AuthorizationError):
        services_timesheets.review_timesheet(db, context_for(people.employee), sheet.id, ReviewDecision.APPROVE)
    with pytest.raises(AuthorizationError):
        services_timesheets.review_timesheet(db, context_for(people.admin), sheet.id, ReviewDecision.APPROVE)
    with pytest.raises(NotFoundError):
        services_timesheets.review_timesheet(db, context_for(people.manager), 9999, ReviewDecision.APPROVE)


def test_lost_insert_race_raises_conflict(db, people, monkeypatch) -> None:
    sheet = _save(db, people.employee, submit=True).timesheet
    services_timesheets.review_timesheet(db, context_for(people.manager), sheet.id, ReviewDecision.APPROVE)
    # Hide the existing row from the lookup so the save falls through to the
    # insert, as it would if another request inserted the week in between.
    monkeypatch.setattr(services_timesheets, "_week_query", lambda user_id, week: select(Timesheet).where(false()))

    with pytest.raises(ConflictError, match="Duplicate week record"):
        _save(db, people.employee)

    assert db.scalar(select(func.count(Timesheet.id))) == 1


def test_get_week_returns_none_when_missing(db, people) -> None:
    assert services_timesheets.get_week(db, context_for(people.employee), WEEK) is None

    _save(db, people.employee)

    assert services_timesheets.get_week(db, context_for(people.employee), WEEK) is not None
    assert services_timesheets.get_week(db, context_for(people.loner), WEEK) is None


def test_day_comment_creates_draft_week(db, people) -> None:
    sheet = services_timesheets.save_day_comment(
        db, context_for(people.employee), week_start=WEEK, row_index=2, day_index=5, text="Half day"
    )

    assert sheet.status == TimesheetStatus.DRAFT
    assert len(sheet.rows) == 3
    assert sheet.rows[2]["comments"][5] == "Half day"
    assert sheet.rows[0]["hours"] == [0] * 6


def test_day_comment_validates_indexes(db, people) -> None:
    ctx = context_for(people.employee)

    with pytest.raises(ValidationError):
        services_timesheets.save_day_comment(db, ctx, week_start=WEEK, row_index=0, day_index=6, text="x")
    with pytest.raises(ValidationError):
        services_timesheets.save_day_comment(db, ctx, week_start=WEEK, row_index=5, day_index=0, text="x")


def test_day_comment_by_team_manager_and_outsiders(db, people) -> None:
    sheet = _save(db, people.employee, submit=True).timesheet

    updated = services_timesheets.save_day_comment(
        db, context_for(people.manager), sheet_id=sheet.id, row_index=0, day_index=1, text="Please split by task"
    )
    assert updated.rows[0]["comments"][1] == "Please split by task"

    with pytest.raises(AuthorizationError):
        services_timesheets.save_day_comment(
            db, context_for(people.other_manager), sheet_id=sheet.id, row_index=0, day_index=1, text="no"
        )
    with pytest.raises(AuthorizationError):
        services_timesheets.save_day_comment(
            db, context_for(people.loner), sheet_id=sheet.id, row_index=0, day_index=1, text="no"
        )
    with pytest.raises(NotFoundError):
        services_timesheets.save_day_comment(db, context_for(people.manager), sheet_id=9999, row_index=0, day_index=0, text="")


def test_owner_cannot_comment_on_locked_sheet(db, people) -> None:
    sheet = _save(db, people.employee, submit=True).timesheet
    services_timesheets.review_timesheet(db, context_for(people.manager), sheet.id, ReviewDecision.REJECT)

    with pytest.raises(AuthorizationError):
        services_timesheets.save_day_comment(
            db, context_for(people.employee), week_start=WEEK, row_index=0, day_index=0, text="late"
        )


def test_team_queries_are_scoped_to_direct_reports(db, people) -> None:
    _save(db, people.employee, submit=True)
    _save(db, people.employee, week="2024-03-11")
    _save(db, people.loner, submit=True)
    manager = context_for(people.manager)

    assert [member.id for member in services_timesheets.team_members(db, manager)] == [people.employee.id]
    assert len(services_timesheets.team_timesheets(db, manager)) == 2
    submitted = services_timesheets.team_timesheets(db, manager, status="submitted")
    assert [sheet.week_start for sheet in submitted] == [date(2024, 3, 4)]
    assert len(services_timesheets.team_timesheets(db, manager, week_start="2024-03-11")) == 1
    assert services_timesheets.team_timesheets(db, context_for(people.other_manager)) == []

    with pytest.raises(AuthorizationError):
        services_timesheets.team_timesheets(db, manager, user_id=people.loner.id)
    with pytest.raises(ValidationError):
        services_timesheets.team_timesheets(db, manager, status="archived")


def test_admin_lists_any_users_sheets(db, people) -> None:
    _save(db, people.employee)

    assert len(services_timesheets.list_for_user(db, context_for(people.admin), people.employee.id)) == 1
    with pytest.raises(AuthorizationError):
        services_timesheets.list_for_user(db, context_for(people.manager), people.employee.id)
