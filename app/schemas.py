"""Pydantic schemas.

Defines validation for incoming payloads and the JSON shapes returned by the
API. Aliases keep the camelCase wire format the browser client uses; output
models read straight from ORM rows.
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.models import LeaveStatus, LeaveType, Role, TimesheetStatus


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""


class UserSummary(ApiModel):
    id: int
    name: str
    email: str


class UserOut(UserSummary):
    role: Role
    must_reset_password: bool = Field(serialization_alias="mustResetPassword")
    manager_id: int | None = Field(default=None, serialization_alias="managerId")
    manager: UserSummary | None = None


class LoginResponse(BaseModel):
    token: str
    user: UserOut


class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    email: EmailStr
    role: Role = Role.EMPLOYEE


class AssignManager(ApiModel):
    manager_id: int | None = Field(default=None, alias="managerId")


class ForgotPasswordRequest(BaseModel):
    email: str = ""


class PasswordReset(ApiModel):
    new_password: str = Field(default="", alias="newPassword")


class TimesheetRowIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    client: str | None = ""
    project: str | None = ""
    task: str | None = ""
    activity: str | None = ""
    # Cells are normalized server-side, so accept whatever the client sends.
    hours: list[Any] = Field(default_factory=list)
    comments: list[Any] = Field(default_factory=list)


class WeekSave(ApiModel):
    week_start: str | None = Field(default=None, alias="weekStart")
    rows: list[TimesheetRowIn] = Field(default_factory=list)
    submit: bool = False
    status: str | None = None

    @property
    def wants_submit(self) -> bool:
        return self.submit or (isinstance(self.status, str) and self.status.lower() == "submitted")


class DayComment(ApiModel):
    sheet_id: int | None = Field(default=None, alias="sheetId")
    week_start: str | None = Field(default=None, alias="weekStart")
    row_index: int = Field(alias="rowIndex")
    day_index: int = Field(alias="dayIndex")
    text: str | None = ""


class TimesheetRowOut(BaseModel):
    client: str
    project: str
    task: str
    activity: str
    hours: list[int]
    comments: list[str | None]


class TimesheetOut(ApiModel):
    id: int
    user_id: int | None = Field(default=None, serialization_alias="user")
    week_start: date = Field(serialization_alias="weekStart")
    rows: list[TimesheetRowOut]
    status: TimesheetStatus
    submitted_at: datetime | None = Field(default=None, serialization_alias="submittedAt")
    reviewed_at: datetime | None = Field(default=None, serialization_alias="reviewedAt")
    reviewed_by_id: int | None = Field(default=None, serialization_alias="reviewedBy")
    comments: str = ""
    created_at: datetime = Field(serialization_alias="createdAt")
    updated_at: datetime = Field(serialization_alias="updatedAt")


class UpsertWeekOut(TimesheetOut):
    outcome: str


class TeamTimesheetOut(TimesheetOut):
    owner: UserSummary = Field(validation_alias="user")


class LeaveCreate(ApiModel):
    leave_type: str | None = Field(default=None, alias="type")
    start: str | None = Field(default=None, alias="from")
    end: str | None = Field(default=None, alias="to")
    reason: str | None = ""


class LeaveDecisionIn(BaseModel):
    note: str | None = ""


class LeaveRequestOut(ApiModel):
    id: int
    leave_type: LeaveType = Field(serialization_alias="type")
    start_date: date = Field(serialization_alias="from")
    end_date: date = Field(serialization_alias="to")
    days: int
    status: LeaveStatus
    reason: str = ""
    manager_note: str = Field(default="", serialization_alias="managerNote")
    created_at: datetime = Field(serialization_alias="requestedAt")
    decided_at: datetime | None = Field(default=None, serialization_alias="decidedAt")
    manager: UserSummary | None = None


class TeamLeaveRequestOut(LeaveRequestOut):
    employee_id: int | None = Field(default=None, serialization_alias="employeeId")
    employee: UserSummary | None = None


class LeaveDecisionOut(ApiModel):
    id: int
    status: LeaveStatus
    manager_note: str = Field(default="", serialization_alias="managerNote")
    decided_at: datetime | None = Field(default=None, serialization_alias="decidedAt")


class TypeBalanceOut(ApiModel):
    total: int
    used: int
    remaining: int


class LeaveStatsOut(ApiModel):
    pending: int
    approved_days: int = Field(serialization_alias="approvedDays")
    upcoming_approved: int = Field(serialization_alias="upcomingApproved")
    total_requests: int = Field(serialization_alias="totalRequests")


class LeaveSummaryOut(ApiModel):
    balances: dict[str, int]
    breakdown: dict[str, TypeBalanceOut]
    requests: list[LeaveRequestOut]
    stats: LeaveStatsOut
    types: list[str]


class ManagerProfileFields(ApiModel):
    name: str | None = None
    title: str | None = None
    email: str | None = None
    phone: str | None = None
    team_name: str | None = Field(default=None, alias="teamName")
    location: str | None = None
    timezone: str | None = None
    working_hours_start: str | None = Field(default=None, alias="workingHoursStart")
    working_hours_end: str | None = Field(default=None, alias="workingHoursEnd")


class ManagerProfileSettings(ApiModel):
    email_notifications: bool | None = Field(default=None, alias="emailNotifications")
    slack_notifications: bool | None = Field(default=None, alias="slackNotifications")
    weekly_digest: bool | None = Field(default=None, alias="weeklyDigest")
    auto_approve_short_leaves: bool | None = Field(default=None, alias="autoApproveShortLeaves")


class ManagerProfileUpdate(ManagerProfileFields):
    settings: ManagerProfileSettings = Field(default_factory=ManagerProfileSettings)


class ManagerProfileOut(BaseModel):
    profile: ManagerProfileFields
    settings: ManagerProfileSettings
    updated_at: datetime | None = Field(default=None, serialization_alias="updatedAt")
