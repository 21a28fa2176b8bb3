"""Application entrypoint.

This file wires the JSON API routes, role gating, workflow error mapping and
startup actions for the Weekly Timesheet service.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app import services_leave, services_timesheets, services_users
from app.bootstrap_admin import seed_bootstrap_admin
from app.config import settings
from app.database import engine, get_db, run_migrations
from app.dependencies import get_current_user, get_session_context, require_roles
from app.errors import WorkflowError
from app.logging_config import setup_logging
from app.models import Role, User
from app.principals import SessionContext
from app.schemas import (
    AssignManager,
    DayComment,
    ForgotPasswordRequest,
    LeaveCreate,
    LeaveDecisionIn,
    LeaveDecisionOut,
    LeaveRequestOut,
    LeaveSummaryOut,
    LoginRequest,
    LoginResponse,
    ManagerProfileOut,
    ManagerProfileUpdate,
    PasswordReset,
    TeamLeaveRequestOut,
    TeamTimesheetOut,
    TimesheetOut,
    UpsertWeekOut,
    UserCreate,
    UserOut,
    UserSummary,
    WeekSave,
)
from app.security import ensure_password_backend

logger = logging.getLogger(__name__)


def startup() -> None:
    run_migrations()
    ensure_password_backend()
    seed_bootstrap_admin(engine=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("Starting %s (%s)", settings.app_name, settings.environment)
    startup()
    yield
    logger.info("Shutting down %s", settings.app_name)


app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    logger.warning("%s %s -> %s: %s", request.method, request.url.path, type(exc).__name__, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def no_store(response: Response) -> None:
    """Timesheet reads must never be served from a cache."""
    response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, proxy-revalidate"
    response.headers["Pragma"] = "no-cache"
    response.headers["Expires"] = "0"


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


@app.post("/api/auth/login", response_model=LoginResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    result = services_users.authenticate(db, payload.email, payload.password)
    if result is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return LoginResponse(token=result.token, user=UserOut.model_validate(result.user))


@app.get("/api/auth/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)):
    return current_user


@app.post("/api/auth/forgot-password")
def forgot_password(payload: ForgotPasswordRequest, db: Session = Depends(get_db)):
    services_users.request_password_reset(db, payload.email)
    # Same answer whether or not the address exists.
    return {"message": services_users.FORGOT_PASSWORD_MESSAGE}


@app.post("/api/auth/reset-password/{token}")
def reset_password_with_token(token: str, payload: PasswordReset, db: Session = Depends(get_db)):
    services_users.reset_password_with_token(db, token, payload.new_password)
    return {"message": "Password updated successfully"}


@app.post("/api/auth/reset-password")
def reset_password(payload: PasswordReset, ctx: SessionContext = Depends(get_session_context), db: Session = Depends(get_db)):
    services_users.change_password(db, ctx, payload.new_password)
    return {"message": "Password updated successfully"}


# ---------------------------------------------------------------------------
# Admin: accounts and manager assignment
# ---------------------------------------------------------------------------


@app.get("/api/users", response_model=list[UserOut])
def list_users(ctx: SessionContext = Depends(require_roles(Role.ADMIN)), db: Session = Depends(get_db)):
    return services_users.list_users(db, ctx)


@app.post("/api/users", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(payload: UserCreate, ctx: SessionContext = Depends(require_roles(Role.ADMIN)), db: Session = Depends(get_db)):
    user, _ = services_users.create_user(db, ctx, name=payload.name, email=payload.email, role=payload.role)
    return user


@app.delete("/api/users/{user_id}")
def delete_user(user_id: int, ctx: SessionContext = Depends(require_roles(Role.ADMIN)), db: Session = Depends(get_db)):
    services_users.delete_user(db, ctx, user_id)
    return {"ok": True}


@app.put("/api/users/{user_id}/assign", response_model=UserOut)
def assign_manager(
    user_id: int,
    payload: AssignManager,
    ctx: SessionContext = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
):
    return services_users.assign_manager(db, ctx, user_id, payload.manager_id)


# ---------------------------------------------------------------------------
# Timesheets
# ---------------------------------------------------------------------------


@app.get("/api/timesheets", response_model=list[TimesheetOut], dependencies=[Depends(no_store)])
def list_my_timesheets(ctx: SessionContext = Depends(get_session_context), db: Session = Depends(get_db)):
    return services_timesheets.list_own(db, ctx)


@app.get("/api/timesheets/user/{user_id}", response_model=list[TimesheetOut], dependencies=[Depends(no_store)])
def list_user_timesheets(user_id: int, ctx: SessionContext = Depends(require_roles(Role.ADMIN)), db: Session = Depends(get_db)):
    return services_timesheets.list_for_user(db, ctx, user_id)


@app.get("/api/timesheets/{week_start}", dependencies=[Depends(no_store)])
def get_week(week_start: str, ctx: SessionContext = Depends(get_session_context), db: Session = Depends(get_db)):
    sheet = services_timesheets.get_week(db, ctx, week_start)
    if sheet is None:
        return {"rows": [], "status": "new"}
    return TimesheetOut.model_validate(sheet).model_dump(mode="json", by_alias=True)


@app.post("/api/timesheets", response_model=UpsertWeekOut, dependencies=[Depends(no_store)])
def save_week(payload: WeekSave, ctx: SessionContext = Depends(get_session_context), db: Session = Depends(get_db)):
    result = services_timesheets.upsert_week(
        db,
        ctx,
        payload.week_start,
        [row.model_dump() for row in payload.rows],
        wants_submit=payload.wants_submit,
    )
    return UpsertWeekOut(**TimesheetOut.model_validate(result.timesheet).model_dump(), outcome=result.outcome.value)


@app.post("/api/timesheets/comments", dependencies=[Depends(no_store)])
def save_day_comment(payload: DayComment, ctx: SessionContext = Depends(get_session_context), db: Session = Depends(get_db)):
    sheet = services_timesheets.save_day_comment(
        db,
        ctx,
        sheet_id=payload.sheet_id,
        week_start=payload.week_start,
        row_index=payload.row_index,
        day_index=payload.day_index,
        text=payload.text,
    )
    return {"ok": True, "sheet": TimesheetOut.model_validate(sheet).model_dump(mode="json", by_alias=True)}


@app.patch("/api/timesheets/{timesheet_id}/approve", response_model=TimesheetOut, dependencies=[Depends(no_store)])
def approve_timesheet(
    timesheet_id: int,
    ctx: SessionContext = Depends(require_roles(Role.MANAGER)),
    db: Session = Depends(get_db),
):
    return services_timesheets.review_timesheet(db, ctx, timesheet_id, services_timesheets.ReviewDecision.APPROVE).timesheet


@app.patch("/api/timesheets/{timesheet_id}/reject", response_model=TimesheetOut, dependencies=[Depends(no_store)])
def reject_timesheet(
    timesheet_id: int,
    ctx: SessionContext = Depends(require_roles(Role.MANAGER)),
    db: Session = Depends(get_db),
):
    return services_timesheets.review_timesheet(db, ctx, timesheet_id, services_timesheets.ReviewDecision.REJECT).timesheet


# ---------------------------------------------------------------------------
# Manager views
# ---------------------------------------------------------------------------


@app.get("/api/manager/team")
def manager_team(ctx: SessionContext = Depends(require_roles(Role.MANAGER)), db: Session = Depends(get_db)):
    team = services_timesheets.team_members(db, ctx)
    return {"total": len(team), "data": [UserSummary.model_validate(member).model_dump() for member in team]}


@app.get("/api/manager/timesheets", response_model=list[TeamTimesheetOut])
def manager_timesheets(
    user_id: int | None = Query(default=None, alias="userId"),
    sheet_status: str | None = Query(default=None, alias="status"),
    week_start: str | None = Query(default=None, alias="weekStart"),
    ctx: SessionContext = Depends(require_roles(Role.MANAGER)),
    db: Session = Depends(get_db),
):
    return services_timesheets.team_timesheets(db, ctx, user_id=user_id, status=sheet_status, week_start=week_start)


@app.get("/api/manager/timesheets/{timesheet_id}", response_model=TeamTimesheetOut)
def manager_timesheet(timesheet_id: int, ctx: SessionContext = Depends(require_roles(Role.MANAGER)), db: Session = Depends(get_db)):
    return services_timesheets.get_team_timesheet(db, ctx, timesheet_id)


@app.get("/api/manager/profile", response_model=ManagerProfileOut)
def manager_profile(ctx: SessionContext = Depends(require_roles(Role.MANAGER)), db: Session = Depends(get_db)):
    return services_users.get_manager_profile(db, ctx)


@app.put("/api/manager/profile", response_model=ManagerProfileOut)
def update_manager_profile(
    payload: ManagerProfileUpdate,
    ctx: SessionContext = Depends(require_roles(Role.MANAGER)),
    db: Session = Depends(get_db),
):
    profile = payload.model_dump(exclude={"settings"}, exclude_none=True)
    return services_users.update_manager_profile(db, ctx, profile, payload.settings.model_dump(exclude_none=True))


# ---------------------------------------------------------------------------
# Leave
# ---------------------------------------------------------------------------


@app.get("/api/leaves/summary", response_model=LeaveSummaryOut)
def leave_summary(ctx: SessionContext = Depends(get_session_context), db: Session = Depends(get_db)):
    return LeaveSummaryOut.model_validate(services_leave.summarize(db, ctx))


@app.post("/api/leaves", response_model=LeaveRequestOut, status_code=status.HTTP_201_CREATED)
def create_leave(payload: LeaveCreate, ctx: SessionContext = Depends(get_session_context), db: Session = Depends(get_db)):
    return services_leave.create_request(db, ctx, payload.leave_type, payload.start, payload.end, payload.reason)


@app.patch("/api/leaves/{request_id}/cancel", response_model=LeaveDecisionOut)
def cancel_leave(request_id: int, ctx: SessionContext = Depends(get_session_context), db: Session = Depends(get_db)):
    return services_leave.cancel_request(db, ctx, request_id)


@app.get("/api/leaves/requests/manager", response_model=list[TeamLeaveRequestOut])
def manager_leave_queue(
    ctx: SessionContext = Depends(require_roles(Role.MANAGER, Role.ADMIN)),
    db: Session = Depends(get_db),
):
    return services_leave.team_queue(db, ctx)


@app.post("/api/leaves/{request_id}/approve", response_model=LeaveDecisionOut)
def approve_leave(
    request_id: int,
    payload: LeaveDecisionIn | None = None,
    ctx: SessionContext = Depends(require_roles(Role.MANAGER, Role.ADMIN)),
    db: Session = Depends(get_db),
):
    note = payload.note if payload else ""
    return services_leave.decide_request(db, ctx, request_id, services_leave.LeaveDecision.APPROVE, note)


@app.post("/api/leaves/{request_id}/reject", response_model=LeaveDecisionOut)
def reject_leave(
    request_id: int,
    payload: LeaveDecisionIn | None = None,
    ctx: SessionContext = Depends(require_roles(Role.MANAGER, Role.ADMIN)),
    db: Session = Depends(get_db),
):
    note = payload.note if payload else ""
    return services_leave.decide_request(db, ctx, request_id, services_leave.LeaveDecision.REJECT, note)


@app.get("/api/health")
def healthcheck():
    return {"status": "ok", "date": date.today().isoformat()}
