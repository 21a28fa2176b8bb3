"""Create users, weekly timesheets, leave requests and manager profiles.

Revision ID: 3c1d9a7e5b20
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3c1d9a7e5b20"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# SQLAlchemy persists Enum members by name.
role_enum = sa.Enum("ADMIN", "MANAGER", "EMPLOYEE", name="role")
timesheet_status_enum = sa.Enum("DRAFT", "SUBMITTED", "APPROVED", "REJECTED", name="timesheetstatus")
leave_status_enum = sa.Enum("PENDING", "APPROVED", "REJECTED", "CANCELLED", name="leavestatus")
leave_type_enum = sa.Enum("CASUAL", "SICK", "PAID_TIME_OFF", "COMP_OFF", name="leavetype")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("role", role_enum, nullable=False),
        sa.Column("must_reset_password", sa.Boolean(), nullable=False),
        sa.Column("manager_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("reset_password_token", sa.String(length=128), nullable=True),
        sa.Column("reset_password_expires_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_manager_id", "users", ["manager_id"])
    op.create_index("ix_users_reset_password_token", "users", ["reset_password_token"])

    op.create_table(
        "timesheets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("week_start", sa.Date(), nullable=False),
        sa.Column("rows", sa.JSON(), nullable=False),
        sa.Column("status", timesheet_status_enum, nullable=False),
        sa.Column("submitted_at", sa.DateTime(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("reviewed_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("comments", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "week_start", name="uq_timesheets_user_week"),
    )
    op.create_index("ix_timesheets_user_id", "timesheets", ["user_id"])
    op.create_index("ix_timesheets_week_start", "timesheets", ["week_start"])

    op.create_table(
        "leave_requests",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("employee_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("manager_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("leave_type", leave_type_enum, nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("days", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", leave_status_enum, nullable=False),
        sa.Column("manager_note", sa.Text(), nullable=False),
        sa.Column("decided_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_leave_requests_employee_id", "leave_requests", ["employee_id"])
    op.create_index("ix_leave_requests_manager_id", "leave_requests", ["manager_id"])
    op.create_index("ix_leave_requests_status", "leave_requests", ["status"])
    op.create_index("ix_leave_requests_created_at", "leave_requests", ["created_at"])

    op.create_table(
        "manager_profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("manager_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("title", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=40), nullable=False),
        sa.Column("team_name", sa.String(length=120), nullable=False),
        sa.Column("location", sa.String(length=120), nullable=False),
        sa.Column("timezone", sa.String(length=60), nullable=False),
        sa.Column("working_hours_start", sa.String(length=5), nullable=False),
        sa.Column("working_hours_end", sa.String(length=5), nullable=False),
        sa.Column("email_notifications", sa.Boolean(), nullable=False),
        sa.Column("slack_notifications", sa.Boolean(), nullable=False),
        sa.Column("weekly_digest", sa.Boolean(), nullable=False),
        sa.Column("auto_approve_short_leaves", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("manager_profiles")
    for index_name in (
        "ix_leave_requests_created_at",
        "ix_leave_requests_status",
        "ix_leave_requests_manager_id",
        "ix_leave_requests_employee_id",
    ):
        op.drop_index(index_name, table_name="leave_requests")
    op.drop_table("leave_requests")
    op.drop_index("ix_timesheets_week_start", table_name="timesheets")
    op.drop_index("ix_timesheets_user_id", table_name="timesheets")
    op.drop_table("timesheets")
    op.drop_index("ix_users_reset_password_token", table_name="users")
    op.drop_index("ix_users_manager_id", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    for enum_type in (leave_type_enum, leave_status_enum, timesheet_status_enum, role_enum):
        enum_type.drop(op.get_bind(), checkfirst=True)
