"""Initial shift attendance schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = postgresql.ENUM("employee", "admin", name="user_role", create_type=False)
attendance_session_status = postgresql.ENUM(
    "pending",
    "active",
    "locked",
    "completed",
    name="attendance_session_status",
    create_type=False,
)
attendance_session_type = postgresql.ENUM("manual", "auto", name="attendance_session_type", create_type=False)
attendance_record_status = postgresql.ENUM(
    "pending",
    "present",
    "late",
    "absent",
    "excused",
    "left_early",
    name="attendance_record_status",
    create_type=False,
)
attendance_overtime_status = postgresql.ENUM(
    "none",
    "pending",
    "approved",
    name="attendance_overtime_status",
    create_type=False,
)
break_type = postgresql.ENUM("Coffee", "Meal", name="break_type", create_type=False)
audit_actor_type = postgresql.ENUM("USER", "ADMIN", "SYSTEM", name="audit_actor_type", create_type=False)
notification_kind = postgresql.ENUM(
    "break_exceeded",
    "late_arrival",
    "absent",
    name="notification_kind",
    create_type=False,
)

ALL_ENUMS = (
    user_role,
    attendance_session_status,
    attendance_session_type,
    attendance_record_status,
    attendance_overtime_status,
    break_type,
    audit_actor_type,
    notification_kind,
)


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ALL_ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("role", user_role, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "schedules",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("time_in", sa.Time(), nullable=False),
        sa.Column("time_out", sa.Time(), nullable=False),
        sa.Column("is_overnight", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("grace_period_minutes", sa.Integer(), nullable=True),
        sa.Column("late_threshold_minutes", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )

    op.create_table(
        "attendance_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("schedule_id", sa.Integer(), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("shift_time_in", sa.Time(), nullable=True),
        sa.Column("shift_time_out", sa.Time(), nullable=True),
        sa.Column("shift_is_overnight", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("grace_period_minutes", sa.Integer(), nullable=True),
        sa.Column("status", attendance_session_status, nullable=False),
        sa.Column("session_type", attendance_session_type, nullable=False),
        sa.Column("opened_at", sa.DateTime(timezone=False), nullable=True),
        sa.Column("locked_at", sa.DateTime(timezone=False), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["schedule_id"], ["schedules.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("schedule_id", "date", name="uq_attendance_sessions_schedule_date"),
    )
    op.create_index("ix_attendance_sessions_schedule_id", "attendance_sessions", ["schedule_id"])
    op.create_index("ix_attendance_sessions_date", "attendance_sessions", ["date"])

    op.create_table(
        "attendance_records",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.Integer(), nullable=True),
        sa.Column("attendance_date", sa.Date(), nullable=False),
        sa.Column("time_in", sa.DateTime(timezone=False), nullable=True),
        sa.Column("time_out", sa.DateTime(timezone=False), nullable=True),
        sa.Column("break_start", sa.DateTime(timezone=False), nullable=True),
        sa.Column("break_end", sa.DateTime(timezone=False), nullable=True),
        sa.Column("status", attendance_record_status, nullable=False),
        sa.Column("excuse_reason", sa.Text(), nullable=True),
        sa.Column("minutes_late", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("hours_worked", sa.Float(), nullable=True),
        sa.Column("overtime_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("overtime_status", attendance_overtime_status, nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=False), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("auto_checkout", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("device_type", sa.String(length=64), nullable=True),
        sa.Column("device_name", sa.String(length=255), nullable=True),
        sa.Column("browser", sa.String(length=128), nullable=True),
        sa.Column("os", sa.String(length=128), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("location_address", sa.String(length=512), nullable=True),
        sa.Column("location_city", sa.String(length=255), nullable=True),
        sa.Column("location_country", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["session_id"], ["attendance_sessions.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_attendance_records_user_id", "attendance_records", ["user_id"])
    op.create_index("ix_attendance_records_session_id", "attendance_records", ["session_id"])
    op.create_index("ix_attendance_records_user_date", "attendance_records", ["user_id", "attendance_date"])

    op.create_table(
        "breaks",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("attendance_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("break_date", sa.Date(), nullable=False),
        sa.Column("break_type", break_type, nullable=False),
        sa.Column("break_start", sa.DateTime(timezone=False), nullable=False),
        sa.Column("break_end", sa.DateTime(timezone=False), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("duration_limit", sa.Integer(), nullable=False),
        sa.Column("penalty_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.ForeignKeyConstraint(["attendance_id"], ["attendance_records.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_breaks_attendance_id", "breaks", ["attendance_id"])
    op.create_index("ix_breaks_user_id", "breaks", ["user_id"])

    op.create_table(
        "settings",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("group", sa.String(length=64), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.UniqueConstraint("key", name="uq_settings_key"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("ts_utc", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("actor_type", audit_actor_type, nullable=False),
        sa.Column("actor_id", sa.String(length=255), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.String(length=255), nullable=True),
        sa.Column("ip", sa.String(length=100), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("details", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
    )
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("recipient_user_id", sa.Integer(), nullable=False),
        sa.Column("kind", notification_kind, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["recipient_user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_notifications_recipient_user_id", "notifications", ["recipient_user_id"])


def downgrade() -> None:
    op.drop_index("ix_notifications_recipient_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_index("ix_audit_logs_ts_utc", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_table("settings")
    op.drop_index("ix_breaks_user_id", table_name="breaks")
    op.drop_index("ix_breaks_attendance_id", table_name="breaks")
    op.drop_table("breaks")
    op.drop_index("ix_attendance_records_user_date", table_name="attendance_records")
    op.drop_index("ix_attendance_records_session_id", table_name="attendance_records")
    op.drop_index("ix_attendance_records_user_id", table_name="attendance_records")
    op.drop_table("attendance_records")
    op.drop_index("ix_attendance_sessions_date", table_name="attendance_sessions")
    op.drop_index("ix_attendance_sessions_schedule_id", table_name="attendance_sessions")
    op.drop_table("attendance_sessions")
    op.drop_table("schedules")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in reversed(ALL_ENUMS):
        enum_type.drop(bind, checkfirst=True)
