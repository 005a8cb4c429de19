from __future__ import annotations

import enum
from datetime import date, datetime, time, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shiftclock.db import Base


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class UserRole(str, enum.Enum):
    EMPLOYEE = "employee"
    ADMIN = "admin"


class SessionStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    LOCKED = "locked"
    COMPLETED = "completed"


class SessionType(str, enum.Enum):
    MANUAL = "manual"
    AUTO = "auto"


class RecordStatus(str, enum.Enum):
    PENDING = "pending"
    PRESENT = "present"
    LATE = "late"
    ABSENT = "absent"
    EXCUSED = "excused"
    LEFT_EARLY = "left_early"


class OvertimeStatus(str, enum.Enum):
    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"


class BreakType(str, enum.Enum):
    COFFEE = "Coffee"
    MEAL = "Meal"


class AuditActorType(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


class NotificationKind(str, enum.Enum):
    BREAK_EXCEEDED = "break_exceeded"
    LATE_ARRIVAL = "late_arrival"
    ABSENT = "absent"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role", values_callable=_enum_values),
        nullable=False,
        default=UserRole.EMPLOYEE,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    records: Mapped[list[AttendanceRecord]] = relationship(back_populates="user")


class Schedule(Base):
    __tablename__ = "schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    time_in: Mapped[time] = mapped_column(Time, nullable=False)
    time_out: Mapped[time] = mapped_column(Time, nullable=False)
    is_overnight: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    grace_period_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    late_threshold_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    sessions: Mapped[list[ShiftSession]] = relationship(back_populates="schedule")


class ShiftSession(Base):
    __tablename__ = "attendance_sessions"
    __table_args__ = (
        UniqueConstraint("schedule_id", "date", name="uq_attendance_sessions_schedule_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    schedule_id: Mapped[int | None] = mapped_column(
        ForeignKey("schedules.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    session_date: Mapped[date] = mapped_column("date", Date, nullable=False, index=True)
    # Copied from the schedule when the session is created; later schedule edits do not reach it.
    shift_time_in: Mapped[time | None] = mapped_column(Time, nullable=True)
    shift_time_out: Mapped[time | None] = mapped_column(Time, nullable=True)
    shift_is_overnight: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    grace_period_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[SessionStatus] = mapped_column(
        Enum(SessionStatus, name="attendance_session_status", values_callable=_enum_values),
        nullable=False,
        default=SessionStatus.PENDING,
    )
    session_type: Mapped[SessionType] = mapped_column(
        Enum(SessionType, name="attendance_session_type", values_callable=_enum_values),
        nullable=False,
        default=SessionType.MANUAL,
    )
    opened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    schedule: Mapped[Schedule | None] = relationship(back_populates="sessions")
    records: Mapped[list[AttendanceRecord]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
    )

    def capture_schedule(self, schedule: Schedule) -> None:
        self.schedule = schedule
        self.shift_time_in = schedule.time_in
        self.shift_time_out = schedule.time_out
        self.shift_is_overnight = bool(schedule.is_overnight) or schedule.time_out < schedule.time_in
        self.grace_period_minutes = schedule.grace_period_minutes

    @property
    def shift_times(self) -> tuple[time, time] | None:
        if self.shift_time_in is None or self.shift_time_out is None:
            return None
        return self.shift_time_in, self.shift_time_out


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (
        Index("ix_attendance_records_user_date", "user_id", "attendance_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    session_id: Mapped[int | None] = mapped_column(
        ForeignKey("attendance_sessions.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    attendance_date: Mapped[date] = mapped_column(Date, nullable=False)
    time_in: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    time_out: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    break_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    break_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    status: Mapped[RecordStatus] = mapped_column(
        Enum(RecordStatus, name="attendance_record_status", values_callable=_enum_values),
        nullable=False,
        default=RecordStatus.PENDING,
    )
    excuse_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    minutes_late: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    hours_worked: Mapped[float | None] = mapped_column(Float, nullable=True)
    overtime_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    overtime_status: Mapped[OvertimeStatus] = mapped_column(
        Enum(OvertimeStatus, name="attendance_overtime_status", values_callable=_enum_values),
        nullable=False,
        default=OvertimeStatus.NONE,
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    auto_checkout: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    device_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    device_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    browser: Mapped[str | None] = mapped_column(String(128), nullable=True)
    os: Mapped[str | None] = mapped_column(String(128), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    location_address: Mapped[str | None] = mapped_column(String(512), nullable=True)
    location_city: Mapped[str | None] = mapped_column(String(255), nullable=True)
    location_country: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    user: Mapped[User] = relationship(back_populates="records")
    session: Mapped[ShiftSession | None] = relationship(back_populates="records")
    breaks: Mapped[list[BreakEntry]] = relationship(
        back_populates="record",
        cascade="all, delete-orphan",
        order_by="BreakEntry.break_start",
    )

    @property
    def is_open(self) -> bool:
        return self.time_in is not None and self.time_out is None


class BreakEntry(Base):
    __tablename__ = "breaks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    attendance_id: Mapped[int] = mapped_column(
        ForeignKey("attendance_records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    break_date: Mapped[date] = mapped_column(Date, nullable=False)
    break_type: Mapped[BreakType] = mapped_column(
        Enum(BreakType, name="break_type", values_callable=_enum_values),
        nullable=False,
    )
    break_start: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    break_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    duration_limit: Mapped[int] = mapped_column(Integer, nullable=False)
    penalty_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))

    record: Mapped[AttendanceRecord] = relationship(back_populates="breaks")

    @property
    def is_open(self) -> bool:
        return self.break_end is None


class Setting(Base):
    __tablename__ = "settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    value: Mapped[str | None] = mapped_column(Text, nullable=True)
    group: Mapped[str] = mapped_column(String(64), nullable=False, default="attendance")
    type: Mapped[str] = mapped_column(String(32), nullable=False, default="string")
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ts_utc: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
        index=True,
    )
    actor_type: Mapped[AuditActorType] = mapped_column(
        Enum(AuditActorType, name="audit_actor_type"),
        nullable=False,
    )
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    entity_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip: Mapped[str | None] = mapped_column(String(100), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    recipient_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    kind: Mapped[NotificationKind] = mapped_column(
        Enum(NotificationKind, name="notification_kind", values_callable=_enum_values),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
