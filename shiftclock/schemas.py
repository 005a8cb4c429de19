from datetime import date, datetime, time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from shiftclock.models import (
    BreakType,
    NotificationKind,
    OvertimeStatus,
    RecordStatus,
    SessionStatus,
    SessionType,
)


class DeviceInfo(BaseModel):
    device_type: str | None = Field(default=None, max_length=64)
    device_name: str | None = Field(default=None, max_length=255)
    browser: str | None = Field(default=None, max_length=128)
    os: str | None = Field(default=None, max_length=128)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    location_address: str | None = Field(default=None, max_length=512)
    location_city: str | None = Field(default=None, max_length=255)
    location_country: str | None = Field(default=None, max_length=255)


class ConfirmRequest(BaseModel):
    device: DeviceInfo | None = None


class AttendanceRecordRead(BaseModel):
    id: int
    user_id: int
    session_id: int | None
    attendance_date: date
    time_in: datetime | None
    time_out: datetime | None
    break_start: datetime | None
    break_end: datetime | None
    status: RecordStatus
    minutes_late: int
    hours_worked: float | None
    overtime_minutes: int
    overtime_status: OvertimeStatus
    confirmed_at: datetime | None
    notes: str | None
    excuse_reason: str | None
    auto_checkout: bool

    model_config = ConfigDict(from_attributes=True)


class AttendanceActionResponse(BaseModel):
    ok: bool = True
    action: str
    message: str
    record: AttendanceRecordRead


class CanConfirmResponse(BaseModel):
    can_confirm: bool
    reason: str | None = None
    message: str
    window: dict[str, str] | None = None


class BreakEntryRead(BaseModel):
    id: int
    attendance_id: int
    break_type: BreakType
    break_start: datetime
    break_end: datetime | None
    duration_minutes: int | None
    duration_limit: int
    penalty_minutes: int

    model_config = ConfigDict(from_attributes=True)


class BreakStartRequest(BaseModel):
    break_type: BreakType = Field(validation_alias="type")

    model_config = ConfigDict(populate_by_name=True)


class BreakActionResponse(BaseModel):
    ok: bool = True
    action: str
    message: str
    break_entry: BreakEntryRead


class BreakWindowRead(BaseModel):
    start: datetime
    end: datetime
    is_open: bool


class BreakStatusResponse(BaseModel):
    attendance_id: int | None
    break_window: BreakWindowRead | None
    break_used_minutes: int
    daily_limit_minutes: int
    breaks_taken: int
    break_remaining_seconds: int
    coffee_used: bool
    meal_used: bool
    is_on_break: bool
    can_start_break: bool
    can_end_break: bool
    current_break: dict[str, Any] | None
    breaks: list[dict[str, Any]] = Field(default_factory=list)


class SessionSummary(BaseModel):
    id: int
    date: date
    status: SessionStatus
    schedule_id: int | None
    schedule_name: str | None
    time_in: time | None
    time_out: time | None


class TodayStatusResponse(BaseModel):
    logical_date: date
    session: SessionSummary | None
    session_id: int | None
    has_record: bool
    record_id: int | None
    original_status: str | None
    display_status: str
    attendance_date: date | None
    time_in: datetime | None
    time_out: datetime | None
    minutes_late: int | None = None
    hours_worked: float | None = None
    is_on_break: bool
    break_remaining_seconds: int
    has_checked_out: bool
    can_check_in: bool
    check_in_reason: str | None
    message: str | None
    can_start_break: bool
    can_end_break: bool
    can_check_out: bool


class ScheduleCreate(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    time_in: time
    time_out: time
    is_overnight: bool | None = None
    grace_period_minutes: int | None = Field(default=None, ge=0, le=240)
    late_threshold_minutes: int | None = Field(default=None, ge=0, le=600)
    is_active: bool = True

    @model_validator(mode="after")
    def validate_times(self) -> "ScheduleCreate":
        if self.time_in == self.time_out:
            raise ValueError("time_in and time_out must differ")
        if self.is_overnight is None:
            self.is_overnight = self.time_out < self.time_in
        return self


class ScheduleRead(BaseModel):
    id: int
    name: str
    time_in: time
    time_out: time
    is_overnight: bool
    grace_period_minutes: int | None
    late_threshold_minutes: int | None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class SessionCreate(BaseModel):
    schedule_id: int = Field(ge=1)
    session_date: date = Field(validation_alias="date")
    employee_ids: list[int] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class SessionRead(BaseModel):
    id: int
    schedule_id: int | None
    session_date: date = Field(serialization_alias="date")
    status: SessionStatus
    session_type: SessionType
    shift_time_in: time | None
    shift_time_out: time | None
    opened_at: datetime | None
    locked_at: datetime | None
    created_by: int | None

    model_config = ConfigDict(from_attributes=True)


class SessionDeleteResponse(BaseModel):
    ok: bool = True
    session_id: int
    records_deleted: int


class SessionSyncResponse(BaseModel):
    changed: list[SessionRead]


class AdminRecordCreate(BaseModel):
    user_id: int = Field(ge=1)
    session_id: int | None = Field(default=None, ge=1)
    attendance_date: date
    status: RecordStatus = RecordStatus.PRESENT
    time_in: datetime | None = None
    time_out: datetime | None = None
    notes: str | None = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def validate_times(self) -> "AdminRecordCreate":
        if self.time_in is None and self.time_out is not None:
            raise ValueError("time_out requires time_in")
        return self


class AdminRecordUpdate(BaseModel):
    status: RecordStatus | None = None
    time_in: datetime | None = None
    time_out: datetime | None = None
    excuse_reason: str | None = Field(default=None, max_length=2000)
    overtime_status: OvertimeStatus | None = None
    notes: str | None = Field(default=None, max_length=2000)
    reason: str = Field(min_length=3, max_length=500)


class RecordDeleteResponse(BaseModel):
    ok: bool = True
    record_id: int


class AttendanceSettingsRead(BaseModel):
    values: dict[str, Any]


class AttendanceSettingsUpdate(BaseModel):
    values: dict[str, str | None]


class NotificationRead(BaseModel):
    id: int
    kind: NotificationKind
    title: str
    body: str
    payload: dict[str, Any]
    created_at: datetime
    read_at: datetime | None

    model_config = ConfigDict(from_attributes=True)


class MaintenanceRunResponse(BaseModel):
    sessions_synced: int
    breaks_closed: list[int]
    records_checked_out: list[int]
    records_marked_absent: list[int]
