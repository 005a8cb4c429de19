from __future__ import annotations

import logging
import math
from datetime import date, datetime

from sqlalchemy.orm import Session

from shiftclock.errors import ApiError, attendance_error
from shiftclock.models import AttendanceRecord, OvertimeStatus, RecordStatus, UserRole
from shiftclock.services import events
from shiftclock.services.attendance_config import AttendanceConfig
from shiftclock.services.logical_day import (
    EARLY_LEAVE_TOLERANCE,
    minutes_between,
    resolve_logical_date,
    shift_window,
)
from shiftclock.services.records import compute_hours_worked, find_open_break, list_breaks, lock_record

logger = logging.getLogger("shiftclock.checkout")

# Allowed distance, in logical days, between a record and "today" at check-out.
# Kept from the legacy product behaviour; not derived from any shift rule.
CHECKOUT_MIN_DAY_OFFSET = -1
CHECKOUT_MAX_DAY_OFFSET = 2


def apply_overtime_rounding(minutes: int, rule: str) -> int:
    """Round overtime minutes by a ``<mode>_<interval>`` rule such as ``down_15``."""
    normalized = (rule or "none").strip().lower()
    if normalized == "none" or "_" not in normalized:
        return minutes
    mode, _, raw_interval = normalized.partition("_")
    try:
        interval = int(raw_interval)
    except ValueError:
        return minutes
    if interval <= 0:
        return minutes
    if mode == "down":
        return (minutes // interval) * interval
    if mode == "up":
        return math.ceil(minutes / interval) * interval
    if mode == "nearest":
        return int(math.floor(minutes / interval + 0.5)) * interval
    return minutes


def record_anchor_date(record: AttendanceRecord) -> date:
    if record.session is not None:
        return record.session.session_date
    return record.attendance_date


def record_shift_end(record: AttendanceRecord) -> datetime | None:
    session = record.session
    if session is None or session.shift_times is None:
        return None
    return shift_window(record_anchor_date(record), *session.shift_times).end


def compute_overtime(shift_end: datetime, time_out: datetime, config: AttendanceConfig) -> tuple[int, OvertimeStatus]:
    if not config.allow_overtime or time_out <= shift_end:
        return 0, OvertimeStatus.NONE
    raw_minutes = minutes_between(shift_end, time_out)
    if raw_minutes < config.min_overtime_minutes:
        return 0, OvertimeStatus.NONE
    rounded = apply_overtime_rounding(raw_minutes, config.ot_rounding)
    if rounded <= 0:
        return 0, OvertimeStatus.NONE
    status = OvertimeStatus.PENDING if config.require_ot_approval else OvertimeStatus.APPROVED
    return rounded, status


def finalize_record(
    db: Session,
    record: AttendanceRecord,
    *,
    time_out: datetime,
    config: AttendanceConfig,
    classify_early_leave: bool = True,
) -> None:
    """Close a record at ``time_out``; the caller owns the transaction."""
    open_break = find_open_break(db, record.id, for_update=True)
    if open_break is not None:
        open_break.break_end = time_out
        open_break.duration_minutes = abs(minutes_between(open_break.break_start, time_out))
        record.break_end = time_out

    record.time_out = time_out
    db.flush()
    record.hours_worked = compute_hours_worked(record, list_breaks(db, record.id))

    shift_end = record_shift_end(record)
    if shift_end is None:
        return
    # Overtime only counts time worked past the shift end.
    record.overtime_minutes, record.overtime_status = compute_overtime(max(shift_end, record.time_in), time_out, config)
    if (
        classify_early_leave
        and time_out < shift_end - EARLY_LEAVE_TOLERANCE
        and record.status != RecordStatus.EXCUSED
    ):
        record.status = RecordStatus.LEFT_EARLY


def _validate_record_age(record: AttendanceRecord, logical_day: date) -> None:
    offset = (logical_day - record.attendance_date).days
    if offset > CHECKOUT_MAX_DAY_OFFSET or offset < CHECKOUT_MIN_DAY_OFFSET:
        raise attendance_error(
            "RECORD_TOO_OLD",
            "This attendance record is too old to check out. Contact an administrator.",
        )


def check_out(
    db: Session,
    *,
    user_id: int,
    record_id: int,
    now: datetime,
    config: AttendanceConfig,
    acting_role: UserRole = UserRole.EMPLOYEE,
) -> AttendanceRecord:
    record = db.get(AttendanceRecord, record_id)
    if record is None:
        raise attendance_error("RECORD_NOT_FOUND", "Attendance record not found.")
    if record.user_id != user_id and acting_role != UserRole.ADMIN:
        raise attendance_error("FORBIDDEN", "You can only check out your own attendance.")
    _validate_record_age(record, resolve_logical_date(now, config.shift_boundary_hour))

    try:
        locked = lock_record(db, record_id)
        if locked is None:
            raise attendance_error("RECORD_NOT_FOUND", "Attendance record not found.")
        if locked.time_out is not None:
            raise attendance_error("ALREADY_CHECKED_OUT", "You have already checked out.")
        if locked.time_in is None:
            raise attendance_error("NOT_CHECKED_IN", "You have not checked in yet.")
        finalize_record(db, locked, time_out=now, config=config)
        db.commit()
    except ApiError:
        db.rollback()
        raise
    except Exception as exc:
        db.rollback()
        logger.exception("checkout_failed", extra={"user_id": user_id, "record_id": record_id})
        raise attendance_error("SYSTEM_ERROR", "Check-out could not be completed. Please try again.") from exc

    logger.info(
        "checkout_completed",
        extra={
            "user_id": locked.user_id,
            "record_id": locked.id,
            "status": locked.status.value,
            "hours_worked": locked.hours_worked,
            "overtime_minutes": locked.overtime_minutes,
            "overtime_status": locked.overtime_status.value,
        },
    )
    events.attendance_updated(locked, "checked_out")
    return locked

