from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from shiftclock.errors import ApiError, attendance_error
from shiftclock.models import (
    AttendanceRecord,
    OvertimeStatus,
    RecordStatus,
    SessionStatus,
    ShiftSession,
)
from shiftclock.services import events
from shiftclock.services.attendance_config import AttendanceConfig
from shiftclock.services.locks import LockNotAcquired, UserLockProvider, checkin_lock_key, get_lock_provider
from shiftclock.services.logical_day import CheckinWindow, checkin_window, minutes_between, shift_window
from shiftclock.services.notifications import notify_late_arrival
from shiftclock.services.records import PLACEHOLDER_STATUSES, find_open_record
from shiftclock.settings import get_settings

logger = logging.getLogger("shiftclock.checkin")

DUPLICATE_CONFIRM_WINDOW = timedelta(seconds=30)
DEVICE_FIELDS: tuple[str, ...] = (
    "ip_address",
    "device_type",
    "device_name",
    "browser",
    "os",
    "latitude",
    "longitude",
    "location_address",
    "location_city",
    "location_country",
)


@dataclass(frozen=True, slots=True)
class CheckinPlan:
    session: ShiftSession
    window: CheckinWindow


def grace_minutes_for(session: ShiftSession, config: AttendanceConfig) -> int:
    if session.grace_period_minutes is not None:
        return session.grace_period_minutes
    return config.grace_period


def _plan_checkin(db: Session, *, session_id: int, now: datetime, config: AttendanceConfig) -> CheckinPlan:
    session = db.get(ShiftSession, session_id)
    if session is None:
        raise attendance_error("SESSION_NOT_FOUND", "Attendance session not found.")
    shift_times = session.shift_times
    if shift_times is None:
        raise attendance_error("NO_SCHEDULE", "This session has no schedule attached.")
    if session.status == SessionStatus.LOCKED:
        raise attendance_error("SESSION_LOCKED", "This session has been locked by an administrator.")

    # All date math hangs off the session's own date, never off "today".
    shift_start = shift_window(session.session_date, *shift_times).start
    window = checkin_window(shift_start, grace_minutes_for(session, config))
    if now < window.opens_at:
        raise attendance_error("TOO_EARLY", f"Check-in opens at {window.opens_at.strftime('%I:%M %p')}.")
    if now > window.closes_at:
        raise attendance_error("TOO_LATE", f"Check-in closed at {window.closes_at.strftime('%I:%M %p')}.")
    return CheckinPlan(session=session, window=window)


def _find_existing_record(
    db: Session,
    *,
    user_id: int,
    session: ShiftSession,
    for_update: bool,
) -> AttendanceRecord | None:
    candidates = (
        select(AttendanceRecord).where(
            AttendanceRecord.user_id == user_id,
            AttendanceRecord.session_id == session.id,
        ),
        select(AttendanceRecord).where(
            AttendanceRecord.user_id == user_id,
            AttendanceRecord.attendance_date == session.session_date,
        ),
    )
    for stmt in candidates:
        stmt = stmt.order_by(AttendanceRecord.id.desc()).limit(1)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        record = db.scalar(stmt)
        if record is not None:
            return record
    return None


def _reject_duplicate(db: Session, *, user_id: int, attendance_date: date, now: datetime) -> None:
    recent_id = db.scalar(
        select(AttendanceRecord.id)
        .where(
            AttendanceRecord.user_id == user_id,
            AttendanceRecord.attendance_date == attendance_date,
            AttendanceRecord.confirmed_at >= now - DUPLICATE_CONFIRM_WINDOW,
        )
        .limit(1)
    )
    if recent_id is not None:
        raise attendance_error("DUPLICATE_REQUEST", "Please wait before confirming again.")


def _select_record_to_reuse(
    db: Session,
    *,
    user_id: int,
    existing: AttendanceRecord | None,
    config: AttendanceConfig,
) -> AttendanceRecord | None:
    """Return a placeholder to fill in, or ``None`` when a fresh record is needed."""
    reuse: AttendanceRecord | None = None
    if existing is not None:
        if existing.status in PLACEHOLDER_STATUSES:
            reuse = existing
        elif existing.time_out is None:
            raise attendance_error("CURRENTLY_CHECKED_IN", "You are currently checked in. Please check out first.")
        elif not config.allow_multi_checkin:
            raise attendance_error(
                "ALREADY_CHECKED_IN_TODAY",
                "You have already completed your attendance for today.",
            )

    # One open record per user across every session and day.
    open_record = find_open_record(db, user_id)
    if open_record is not None and (reuse is None or open_record.id != reuse.id):
        raise attendance_error("CURRENTLY_CHECKED_IN", "You are currently checked in. Please check out first.")
    return reuse


def _apply_device_info(record: AttendanceRecord, device_info: Mapping[str, Any] | None) -> None:
    if not device_info:
        return
    for field_name in DEVICE_FIELDS:
        value = device_info.get(field_name)
        if value is not None:
            setattr(record, field_name, value)


def _fill_checkin(
    record: AttendanceRecord,
    *,
    plan: CheckinPlan,
    now: datetime,
    device_info: Mapping[str, Any] | None,
) -> None:
    record.session_id = plan.session.id
    record.time_in = now
    record.time_out = None
    record.confirmed_at = now
    record.hours_worked = None
    record.overtime_minutes = 0
    record.overtime_status = OvertimeStatus.NONE
    if now <= plan.window.grace_ends_at:
        record.status = RecordStatus.PRESENT
        record.minutes_late = 0
    else:
        record.status = RecordStatus.LATE
        record.minutes_late = max(0, minutes_between(plan.window.grace_ends_at, now))
    _apply_device_info(record, device_info)


def _confirm_under_lock(
    db: Session,
    *,
    user_id: int,
    session_id: int,
    now: datetime,
    config: AttendanceConfig,
    device_info: Mapping[str, Any] | None,
) -> AttendanceRecord:
    plan = _plan_checkin(db, session_id=session_id, now=now, config=config)
    try:
        existing = _find_existing_record(db, user_id=user_id, session=plan.session, for_update=True)
        if config.prevent_duplicate_checkin:
            _reject_duplicate(db, user_id=user_id, attendance_date=plan.session.session_date, now=now)
        record = _select_record_to_reuse(db, user_id=user_id, existing=existing, config=config)
        if record is None:
            record = AttendanceRecord(
                user_id=user_id,
                attendance_date=plan.session.session_date,
                auto_checkout=False,
            )
            db.add(record)
        _fill_checkin(record, plan=plan, now=now, device_info=device_info)
        db.flush()
        if record.status == RecordStatus.LATE and config.late_alerts:
            notify_late_arrival(db, record=record)
        db.commit()
    except ApiError:
        db.rollback()
        raise
    except Exception as exc:
        db.rollback()
        logger.exception(
            "checkin_failed",
            extra={"user_id": user_id, "session_id": session_id},
        )
        raise attendance_error("SYSTEM_ERROR", "Check-in could not be completed. Please try again.") from exc

    logger.info(
        "checkin_confirmed",
        extra={
            "user_id": user_id,
            "session_id": session_id,
            "record_id": record.id,
            "attendance_date": record.attendance_date,
            "status": record.status.value,
            "minutes_late": record.minutes_late,
        },
    )
    return record


def confirm_attendance(
    db: Session,
    *,
    user_id: int,
    session_id: int,
    now: datetime,
    config: AttendanceConfig,
    device_info: Mapping[str, Any] | None = None,
    lock_provider: UserLockProvider | None = None,
) -> AttendanceRecord:
    """Check a user in to a session.

    Two guards are stacked: a short-lived named lock per user serialises
    attempts before any row exists, then the matched record is re-read with a
    row lock inside the transaction. A held lock fails fast with PROCESSING.
    """
    provider = lock_provider or get_lock_provider()
    lock_key = checkin_lock_key(user_id)
    try:
        with provider.acquire(lock_key, get_settings().checkin_lock_ttl_seconds):
            record = _confirm_under_lock(
                db,
                user_id=user_id,
                session_id=session_id,
                now=now,
                config=config,
                device_info=device_info,
            )
    except LockNotAcquired:
        logger.warning("checkin_lock_busy", extra={"user_id": user_id, "session_id": session_id})
        raise attendance_error(
            "PROCESSING",
            "Your check-in is already being processed. Please retry in a moment.",
        ) from None

    events.attendance_updated(record, "confirmed")
    return record


def can_confirm(
    db: Session,
    *,
    user_id: int,
    session_id: int,
    now: datetime,
    config: AttendanceConfig,
) -> dict[str, Any]:
    try:
        plan = _plan_checkin(db, session_id=session_id, now=now, config=config)
        existing = _find_existing_record(db, user_id=user_id, session=plan.session, for_update=False)
        _select_record_to_reuse(db, user_id=user_id, existing=existing, config=config)
    except ApiError as exc:
        return {
            "can_confirm": False,
            "reason": exc.code,
            "message": exc.message,
            "window": None,
        }

    will_be_late = now > plan.window.grace_ends_at
    return {
        "can_confirm": True,
        "reason": None,
        "message": "You will be marked late." if will_be_late else "You can confirm your attendance.",
        "window": plan.window.to_dict(),
    }
