from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session

from shiftclock.errors import ApiError, attendance_error
from shiftclock.models import AttendanceRecord, BreakEntry, BreakType, ShiftSession
from shiftclock.services import events
from shiftclock.services.attendance_config import AttendanceConfig
from shiftclock.services.logical_day import ShiftWindow, crosses_midnight, minutes_between, resolve_logical_date
from shiftclock.services.notifications import notify_break_exceeded
from shiftclock.services.records import (
    PLACEHOLDER_STATUSES,
    append_note,
    find_open_break,
    list_breaks,
    lock_record,
    resolve_current_record,
)

logger = logging.getLogger("shiftclock.breaks")


@dataclass(frozen=True, slots=True)
class BreakState:
    remaining_seconds: int
    expired: bool
    entitled_end: datetime


def derive_break_state(entry: BreakEntry, now: datetime) -> BreakState:
    entitled_end = entry.break_start + timedelta(minutes=entry.duration_limit)
    reference = entry.break_end or now
    remaining = int((entitled_end - reference).total_seconds())
    return BreakState(
        remaining_seconds=max(0, remaining),
        expired=remaining <= 0,
        entitled_end=entitled_end,
    )


def _record_anchor_date(record: AttendanceRecord) -> date:
    if record.session is not None:
        return record.session.session_date
    return record.attendance_date


def break_window(anchor_date: date, session: ShiftSession | None, config: AttendanceConfig) -> ShiftWindow | None:
    if config.break_start_window is None or config.break_end_window is None:
        return None
    start = datetime.combine(anchor_date, config.break_start_window)
    end = datetime.combine(anchor_date, config.break_end_window)
    if end < start:
        end += timedelta(days=1)
    shift_times = session.shift_times if session is not None else None
    if shift_times is not None and (session.shift_is_overnight or crosses_midnight(*shift_times)):
        # A window that starts before the shift does belongs to the following morning.
        if start < datetime.combine(anchor_date, shift_times[0]):
            start += timedelta(days=1)
            end += timedelta(days=1)
    return ShiftWindow(start=start, end=end)


def used_break_minutes(entries: list[BreakEntry]) -> int:
    return sum(entry.duration_minutes or 0 for entry in entries if entry.break_end is not None)


def _close_entry(record: AttendanceRecord, entry: BreakEntry, *, end_at: datetime, duration_minutes: int) -> None:
    entry.break_end = end_at
    entry.duration_minutes = duration_minutes
    record.break_end = end_at


def close_expired_break(
    db: Session,
    *,
    record: AttendanceRecord,
    entry: BreakEntry,
    now: datetime,
) -> bool:
    """Close ``entry`` at its entitled boundary if its allowance has run out."""
    state = derive_break_state(entry, now)
    if entry.break_end is not None or not state.expired:
        return False
    _close_entry(record, entry, end_at=state.entitled_end, duration_minutes=entry.duration_limit)
    db.commit()
    logger.info(
        "break_auto_ended",
        extra={
            "record_id": record.id,
            "break_id": entry.id,
            "break_end": state.entitled_end,
            "duration_minutes": entry.duration_limit,
        },
    )
    events.break_updated(record, entry, "auto_ended")
    return True


def auto_end_expired_break(
    db: Session,
    *,
    record: AttendanceRecord,
    now: datetime,
    config: AttendanceConfig,
) -> BreakEntry | None:
    if not config.auto_resume:
        return None
    entry = find_open_break(db, record.id)
    if entry is None:
        return None
    if close_expired_break(db, record=record, entry=entry, now=now):
        return entry
    return None


def _current_record(db: Session, *, user_id: int, now: datetime, config: AttendanceConfig) -> AttendanceRecord:
    logical_day = resolve_logical_date(now, config.shift_boundary_hour)
    record = resolve_current_record(db, user_id=user_id, logical_day=logical_day, calendar_day=now.date())
    if record is None or record.time_in is None or record.status in PLACEHOLDER_STATUSES:
        raise attendance_error("NOT_CHECKED_IN", "You must check in before taking a break.")
    return record


def _validate_new_break(
    record: AttendanceRecord,
    entries: list[BreakEntry],
    *,
    break_type: BreakType,
    now: datetime,
    config: AttendanceConfig,
) -> int:
    if record.time_out is not None:
        raise attendance_error("ALREADY_CHECKED_OUT", "Cannot take a break after checking out.")
    if any(entry.break_end is None for entry in entries):
        raise attendance_error("ALREADY_ON_BREAK", "You are already on break.")

    window = break_window(_record_anchor_date(record), record.session, config)
    if window is not None:
        if now < window.start:
            raise attendance_error("TOO_EARLY", f"Break opens at {window.start.strftime('%I:%M %p')}.")
        if now >= window.end:
            raise attendance_error("TOO_LATE", f"Break window closed at {window.end.strftime('%I:%M %p')}.")

    if config.break_type_allowance and any(entry.break_type == break_type for entry in entries):
        raise attendance_error("BREAK_TYPE_USED", f"You have already used your {break_type.value} break.")
    if config.max_breaks > 0 and len(entries) >= config.max_breaks:
        raise attendance_error("BREAK_LIMIT_REACHED", "You have used all of your breaks for this shift.")

    segment_limit = config.segment_limit(break_type)
    used = used_break_minutes(entries)
    if config.break_duration > 0 and used + segment_limit > config.break_duration:
        raise attendance_error(
            "BREAK_LIMIT_REACHED",
            f"Daily break allowance exceeded ({used} of {config.break_duration} min used).",
        )
    return segment_limit


def start_break(
    db: Session,
    *,
    user_id: int,
    break_type: BreakType,
    now: datetime,
    config: AttendanceConfig,
) -> BreakEntry:
    record = _current_record(db, user_id=user_id, now=now, config=config)
    try:
        locked = lock_record(db, record.id)
        if locked is None:
            raise attendance_error("RECORD_NOT_FOUND", "Attendance record not found.")
        entries = list_breaks(db, locked.id)
        segment_limit = _validate_new_break(locked, entries, break_type=break_type, now=now, config=config)
        entry = BreakEntry(
            attendance_id=locked.id,
            user_id=locked.user_id,
            break_date=locked.attendance_date,
            break_type=break_type,
            break_start=now,
            duration_limit=segment_limit,
            penalty_minutes=0,
        )
        db.add(entry)
        locked.break_start = now
        locked.break_end = None
        db.commit()
    except ApiError:
        db.rollback()
        raise
    except Exception as exc:
        db.rollback()
        logger.exception("break_start_failed", extra={"user_id": user_id, "record_id": record.id})
        raise attendance_error("SYSTEM_ERROR", "Break could not be started. Please try again.") from exc

    logger.info(
        "break_started",
        extra={
            "user_id": user_id,
            "record_id": locked.id,
            "break_id": entry.id,
            "break_type": break_type.value,
            "duration_limit": segment_limit,
        },
    )
    events.break_updated(locked, entry, "started")
    return entry


def _apply_overage(
    db: Session,
    *,
    record: AttendanceRecord,
    entry: BreakEntry,
    config: AttendanceConfig,
) -> int:
    duration = entry.duration_minutes or 0
    if duration <= entry.duration_limit:
        return 0
    excess = duration - entry.duration_limit
    if config.break_alerts:
        notify_break_exceeded(db, record=record, entry=entry, excess_minutes=excess)
    if config.break_penalty:
        entry.penalty_minutes = excess
        append_note(record, f"Break overtime penalty: {excess} min deducted")
    return excess


def end_break(
    db: Session,
    *,
    user_id: int,
    now: datetime,
    config: AttendanceConfig,
) -> BreakEntry:
    record = _current_record(db, user_id=user_id, now=now, config=config)
    excess = 0
    try:
        locked = lock_record(db, record.id)
        if locked is None:
            raise attendance_error("RECORD_NOT_FOUND", "Attendance record not found.")
        entry = find_open_break(db, locked.id, for_update=True)
        if entry is None:
            raise attendance_error("NO_BREAK_FOUND", "You are not currently on break.")

        if config.auto_resume and derive_break_state(entry, now).expired:
            close_expired_break(db, record=locked, entry=entry, now=now)
            return entry

        duration = abs(minutes_between(entry.break_start, now))
        _close_entry(locked, entry, end_at=now, duration_minutes=duration)
        excess = _apply_overage(db, record=locked, entry=entry, config=config)
        db.commit()
    except ApiError:
        db.rollback()
        raise
    except Exception as exc:
        db.rollback()
        logger.exception("break_end_failed", extra={"user_id": user_id, "record_id": record.id})
        raise attendance_error("SYSTEM_ERROR", "Break could not be ended. Please try again.") from exc

    logger.info(
        "break_ended",
        extra={
            "user_id": user_id,
            "record_id": locked.id,
            "break_id": entry.id,
            "duration_minutes": entry.duration_minutes,
            "excess_minutes": excess,
        },
    )
    events.break_updated(locked, entry, "ended")
    return entry


def _serialize_entry(entry: BreakEntry, now: datetime) -> dict[str, Any]:
    state = derive_break_state(entry, now)
    return {
        "id": entry.id,
        "break_type": entry.break_type.value,
        "break_start": entry.break_start,
        "break_end": entry.break_end,
        "duration_minutes": entry.duration_minutes,
        "duration_limit": entry.duration_limit,
        "penalty_minutes": entry.penalty_minutes,
        "remaining_seconds": state.remaining_seconds,
    }


def describe_breaks(
    record: AttendanceRecord,
    entries: list[BreakEntry],
    *,
    now: datetime,
    config: AttendanceConfig,
) -> dict[str, Any]:
    window = break_window(_record_anchor_date(record), record.session, config)
    active = next((entry for entry in entries if entry.break_end is None), None)
    used_types = {entry.break_type for entry in entries}
    is_checked_in = record.time_in is not None and record.time_out is None

    can_start = is_checked_in and active is None
    if can_start:
        try:
            _validate_new_break(record, entries, break_type=BreakType.COFFEE, now=now, config=config)
        except ApiError:
            try:
                _validate_new_break(record, entries, break_type=BreakType.MEAL, now=now, config=config)
            except ApiError:
                can_start = False

    return {
        "attendance_id": record.id,
        "break_window": (
            {"start": window.start, "end": window.end, "is_open": window.start <= now < window.end}
            if window is not None
            else None
        ),
        "break_used_minutes": used_break_minutes(entries),
        "daily_limit_minutes": config.break_duration,
        "breaks_taken": len(entries),
        "break_remaining_seconds": derive_break_state(active, now).remaining_seconds if active is not None else 0,
        "coffee_used": BreakType.COFFEE in used_types,
        "meal_used": BreakType.MEAL in used_types,
        "is_on_break": active is not None,
        "can_start_break": can_start,
        "can_end_break": active is not None,
        "current_break": _serialize_entry(active, now) if active is not None else None,
        "breaks": [_serialize_entry(entry, now) for entry in entries],
    }


def get_break_status(
    db: Session,
    *,
    user_id: int,
    now: datetime,
    config: AttendanceConfig,
) -> dict[str, Any]:
    logical_day = resolve_logical_date(now, config.shift_boundary_hour)
    record = resolve_current_record(db, user_id=user_id, logical_day=logical_day, calendar_day=now.date())
    if record is None or record.time_in is None:
        return {
            "attendance_id": record.id if record is not None else None,
            "break_window": None,
            "break_used_minutes": 0,
            "daily_limit_minutes": config.break_duration,
            "breaks_taken": 0,
            "break_remaining_seconds": 0,
            "coffee_used": False,
            "meal_used": False,
            "is_on_break": False,
            "can_start_break": False,
            "can_end_break": False,
            "current_break": None,
            "breaks": [],
        }

    auto_end_expired_break(db, record=record, now=now, config=config)
    return describe_breaks(record, list_breaks(db, record.id), now=now, config=config)
