from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from shiftclock.models import ShiftSession
from shiftclock.services.attendance_config import AttendanceConfig
from shiftclock.services.breaks import auto_end_expired_break, describe_breaks
from shiftclock.services.checkin import can_confirm
from shiftclock.services.logical_day import resolve_logical_date
from shiftclock.services.records import list_breaks, resolve_current_record
from shiftclock.services.sessions import auto_detect_sessions, resolve_session_for_now, sync_session_statuses


def _session_summary(session: ShiftSession | None) -> dict[str, Any] | None:
    if session is None:
        return None
    schedule = session.schedule
    return {
        "id": session.id,
        "date": session.session_date,
        "status": session.status.value,
        "schedule_id": session.schedule_id,
        "schedule_name": schedule.name if schedule is not None else None,
        "time_in": session.shift_time_in,
        "time_out": session.shift_time_out,
    }


def get_today_status(
    db: Session,
    *,
    user_id: int,
    now: datetime,
    config: AttendanceConfig,
) -> dict[str, Any]:
    sync_session_statuses(db, now=now)
    auto_detect_sessions(db, now=now, config=config)

    logical_day = resolve_logical_date(now, config.shift_boundary_hour)
    session = resolve_session_for_now(db, now=now, config=config)
    record = resolve_current_record(db, user_id=user_id, logical_day=logical_day, calendar_day=now.date())
    if session is None and record is not None and record.session is not None:
        session = record.session

    payload: dict[str, Any] = {
        "logical_date": logical_day,
        "session": _session_summary(session),
        "session_id": session.id if session is not None else None,
    }

    if record is None or record.time_in is None:
        if session is None:
            eligibility = {
                "can_confirm": False,
                "reason": "SESSION_NOT_FOUND",
                "message": "There is no attendance session open right now.",
            }
        else:
            eligibility = can_confirm(db, user_id=user_id, session_id=session.id, now=now, config=config)
        payload.update(
            {
                "has_record": False,
                "record_id": record.id if record is not None else None,
                "original_status": record.status.value if record is not None else None,
                "display_status": record.status.value if record is not None else "not_checked_in",
                "attendance_date": record.attendance_date if record is not None else None,
                "time_in": None,
                "time_out": None,
                "is_on_break": False,
                "break_remaining_seconds": 0,
                "has_checked_out": False,
                "can_check_in": eligibility["can_confirm"],
                "check_in_reason": eligibility["reason"],
                "message": eligibility["message"],
                "can_start_break": False,
                "can_end_break": False,
                "can_check_out": False,
            }
        )
        return payload

    auto_end_expired_break(db, record=record, now=now, config=config)
    break_info = describe_breaks(record, list_breaks(db, record.id), now=now, config=config)
    has_checked_out = record.time_out is not None
    eligibility = {
        "can_confirm": False,
        "reason": None if has_checked_out else "CURRENTLY_CHECKED_IN",
        "message": None,
    }
    if has_checked_out and session is not None:
        eligibility = can_confirm(db, user_id=user_id, session_id=session.id, now=now, config=config)
    payload.update(
        {
            "has_record": True,
            "record_id": record.id,
            "session_id": record.session_id,
            "original_status": record.status.value,
            "display_status": "on_break" if break_info["is_on_break"] else record.status.value,
            "attendance_date": record.attendance_date,
            "time_in": record.time_in,
            "time_out": record.time_out,
            "minutes_late": record.minutes_late,
            "hours_worked": record.hours_worked,
            "is_on_break": break_info["is_on_break"],
            "break_remaining_seconds": break_info["break_remaining_seconds"],
            "has_checked_out": has_checked_out,
            "can_check_in": eligibility["can_confirm"],
            "check_in_reason": eligibility["reason"],
            "message": eligibility["message"],
            "can_start_break": break_info["can_start_break"],
            "can_end_break": break_info["can_end_break"],
            "can_check_out": not has_checked_out,
        }
    )
    return payload
