from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from shiftclock.errors import attendance_error
from shiftclock.models import AttendanceRecord, ShiftSession, User
from shiftclock.schemas import AdminRecordCreate, AdminRecordUpdate
from shiftclock.services import events
from shiftclock.services.attendance_config import AttendanceConfig
from shiftclock.services.checkout import compute_overtime, record_shift_end
from shiftclock.services.records import append_note, compute_hours_worked, list_breaks

logger = logging.getLogger("shiftclock.admin_records")


def _get_record_or_404(db: Session, record_id: int) -> AttendanceRecord:
    record = db.get(AttendanceRecord, record_id)
    if record is None:
        raise attendance_error("RECORD_NOT_FOUND", "Attendance record not found.")
    return record


def _recalculate(db: Session, record: AttendanceRecord, config: AttendanceConfig) -> None:
    db.flush()
    record.hours_worked = compute_hours_worked(record, list_breaks(db, record.id))
    shift_end = record_shift_end(record)
    if record.time_out is not None and shift_end is not None:
        record.overtime_minutes, record.overtime_status = compute_overtime(shift_end, record.time_out, config)


def create_manual_record(
    db: Session,
    *,
    payload: AdminRecordCreate,
    admin_id: int,
    config: AttendanceConfig,
) -> AttendanceRecord:
    if db.get(User, payload.user_id) is None:
        raise attendance_error("USER_NOT_FOUND", "Employee not found.")
    if payload.session_id is not None and db.get(ShiftSession, payload.session_id) is None:
        raise attendance_error("SESSION_NOT_FOUND", "Attendance session not found.")

    existing = db.scalar(
        select(AttendanceRecord.id).where(
            AttendanceRecord.user_id == payload.user_id,
            AttendanceRecord.attendance_date == payload.attendance_date,
        )
    )
    if existing is not None:
        raise attendance_error("DUPLICATE_RECORD", "An attendance record already exists for this employee and date.")

    record = AttendanceRecord(
        user_id=payload.user_id,
        session_id=payload.session_id,
        attendance_date=payload.attendance_date,
        status=payload.status,
        time_in=payload.time_in,
        time_out=payload.time_out,
        confirmed_at=payload.time_in,
        minutes_late=0,
        overtime_minutes=0,
        auto_checkout=False,
        notes=payload.notes,
    )
    db.add(record)
    _recalculate(db, record, config)
    append_note(record, f"Created manually by admin #{admin_id}")
    db.commit()
    db.refresh(record)

    logger.info(
        "attendance_record_created_manually",
        extra={"record_id": record.id, "user_id": record.user_id, "admin_id": admin_id},
    )
    events.attendance_updated(record, "admin_created")
    return record


def update_record(
    db: Session,
    *,
    record_id: int,
    payload: AdminRecordUpdate,
    admin_id: int,
    config: AttendanceConfig,
) -> AttendanceRecord:
    record = _get_record_or_404(db, record_id)
    changes = payload.model_dump(exclude_unset=True, exclude={"reason"})

    for field_name in ("status", "time_in", "time_out", "excuse_reason", "overtime_status", "notes"):
        if field_name in changes:
            setattr(record, field_name, changes[field_name])

    if record.time_in is not None and record.time_out is not None and record.time_out <= record.time_in:
        raise attendance_error("VALIDATION_ERROR", "time_out must be after time_in.")

    if "time_in" in changes or "time_out" in changes:
        overtime_override = changes.get("overtime_status")
        _recalculate(db, record, config)
        if overtime_override is not None:
            record.overtime_status = overtime_override

    append_note(record, f"Edited by admin #{admin_id}: {payload.reason}")
    db.commit()
    db.refresh(record)

    logger.info(
        "attendance_record_updated",
        extra={"record_id": record.id, "admin_id": admin_id, "fields": sorted(changes)},
    )
    events.attendance_updated(record, "admin_updated")
    return record


def delete_record(db: Session, *, record_id: int) -> None:
    record = _get_record_or_404(db, record_id)
    db.delete(record)
    db.commit()
    logger.info("attendance_record_deleted", extra={"record_id": record_id})
