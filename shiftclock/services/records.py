from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from shiftclock.models import AttendanceRecord, BreakEntry, RecordStatus
from shiftclock.services.logical_day import minutes_between

MINUTES_PER_DAY = 1440
NOTE_SEPARATOR = " | "

# Statuses that mean the employee never actually started the shift.
PLACEHOLDER_STATUSES = frozenset({RecordStatus.PENDING, RecordStatus.ABSENT})
NOT_WORKING_STATUSES = frozenset({RecordStatus.PENDING, RecordStatus.ABSENT, RecordStatus.EXCUSED})

RecordLookup = Callable[[Session, int, Sequence[date]], AttendanceRecord | None]


def find_open_record(db: Session, user_id: int, _days: Sequence[date] = ()) -> AttendanceRecord | None:
    return db.scalar(
        select(AttendanceRecord)
        .where(
            AttendanceRecord.user_id == user_id,
            AttendanceRecord.time_in.is_not(None),
            AttendanceRecord.time_out.is_(None),
            AttendanceRecord.status.not_in(list(NOT_WORKING_STATUSES)),
        )
        .order_by(AttendanceRecord.time_in.desc(), AttendanceRecord.id.desc())
        .limit(1)
    )


def find_record_for_days(db: Session, user_id: int, days: Sequence[date]) -> AttendanceRecord | None:
    """Latest worked record dated on any of ``days``, else the newest placeholder."""
    return db.scalar(
        select(AttendanceRecord)
        .where(
            AttendanceRecord.user_id == user_id,
            AttendanceRecord.attendance_date.in_(list(days)),
        )
        .order_by(
            AttendanceRecord.time_in.is_(None),
            AttendanceRecord.time_in.desc(),
            AttendanceRecord.id.desc(),
        )
        .limit(1)
    )


CURRENT_RECORD_LOOKUPS: tuple[RecordLookup, ...] = (find_open_record, find_record_for_days)


def resolve_current_record(
    db: Session,
    *,
    user_id: int,
    logical_day: date,
    calendar_day: date | None = None,
    lookups: Sequence[RecordLookup] = CURRENT_RECORD_LOOKUPS,
) -> AttendanceRecord | None:
    """Try each lookup in order and return the first hit.

    An open record always wins over a date match so that an employee who is
    mid-shift across midnight keeps working on the same record. Date matches
    cover the logical day and the calendar day, so a day shift that ended
    before the boundary hour is still found after check-out.
    """
    days = [logical_day]
    if calendar_day is not None and calendar_day != logical_day:
        days.append(calendar_day)
    for lookup in lookups:
        record = lookup(db, user_id, days)
        if record is not None:
            return record
    return None


def lock_record(db: Session, record_id: int) -> AttendanceRecord | None:
    return db.scalar(
        select(AttendanceRecord)
        .where(AttendanceRecord.id == record_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


def find_open_break(db: Session, record_id: int, *, for_update: bool = False) -> BreakEntry | None:
    stmt = (
        select(BreakEntry)
        .where(
            BreakEntry.attendance_id == record_id,
            BreakEntry.break_end.is_(None),
        )
        .order_by(BreakEntry.break_start.desc(), BreakEntry.id.desc())
        .limit(1)
    )
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return db.scalar(stmt)


def list_breaks(db: Session, record_id: int) -> list[BreakEntry]:
    return list(
        db.scalars(
            select(BreakEntry)
            .where(BreakEntry.attendance_id == record_id)
            .order_by(BreakEntry.break_start.asc(), BreakEntry.id.asc())
        ).all()
    )


def gross_minutes(time_in: datetime, time_out: datetime) -> int:
    return minutes_between(time_in, time_out) % MINUTES_PER_DAY


def break_minutes(record: AttendanceRecord, entries: Sequence[BreakEntry]) -> int:
    total = sum(entry.duration_minutes or 0 for entry in entries if entry.break_end is not None)
    if total == 0 and not entries and record.break_start is not None and record.break_end is not None:
        total = abs(minutes_between(record.break_start, record.break_end))
    return total


def compute_hours_worked(record: AttendanceRecord, entries: Sequence[BreakEntry]) -> float | None:
    if record.time_in is None or record.time_out is None:
        return None
    worked = max(0, gross_minutes(record.time_in, record.time_out) - break_minutes(record, entries))
    return round(worked / 60, 2)


def append_note(record: AttendanceRecord, note: str) -> None:
    if record.notes:
        record.notes = f"{record.notes}{NOTE_SEPARATOR}{note}"
    else:
        record.notes = note


def list_user_records(
    db: Session,
    *,
    user_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    limit: int = 100,
) -> list[AttendanceRecord]:
    stmt = select(AttendanceRecord).where(AttendanceRecord.user_id == user_id)
    if start_date is not None:
        stmt = stmt.where(AttendanceRecord.attendance_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(AttendanceRecord.attendance_date <= end_date)
    stmt = stmt.order_by(AttendanceRecord.attendance_date.desc(), AttendanceRecord.id.desc()).limit(limit)
    return list(db.scalars(stmt).all())
