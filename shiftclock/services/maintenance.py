from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from shiftclock.audit import log_audit
from shiftclock.models import (
    AttendanceRecord,
    AuditActorType,
    BreakEntry,
    RecordStatus,
    SessionStatus,
    ShiftSession,
)
from shiftclock.services import events
from shiftclock.services.attendance_config import AttendanceConfig
from shiftclock.services.breaks import close_expired_break
from shiftclock.services.checkout import finalize_record, record_shift_end
from shiftclock.services.notifications import notify_absent
from shiftclock.services.records import append_note
from shiftclock.services.sessions import sync_session_statuses

logger = logging.getLogger("shiftclock.maintenance")

AUTO_CHECKOUT_DELAY = timedelta(hours=1)
AUTO_CHECKOUT_NOTE = "Auto checked out by system"


@dataclass(slots=True)
class MaintenanceReport:
    sessions_synced: int = 0
    breaks_closed: list[int] = field(default_factory=list)
    records_checked_out: list[int] = field(default_factory=list)
    records_marked_absent: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessions_synced": self.sessions_synced,
            "breaks_closed": list(self.breaks_closed),
            "records_checked_out": list(self.records_checked_out),
            "records_marked_absent": list(self.records_marked_absent),
        }


def end_expired_breaks(db: Session, *, now: datetime) -> list[int]:
    entries = list(
        db.scalars(
            select(BreakEntry)
            .options(selectinload(BreakEntry.record))
            .where(BreakEntry.break_end.is_(None))
        ).all()
    )
    closed: list[int] = []
    for entry in entries:
        if close_expired_break(db, record=entry.record, entry=entry, now=now):
            closed.append(entry.id)
    return closed


def auto_checkout_overdue_records(db: Session, *, now: datetime, config: AttendanceConfig) -> list[int]:
    """Close records left open an hour past their shift end, at the shift end or at check-in if later."""
    if not config.auto_checkout:
        return []

    open_records = list(
        db.scalars(
            select(AttendanceRecord).where(
                AttendanceRecord.time_in.is_not(None),
                AttendanceRecord.time_out.is_(None),
                AttendanceRecord.status.in_([RecordStatus.PRESENT, RecordStatus.LATE]),
            )
        ).all()
    )
    checked_out: list[int] = []
    for record in open_records:
        shift_end = record_shift_end(record)
        if shift_end is None or now < shift_end + AUTO_CHECKOUT_DELAY:
            continue
        # time_out never precedes time_in.
        close_at = max(shift_end, record.time_in)
        try:
            finalize_record(db, record, time_out=close_at, config=config, classify_early_leave=False)
            record.auto_checkout = True
            append_note(record, AUTO_CHECKOUT_NOTE)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("auto_checkout_failed", extra={"record_id": record.id})
            continue

        checked_out.append(record.id)
        events.attendance_updated(record, "checked_out")
        log_audit(
            db,
            actor_type=AuditActorType.SYSTEM,
            actor_id="system",
            action="AUTO_CHECKOUT",
            success=True,
            entity_type="attendance_record",
            entity_id=str(record.id),
            details={"user_id": record.user_id, "time_out": close_at.isoformat()},
        )
    return checked_out


def absent_cutoff(session: ShiftSession, config: AttendanceConfig) -> datetime | None:
    if session.shift_time_in is None:
        return None
    shift_start = datetime.combine(session.session_date, session.shift_time_in)
    cutoff = datetime.combine(session.session_date, config.auto_absent_time)
    if cutoff <= shift_start:
        cutoff += timedelta(days=1)
    return cutoff


def mark_absent_records(db: Session, *, now: datetime, config: AttendanceConfig) -> list[int]:
    sessions = list(
        db.scalars(
            select(ShiftSession)
            .where(ShiftSession.status.in_([SessionStatus.ACTIVE, SessionStatus.COMPLETED]))
        ).all()
    )
    marked: list[int] = []
    for session in sessions:
        cutoff = absent_cutoff(session, config)
        if cutoff is None or now < cutoff:
            continue
        pending = list(
            db.scalars(
                select(AttendanceRecord).where(
                    AttendanceRecord.session_id == session.id,
                    AttendanceRecord.status == RecordStatus.PENDING,
                    AttendanceRecord.time_in.is_(None),
                )
            ).all()
        )
        for record in pending:
            record.status = RecordStatus.ABSENT
            if config.absent_alerts:
                notify_absent(db, record=record)
            marked.append(record.id)
        if pending:
            db.commit()
            for record in pending:
                events.attendance_updated(record, "marked_absent")
            logger.info(
                "records_marked_absent",
                extra={"session_id": session.id, "count": len(pending), "cutoff": cutoff},
            )
    return marked


def run_maintenance(db: Session, *, now: datetime, config: AttendanceConfig) -> MaintenanceReport:
    report = MaintenanceReport()
    report.breaks_closed = end_expired_breaks(db, now=now)
    report.records_checked_out = auto_checkout_overdue_records(db, now=now, config=config)
    report.sessions_synced = len(sync_session_statuses(db, now=now))
    report.records_marked_absent = mark_absent_records(db, now=now, config=config)
    logger.info("maintenance_run_complete", extra=report.to_dict())
    return report
