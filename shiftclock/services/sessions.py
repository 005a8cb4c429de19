from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from shiftclock.errors import ApiError, attendance_error
from shiftclock.models import (
    AttendanceRecord,
    RecordStatus,
    Schedule,
    SessionStatus,
    SessionType,
    ShiftSession,
    User,
)
from shiftclock.services import events
from shiftclock.services.attendance_config import AttendanceConfig
from shiftclock.services.logical_day import (
    checkin_window,
    derive_session_status,
    resolve_logical_date,
    shift_window,
)

logger = logging.getLogger("shiftclock.sessions")


def apply_derived_status(session: ShiftSession, now: datetime) -> bool:
    derived = derive_session_status(session.status, session.session_date, session.shift_times, now)
    if derived == session.status:
        return False
    session.status = derived
    if derived == SessionStatus.ACTIVE and session.opened_at is None:
        session.opened_at = now
    return True


def sync_session_statuses(db: Session, *, now: datetime) -> list[ShiftSession]:
    """Advance every open session to the status its shift window implies.

    Locked and completed sessions are left alone; rows are written only when
    the derived status differs from the stored one.
    """
    sessions = list(
        db.scalars(
            select(ShiftSession)
            .where(
                ShiftSession.status.not_in([SessionStatus.LOCKED, SessionStatus.COMPLETED]),
                ShiftSession.session_date <= now.date(),
            )
        ).all()
    )
    changed = [session for session in sessions if apply_derived_status(session, now)]
    if not changed:
        return []

    db.commit()
    for session in changed:
        logger.info(
            "session_status_synced",
            extra={"session_id": session.id, "status": session.status.value},
        )
        events.session_updated(session, "status_changed")
    return changed


def get_session_or_404(db: Session, session_id: int) -> ShiftSession:
    session = db.get(ShiftSession, session_id)
    if session is None:
        raise attendance_error("SESSION_NOT_FOUND", "Attendance session not found.")
    return session


def _create_placeholders(db: Session, session: ShiftSession, employee_ids: list[int]) -> int:
    unique_ids = sorted(set(employee_ids))
    if not unique_ids:
        return 0
    found_ids = set(db.scalars(select(User.id).where(User.id.in_(unique_ids))).all())
    missing = [item for item in unique_ids if item not in found_ids]
    if missing:
        raise attendance_error("USER_NOT_FOUND", f"Unknown employee ids: {', '.join(str(item) for item in missing)}.")
    for user_id in unique_ids:
        db.add(
            AttendanceRecord(
                session=session,
                user_id=user_id,
                attendance_date=session.session_date,
                status=RecordStatus.PENDING,
                minutes_late=0,
                overtime_minutes=0,
                auto_checkout=False,
            )
        )
    return len(unique_ids)


def create_session(
    db: Session,
    *,
    schedule_id: int,
    session_date: date,
    now: datetime,
    created_by: int | None = None,
    employee_ids: list[int] | None = None,
    session_type: SessionType = SessionType.MANUAL,
) -> ShiftSession:
    schedule = db.get(Schedule, schedule_id)
    if schedule is None:
        raise attendance_error("SCHEDULE_NOT_FOUND", "Schedule not found.")

    existing = db.scalar(
        select(ShiftSession).where(
            ShiftSession.schedule_id == schedule_id,
            ShiftSession.session_date == session_date,
        )
    )
    if existing is not None:
        raise attendance_error("SESSION_EXISTS", "A session for this schedule and date already exists.")

    session = ShiftSession(
        session_date=session_date,
        status=SessionStatus.PENDING,
        session_type=session_type,
        created_by=created_by,
    )
    session.capture_schedule(schedule)
    apply_derived_status(session, now)
    if session.opened_at is None and session_type == SessionType.MANUAL:
        session.opened_at = now
    db.add(session)
    try:
        placeholders = _create_placeholders(db, session, employee_ids or [])
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise attendance_error("SESSION_EXISTS", "A session for this schedule and date already exists.") from exc
    except Exception:
        db.rollback()
        raise

    db.refresh(session)
    logger.info(
        "session_created",
        extra={
            "session_id": session.id,
            "schedule_id": schedule_id,
            "date": session_date,
            "session_type": session_type.value,
            "placeholders": placeholders,
        },
    )
    events.session_updated(session, "created")
    return session


def list_sessions(
    db: Session,
    *,
    status: SessionStatus | None = None,
    session_date: date | None = None,
    schedule_id: int | None = None,
    limit: int = 100,
) -> list[ShiftSession]:
    stmt = select(ShiftSession).options(selectinload(ShiftSession.schedule))
    if status is not None:
        stmt = stmt.where(ShiftSession.status == status)
    if session_date is not None:
        stmt = stmt.where(ShiftSession.session_date == session_date)
    if schedule_id is not None:
        stmt = stmt.where(ShiftSession.schedule_id == schedule_id)
    stmt = stmt.order_by(ShiftSession.session_date.desc(), ShiftSession.id.desc()).limit(limit)
    return list(db.scalars(stmt).all())


def get_today_sessions(db: Session, *, now: datetime, config: AttendanceConfig) -> list[ShiftSession]:
    sync_session_statuses(db, now=now)
    logical_day = resolve_logical_date(now, config.shift_boundary_hour)
    return list(
        db.scalars(
            select(ShiftSession)
            .options(selectinload(ShiftSession.schedule))
            .where(ShiftSession.session_date.in_(sorted({logical_day, now.date()})))
            .order_by(ShiftSession.session_date.desc(), ShiftSession.id.asc())
        ).all()
    )


def lock_session(db: Session, *, session_id: int, now: datetime) -> ShiftSession:
    session = get_session_or_404(db, session_id)
    if session.status == SessionStatus.LOCKED:
        raise attendance_error("SESSION_ALREADY_LOCKED", "Session is already locked.")
    session.status = SessionStatus.LOCKED
    session.locked_at = now
    db.commit()
    logger.info("session_locked", extra={"session_id": session.id})
    events.session_updated(session, "locked")
    return session


def unlock_session(db: Session, *, session_id: int) -> ShiftSession:
    session = get_session_or_404(db, session_id)
    if session.status != SessionStatus.LOCKED:
        raise attendance_error("SESSION_NOT_LOCKED", "Session is not locked.")
    session.status = SessionStatus.ACTIVE
    session.locked_at = None
    db.commit()
    logger.info("session_unlocked", extra={"session_id": session.id, "status": session.status.value})
    events.session_updated(session, "unlocked")
    return session


def delete_session(db: Session, *, session_id: int) -> int:
    session = get_session_or_404(db, session_id)
    record_count = len(session.records)
    db.delete(session)
    db.commit()
    logger.info("session_deleted", extra={"session_id": session_id, "records_deleted": record_count})
    return record_count


def _candidate_dates(schedule: Schedule, logical_day: date, now: datetime) -> list[date]:
    # Day shifts before the boundary hour still start on the calendar date.
    dates = [now.date()]
    if logical_day != now.date():
        dates.append(logical_day)
    if schedule.is_overnight or schedule.time_out < schedule.time_in:
        dates.append(now.date() - timedelta(days=1))
    return list(dict.fromkeys(dates))


def auto_detect_sessions(db: Session, *, now: datetime, config: AttendanceConfig) -> list[ShiftSession]:
    """Open a session for every active schedule whose check-in window covers ``now``."""
    logical_day = resolve_logical_date(now, config.shift_boundary_hour)
    schedules = list(db.scalars(select(Schedule).where(Schedule.is_active.is_(True))).all())
    created: list[ShiftSession] = []
    for schedule in schedules:
        for session_date in _candidate_dates(schedule, logical_day, now):
            shift_start = shift_window(session_date, schedule.time_in, schedule.time_out).start
            window = checkin_window(shift_start, config.grace_period)
            if not window.opens_at <= now <= window.closes_at:
                continue
            exists = db.scalar(
                select(ShiftSession.id).where(
                    ShiftSession.schedule_id == schedule.id,
                    ShiftSession.session_date == session_date,
                )
            )
            if exists is not None:
                continue
            try:
                created.append(
                    create_session(
                        db,
                        schedule_id=schedule.id,
                        session_date=session_date,
                        now=now,
                        session_type=SessionType.AUTO,
                    )
                )
            except ApiError as exc:
                if exc.code != "SESSION_EXISTS":
                    raise
                # Another request created it first.
                logger.info(
                    "session_auto_detect_race",
                    extra={"schedule_id": schedule.id, "date": session_date},
                )
    return created


def resolve_session_for_now(db: Session, *, now: datetime, config: AttendanceConfig) -> ShiftSession | None:
    logical_day = resolve_logical_date(now, config.shift_boundary_hour)
    sessions = list(
        db.scalars(
            select(ShiftSession)
            .options(selectinload(ShiftSession.schedule))
            .where(ShiftSession.session_date.in_(sorted({now.date(), logical_day, logical_day - timedelta(days=1)})))
            .order_by(ShiftSession.session_date.desc(), ShiftSession.id.asc())
        ).all()
    )
    for session in sessions:
        if session.status == SessionStatus.ACTIVE:
            return session
    for session in sessions:
        times = session.shift_times
        if times is None or session.status == SessionStatus.COMPLETED:
            continue
        start = shift_window(session.session_date, *times).start
        window = checkin_window(start, config.grace_period)
        if window.opens_at <= now <= window.closes_at:
            return session
    for session in sessions:
        if session.session_date == logical_day:
            return session
    return None
