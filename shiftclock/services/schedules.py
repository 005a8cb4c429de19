from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from shiftclock.errors import attendance_error
from shiftclock.models import Schedule
from shiftclock.schemas import ScheduleCreate

logger = logging.getLogger("shiftclock.schedules")


def list_schedules(db: Session, *, include_inactive: bool = False) -> list[Schedule]:
    stmt = select(Schedule)
    if not include_inactive:
        stmt = stmt.where(Schedule.is_active.is_(True))
    return list(db.scalars(stmt.order_by(Schedule.time_in.asc(), Schedule.id.asc())).all())


def create_schedule(db: Session, *, payload: ScheduleCreate) -> Schedule:
    schedule = Schedule(**payload.model_dump())
    db.add(schedule)
    db.commit()
    db.refresh(schedule)
    logger.info("schedule_created", extra={"schedule_id": schedule.id, "schedule_name": schedule.name})
    return schedule


def update_schedule(db: Session, *, schedule_id: int, payload: ScheduleCreate) -> Schedule:
    """Replace a schedule's definition; only sessions created afterwards use the new times."""
    schedule = db.get(Schedule, schedule_id)
    if schedule is None:
        raise attendance_error("SCHEDULE_NOT_FOUND", "Schedule not found.")
    for field_name, value in payload.model_dump().items():
        setattr(schedule, field_name, value)
    db.commit()
    db.refresh(schedule)
    logger.info("schedule_updated", extra={"schedule_id": schedule.id})
    return schedule
