from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from shiftclock.models import (
    AttendanceRecord,
    BreakEntry,
    Notification,
    NotificationKind,
    User,
    UserRole,
)

logger = logging.getLogger("shiftclock.notifications")


def _active_admin_ids(db: Session) -> list[int]:
    return list(
        db.scalars(
            select(User.id).where(
                User.role == UserRole.ADMIN,
                User.is_active.is_(True),
            )
        ).all()
    )


def notify_admins(
    db: Session,
    *,
    kind: NotificationKind,
    title: str,
    body: str,
    payload: dict[str, Any],
) -> int:
    """Queue one notification row per active admin; the caller owns the commit."""
    admin_ids = _active_admin_ids(db)
    for admin_id in admin_ids:
        db.add(
            Notification(
                recipient_user_id=admin_id,
                kind=kind,
                title=title,
                body=body,
                payload=payload,
            )
        )
    logger.info(
        "admin_notification_queued",
        extra={"kind": kind.value, "recipients": len(admin_ids), "payload": payload},
    )
    return len(admin_ids)


def _user_label(record: AttendanceRecord) -> str:
    if record.user is not None:
        return record.user.full_name
    return f"User #{record.user_id}"


def notify_break_exceeded(db: Session, *, record: AttendanceRecord, entry: BreakEntry, excess_minutes: int) -> int:
    return notify_admins(
        db,
        kind=NotificationKind.BREAK_EXCEEDED,
        title="Break Exceeded",
        body=f"{_user_label(record)} exceeded their {entry.break_type.value} break by {excess_minutes} min.",
        payload={
            "record_id": record.id,
            "user_id": record.user_id,
            "break_id": entry.id,
            "break_type": entry.break_type.value,
            "excess_minutes": excess_minutes,
        },
    )


def notify_late_arrival(db: Session, *, record: AttendanceRecord) -> int:
    return notify_admins(
        db,
        kind=NotificationKind.LATE_ARRIVAL,
        title="Late Arrival",
        body=f"{_user_label(record)} was {record.minutes_late}m late.",
        payload={
            "record_id": record.id,
            "user_id": record.user_id,
            "minutes_late": record.minutes_late,
        },
    )


def notify_absent(db: Session, *, record: AttendanceRecord) -> int:
    return notify_admins(
        db,
        kind=NotificationKind.ABSENT,
        title="Absent Alert",
        body=f"{_user_label(record)} marked absent for {record.attendance_date.strftime('%b %d')}.",
        payload={
            "record_id": record.id,
            "user_id": record.user_id,
            "attendance_date": record.attendance_date.isoformat(),
        },
    )


def list_notifications(db: Session, *, user_id: int, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    stmt = select(Notification).where(Notification.recipient_user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.read_at.is_(None))
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
    return list(db.scalars(stmt).all())
