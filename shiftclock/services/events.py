from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from shiftclock.models import AttendanceRecord, BreakEntry, ShiftSession

logger = logging.getLogger("shiftclock.events")

ATTENDANCE_UPDATED = "attendance.updated"
BREAK_UPDATED = "break.updated"
SESSION_UPDATED = "session.updated"

EventHandler = Callable[["DomainEvent"], None]


@dataclass(frozen=True, slots=True)
class DomainEvent:
    name: str
    verb: str
    entity_id: int
    user_id: int | None
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


_handlers_lock = threading.Lock()
_handlers: dict[str, list[EventHandler]] = defaultdict(list)


def subscribe(event_name: str, handler: EventHandler) -> None:
    with _handlers_lock:
        _handlers[event_name].append(handler)


def unsubscribe(event_name: str, handler: EventHandler) -> None:
    with _handlers_lock:
        if handler in _handlers.get(event_name, []):
            _handlers[event_name].remove(handler)


def publish(event: DomainEvent) -> None:
    logger.info(
        "domain_event",
        extra={
            "event_name": event.name,
            "verb": event.verb,
            "entity_id": event.entity_id,
            "user_id": event.user_id,
        },
    )
    with _handlers_lock:
        handlers = list(_handlers.get(event.name, []))
    for handler in handlers:
        try:
            handler(event)
        except Exception:
            # The state change is already committed.
            logger.exception(
                "domain_event_handler_failed",
                extra={"event_name": event.name, "verb": event.verb, "entity_id": event.entity_id},
            )


def _record_payload(record: AttendanceRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "user_id": record.user_id,
        "session_id": record.session_id,
        "attendance_date": record.attendance_date,
        "status": record.status.value if record.status is not None else None,
        "time_in": record.time_in,
        "time_out": record.time_out,
        "break_start": record.break_start,
        "break_end": record.break_end,
        "minutes_late": record.minutes_late,
    }


def attendance_updated(record: AttendanceRecord, verb: str) -> None:
    publish(
        DomainEvent(
            name=ATTENDANCE_UPDATED,
            verb=verb,
            entity_id=record.id,
            user_id=record.user_id,
            payload=_record_payload(record),
        )
    )


def break_updated(record: AttendanceRecord, entry: BreakEntry, verb: str) -> None:
    payload = _record_payload(record)
    payload["break"] = {
        "id": entry.id,
        "break_type": entry.break_type.value,
        "break_start": entry.break_start,
        "break_end": entry.break_end,
        "duration_minutes": entry.duration_minutes,
        "duration_limit": entry.duration_limit,
        "penalty_minutes": entry.penalty_minutes,
    }
    publish(
        DomainEvent(
            name=BREAK_UPDATED,
            verb=verb,
            entity_id=record.id,
            user_id=record.user_id,
            payload=payload,
        )
    )


def session_updated(session: ShiftSession, verb: str) -> None:
    publish(
        DomainEvent(
            name=SESSION_UPDATED,
            verb=verb,
            entity_id=session.id,
            user_id=None,
            payload={
                "id": session.id,
                "schedule_id": session.schedule_id,
                "date": session.session_date,
                "status": session.status.value,
            },
        )
    )
