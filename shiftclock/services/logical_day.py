from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from shiftclock.models import SessionStatus
from shiftclock.settings import get_attendance_timezone

DEFAULT_SHIFT_BOUNDARY_HOUR = 14
CHECKIN_OPENS_BEFORE_START = timedelta(hours=5)
CHECKIN_CLOSES_AFTER_START = timedelta(hours=2, minutes=30)
EARLY_LEAVE_TOLERANCE = timedelta(minutes=5)


@dataclass(frozen=True, slots=True)
class ShiftWindow:
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


@dataclass(frozen=True, slots=True)
class CheckinWindow:
    opens_at: datetime
    closes_at: datetime
    grace_ends_at: datetime

    def to_dict(self) -> dict[str, str]:
        return {
            "opens_at": self.opens_at.isoformat(),
            "closes_at": self.closes_at.isoformat(),
            "grace_ends_at": self.grace_ends_at.isoformat(),
        }


def resolve_logical_date(now: datetime, boundary_hour: int = DEFAULT_SHIFT_BOUNDARY_HOUR) -> date:
    """Return the attendance day a wall-clock moment belongs to.

    Anything before ``boundary_hour`` is still part of the previous day's shift,
    so a 01:00 check-out lands on the night shift that started yesterday evening.
    """
    if now.hour < boundary_hour:
        return now.date() - timedelta(days=1)
    return now.date()


def crosses_midnight(time_in: time, time_out: time) -> bool:
    return time_out < time_in


def shift_window(session_date: date, time_in: time, time_out: time) -> ShiftWindow:
    start = datetime.combine(session_date, time_in)
    end = datetime.combine(session_date, time_out)
    if crosses_midnight(time_in, time_out):
        end += timedelta(days=1)
    return ShiftWindow(start=start, end=end)


def checkin_window(shift_start: datetime, grace_minutes: int) -> CheckinWindow:
    return CheckinWindow(
        opens_at=shift_start - CHECKIN_OPENS_BEFORE_START,
        closes_at=shift_start + CHECKIN_CLOSES_AFTER_START,
        grace_ends_at=shift_start + timedelta(minutes=max(0, grace_minutes)),
    )


def minutes_between(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


def derive_session_status(
    status: SessionStatus,
    session_date: date,
    schedule_times: tuple[time, time] | None,
    now: datetime,
) -> SessionStatus:
    if status == SessionStatus.LOCKED:
        return status

    if schedule_times is None:
        # Orphaned sessions only ever move forward to completed.
        if status in {SessionStatus.ACTIVE, SessionStatus.PENDING} and (now.date() - session_date).days > 1:
            return SessionStatus.COMPLETED
        return status

    window = shift_window(session_date, *schedule_times)
    if now < window.start:
        return SessionStatus.PENDING
    if now <= window.end:
        return SessionStatus.ACTIVE
    return SessionStatus.COMPLETED


def local_now() -> datetime:
    """Current wall-clock time in the attendance timezone, as a naive datetime."""
    return datetime.now(get_attendance_timezone()).replace(tzinfo=None, microsecond=0)
