from __future__ import annotations

import unittest
from datetime import date, datetime, time

from shiftclock.models import SessionStatus
from shiftclock.services.logical_day import (
    checkin_window,
    derive_session_status,
    minutes_between,
    resolve_logical_date,
    shift_window,
)


class LogicalDateTests(unittest.TestCase):
    def test_early_morning_belongs_to_previous_day(self) -> None:
        self.assertEqual(resolve_logical_date(datetime(2026, 3, 2, 1, 0), 14), date(2026, 3, 1))

    def test_afternoon_belongs_to_same_day(self) -> None:
        self.assertEqual(resolve_logical_date(datetime(2026, 3, 2, 15, 0), 14), date(2026, 3, 2))

    def test_boundary_hour_itself_starts_the_new_day(self) -> None:
        self.assertEqual(resolve_logical_date(datetime(2026, 3, 2, 14, 0), 14), date(2026, 3, 2))
        self.assertEqual(resolve_logical_date(datetime(2026, 3, 2, 13, 59), 14), date(2026, 3, 1))

    def test_zero_boundary_is_calendar_day(self) -> None:
        self.assertEqual(resolve_logical_date(datetime(2026, 3, 2, 0, 5), 0), date(2026, 3, 2))


class ShiftWindowTests(unittest.TestCase):
    def test_overnight_window_ends_next_day(self) -> None:
        window = shift_window(date(2026, 3, 2), time(22, 0), time(6, 0))
        self.assertEqual(window.start, datetime(2026, 3, 2, 22, 0))
        self.assertEqual(window.end, datetime(2026, 3, 3, 6, 0))

    def test_day_window_stays_on_session_date(self) -> None:
        window = shift_window(date(2026, 3, 2), time(9, 0), time(18, 0))
        self.assertEqual(window.end, datetime(2026, 3, 2, 18, 0))
        self.assertTrue(window.contains(datetime(2026, 3, 2, 12, 0)))
        self.assertFalse(window.contains(datetime(2026, 3, 2, 18, 1)))

    def test_checkin_window_bounds(self) -> None:
        window = checkin_window(datetime(2026, 3, 2, 9, 0), 15)
        self.assertEqual(window.opens_at, datetime(2026, 3, 2, 4, 0))
        self.assertEqual(window.closes_at, datetime(2026, 3, 2, 11, 30))
        self.assertEqual(window.grace_ends_at, datetime(2026, 3, 2, 9, 15))

    def test_minutes_between_floors_partial_minutes(self) -> None:
        self.assertEqual(minutes_between(datetime(2026, 3, 2, 9, 0), datetime(2026, 3, 2, 9, 1, 59)), 1)


class DeriveSessionStatusTests(unittest.TestCase):
    def test_locked_is_never_changed(self) -> None:
        status = derive_session_status(
            SessionStatus.LOCKED,
            date(2026, 3, 2),
            (time(9, 0), time(18, 0)),
            datetime(2026, 3, 5, 12, 0),
        )
        self.assertEqual(status, SessionStatus.LOCKED)

    def test_follows_shift_window(self) -> None:
        times = (time(22, 0), time(6, 0))
        session_date = date(2026, 3, 2)
        self.assertEqual(
            derive_session_status(SessionStatus.PENDING, session_date, times, datetime(2026, 3, 2, 21, 0)),
            SessionStatus.PENDING,
        )
        self.assertEqual(
            derive_session_status(SessionStatus.PENDING, session_date, times, datetime(2026, 3, 3, 2, 0)),
            SessionStatus.ACTIVE,
        )
        self.assertEqual(
            derive_session_status(SessionStatus.ACTIVE, session_date, times, datetime(2026, 3, 3, 6, 1)),
            SessionStatus.COMPLETED,
        )

    def test_orphaned_session_completes_after_a_day(self) -> None:
        session_date = date(2026, 3, 2)
        self.assertEqual(
            derive_session_status(SessionStatus.ACTIVE, session_date, None, datetime(2026, 3, 3, 12, 0)),
            SessionStatus.ACTIVE,
        )
        self.assertEqual(
            derive_session_status(SessionStatus.ACTIVE, session_date, None, datetime(2026, 3, 4, 12, 0)),
            SessionStatus.COMPLETED,
        )


if __name__ == "__main__":
    unittest.main()
