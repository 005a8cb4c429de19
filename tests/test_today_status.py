from __future__ import annotations

import unittest
from datetime import date, datetime, time

from shiftclock.models import BreakType
from shiftclock.services.attendance_config import AttendanceConfig
from shiftclock.services.breaks import start_break
from shiftclock.services.checkin import confirm_attendance
from shiftclock.services.checkout import check_out
from shiftclock.services.locks import InMemoryLockProvider
from shiftclock.services.status import get_today_status

from attendance_fixtures import add_schedule, add_session, add_user, make_engine, make_session_factory

SHIFT_DAY = date(2026, 3, 2)


class TodayStatusTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine()
        self.db = make_session_factory(self.engine)()
        self.config = AttendanceConfig()
        self.user = add_user(self.db)

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def _status(self, now: datetime) -> dict:
        return get_today_status(self.db, user_id=self.user.id, now=now, config=self.config)

    def test_no_session_reports_reason(self) -> None:
        payload = self._status(datetime(2026, 3, 2, 9, 0))

        self.assertIsNone(payload["session"])
        self.assertFalse(payload["has_record"])
        self.assertFalse(payload["can_check_in"])
        self.assertEqual(payload["check_in_reason"], "SESSION_NOT_FOUND")
        self.assertEqual(payload["display_status"], "not_checked_in")

    def test_open_session_allows_check_in(self) -> None:
        session = add_session(self.db, add_schedule(self.db), SHIFT_DAY)
        payload = self._status(datetime(2026, 3, 2, 8, 30))

        self.assertEqual(payload["session_id"], session.id)
        self.assertEqual(payload["session"]["status"], "pending")
        self.assertTrue(payload["can_check_in"])
        self.assertFalse(payload["can_check_out"])
        self.assertFalse(payload["can_start_break"])

    def test_on_break_overrides_display_status(self) -> None:
        session = add_session(self.db, add_schedule(self.db), SHIFT_DAY)
        confirm_attendance(
            self.db,
            user_id=self.user.id,
            session_id=session.id,
            now=datetime(2026, 3, 2, 9, 0),
            config=self.config,
            lock_provider=InMemoryLockProvider(),
        )
        start_break(
            self.db,
            user_id=self.user.id,
            break_type=BreakType.COFFEE,
            now=datetime(2026, 3, 2, 10, 0),
            config=self.config,
        )

        payload = self._status(datetime(2026, 3, 2, 10, 5))

        self.assertTrue(payload["has_record"])
        self.assertEqual(payload["original_status"], "present")
        self.assertEqual(payload["display_status"], "on_break")
        self.assertEqual(payload["break_remaining_seconds"], 600)
        self.assertTrue(payload["can_end_break"])
        self.assertTrue(payload["can_check_out"])
        self.assertFalse(payload["can_check_in"])
        self.assertEqual(payload["check_in_reason"], "CURRENTLY_CHECKED_IN")

    def test_checked_out_record_is_final(self) -> None:
        session = add_session(self.db, add_schedule(self.db), SHIFT_DAY)
        record = confirm_attendance(
            self.db,
            user_id=self.user.id,
            session_id=session.id,
            now=datetime(2026, 3, 2, 9, 0),
            config=self.config,
            lock_provider=InMemoryLockProvider(),
        )
        check_out(
            self.db,
            user_id=self.user.id,
            record_id=record.id,
            now=datetime(2026, 3, 2, 18, 0),
            config=self.config,
        )

        payload = self._status(datetime(2026, 3, 2, 18, 30))

        self.assertEqual(payload["record_id"], record.id)
        self.assertTrue(payload["has_checked_out"])
        self.assertFalse(payload["can_check_out"])
        self.assertFalse(payload["can_check_in"])
        self.assertEqual(payload["hours_worked"], 9.0)

    def _work_morning_shift(self, session_id: int, day: date) -> int:
        record = confirm_attendance(
            self.db,
            user_id=self.user.id,
            session_id=session_id,
            now=datetime.combine(day, time(8, 0)),
            config=self.config,
            lock_provider=InMemoryLockProvider(),
        )
        check_out(
            self.db,
            user_id=self.user.id,
            record_id=record.id,
            now=datetime.combine(day, time(12, 0)),
            config=self.config,
        )
        return record.id

    def test_morning_shift_stays_visible_after_check_out_before_boundary(self) -> None:
        schedule = add_schedule(self.db, time_in=time(8, 0), time_out=time(12, 0), name="Morning")
        session = add_session(self.db, schedule, SHIFT_DAY)
        record_id = self._work_morning_shift(session.id, SHIFT_DAY)

        payload = self._status(datetime(2026, 3, 2, 12, 30))

        self.assertEqual(payload["logical_date"], date(2026, 3, 1))
        self.assertTrue(payload["has_record"])
        self.assertEqual(payload["record_id"], record_id)
        self.assertTrue(payload["has_checked_out"])
        self.assertEqual(payload["hours_worked"], 4.0)
        self.assertEqual(payload["session_id"], session.id)
        self.assertEqual(payload["session"]["id"], session.id)
        self.assertFalse(payload["can_check_in"])

    def test_todays_record_wins_over_previous_logical_day(self) -> None:
        schedule = add_schedule(self.db, time_in=time(8, 0), time_out=time(12, 0), name="Morning")
        yesterday = add_session(self.db, schedule, date(2026, 3, 1))
        today = add_session(self.db, schedule, SHIFT_DAY)
        self._work_morning_shift(yesterday.id, date(2026, 3, 1))
        today_record_id = self._work_morning_shift(today.id, SHIFT_DAY)

        payload = self._status(datetime(2026, 3, 2, 12, 30))

        self.assertEqual(payload["record_id"], today_record_id)
        self.assertEqual(payload["attendance_date"], SHIFT_DAY)


if __name__ == "__main__":
    unittest.main()
