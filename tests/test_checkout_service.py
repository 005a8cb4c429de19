from __future__ import annotations

import unittest
from datetime import date, datetime, time
from unittest.mock import patch

from shiftclock.errors import ApiError
from shiftclock.models import AttendanceRecord, BreakType, OvertimeStatus, RecordStatus, UserRole
from shiftclock.schemas import ScheduleCreate
from shiftclock.services.attendance_config import AttendanceConfig
from shiftclock.services.breaks import end_break, start_break
from shiftclock.services.checkin import confirm_attendance
from shiftclock.services.checkout import apply_overtime_rounding, check_out, compute_overtime
from shiftclock.services.locks import InMemoryLockProvider
from shiftclock.services.schedules import update_schedule

from attendance_fixtures import add_schedule, add_session, add_user, make_engine, make_session_factory

SHIFT_DAY = date(2026, 3, 2)


class OvertimeRoundingTests(unittest.TestCase):
    def test_rounding_rules(self) -> None:
        self.assertEqual(apply_overtime_rounding(80, "none"), 80)
        self.assertEqual(apply_overtime_rounding(80, "down_15"), 75)
        self.assertEqual(apply_overtime_rounding(80, "up_15"), 90)
        self.assertEqual(apply_overtime_rounding(82, "nearest_15"), 75)
        self.assertEqual(apply_overtime_rounding(83, "nearest_15"), 90)
        self.assertEqual(apply_overtime_rounding(80, "down_0"), 80)
        self.assertEqual(apply_overtime_rounding(80, "sideways_15"), 80)

    def test_threshold_and_approval(self) -> None:
        shift_end = datetime(2026, 3, 2, 18, 0)
        disabled = AttendanceConfig(allow_overtime=False)
        self.assertEqual(compute_overtime(shift_end, datetime(2026, 3, 2, 20, 0), disabled), (0, OvertimeStatus.NONE))

        config = AttendanceConfig(allow_overtime=True, min_overtime_minutes=60, require_ot_approval=False)
        self.assertEqual(compute_overtime(shift_end, datetime(2026, 3, 2, 18, 59), config), (0, OvertimeStatus.NONE))
        self.assertEqual(
            compute_overtime(shift_end, datetime(2026, 3, 2, 19, 10), config),
            (70, OvertimeStatus.APPROVED),
        )


class CheckoutServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine()
        self.db = make_session_factory(self.engine)()
        self.locks = InMemoryLockProvider()
        self.config = AttendanceConfig()
        self.user = add_user(self.db)
        self.schedule = add_schedule(self.db, time_in=time(9, 0), time_out=time(18, 0))
        self.session = add_session(self.db, self.schedule, SHIFT_DAY)

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def _check_in(self, session_id: int, now: datetime) -> AttendanceRecord:
        return confirm_attendance(
            self.db,
            user_id=self.user.id,
            session_id=session_id,
            now=now,
            config=self.config,
            lock_provider=self.locks,
        )

    def _check_out(self, record: AttendanceRecord, now: datetime, config: AttendanceConfig | None = None) -> AttendanceRecord:
        return check_out(
            self.db,
            user_id=self.user.id,
            record_id=record.id,
            now=now,
            config=config or self.config,
        )

    def test_full_day_hours(self) -> None:
        record = self._check_in(self.session.id, datetime(2026, 3, 2, 9, 0))
        done = self._check_out(record, datetime(2026, 3, 2, 18, 0))
        self.assertEqual(done.hours_worked, 9.0)
        self.assertEqual(done.status, RecordStatus.PRESENT)
        self.assertEqual(done.overtime_minutes, 0)

    def test_second_checkout_is_rejected(self) -> None:
        record = self._check_in(self.session.id, datetime(2026, 3, 2, 9, 0))
        self._check_out(record, datetime(2026, 3, 2, 18, 0))
        with self.assertRaises(ApiError) as ctx:
            self._check_out(record, datetime(2026, 3, 2, 18, 5))
        self.assertEqual(ctx.exception.code, "ALREADY_CHECKED_OUT")

    def test_overnight_shift_hours(self) -> None:
        night = add_schedule(self.db, time_in=time(22, 0), time_out=time(6, 0), name="Night")
        night_session = add_session(self.db, night, SHIFT_DAY)
        record = self._check_in(night_session.id, datetime(2026, 3, 2, 21, 50))
        done = self._check_out(record, datetime(2026, 3, 3, 6, 10))
        self.assertEqual(done.attendance_date, SHIFT_DAY)
        self.assertEqual(done.hours_worked, 8.33)
        self.assertEqual(done.status, RecordStatus.PRESENT)

    def test_breaks_are_deducted(self) -> None:
        record = self._check_in(self.session.id, datetime(2026, 3, 2, 9, 0))
        start_break(self.db, user_id=self.user.id, break_type=BreakType.MEAL, now=datetime(2026, 3, 2, 12, 0), config=self.config)
        end_break(self.db, user_id=self.user.id, now=datetime(2026, 3, 2, 12, 30), config=self.config)
        done = self._check_out(record, datetime(2026, 3, 2, 18, 0))
        self.assertEqual(done.hours_worked, 8.5)

    def test_open_break_is_closed_at_checkout(self) -> None:
        record = self._check_in(self.session.id, datetime(2026, 3, 2, 9, 0))
        start_break(self.db, user_id=self.user.id, break_type=BreakType.COFFEE, now=datetime(2026, 3, 2, 17, 50), config=self.config)
        done = self._check_out(record, datetime(2026, 3, 2, 18, 0))
        self.assertEqual(done.break_end, datetime(2026, 3, 2, 18, 0))
        self.assertEqual(done.hours_worked, 8.83)
        self.assertTrue(all(entry.break_end is not None for entry in done.breaks))

    def test_leaving_early_beyond_tolerance(self) -> None:
        record = self._check_in(self.session.id, datetime(2026, 3, 2, 9, 0))
        done = self._check_out(record, datetime(2026, 3, 2, 17, 54))
        self.assertEqual(done.status, RecordStatus.LEFT_EARLY)

    def test_leaving_within_tolerance_keeps_status(self) -> None:
        record = self._check_in(self.session.id, datetime(2026, 3, 2, 9, 20))
        done = self._check_out(record, datetime(2026, 3, 2, 17, 56))
        self.assertEqual(done.status, RecordStatus.LATE)

    def test_overtime_recorded_with_rounding(self) -> None:
        config = AttendanceConfig(allow_overtime=True, min_overtime_minutes=60, ot_rounding="down_15")
        record = self._check_in(self.session.id, datetime(2026, 3, 2, 9, 0))
        done = self._check_out(record, datetime(2026, 3, 2, 19, 20), config)
        self.assertEqual(done.overtime_minutes, 75)
        self.assertEqual(done.overtime_status, OvertimeStatus.PENDING)

    def test_record_too_old(self) -> None:
        record = self._check_in(self.session.id, datetime(2026, 3, 2, 9, 0))
        with self.assertRaises(ApiError) as ctx:
            self._check_out(record, datetime(2026, 3, 6, 15, 0))
        self.assertEqual(ctx.exception.code, "RECORD_TOO_OLD")

    def test_other_users_record_is_forbidden(self) -> None:
        record = self._check_in(self.session.id, datetime(2026, 3, 2, 9, 0))
        other = add_user(self.db, full_name="Ben Cruz")
        with self.assertRaises(ApiError) as ctx:
            check_out(self.db, user_id=other.id, record_id=record.id, now=datetime(2026, 3, 2, 18, 0), config=self.config)
        self.assertEqual(ctx.exception.code, "FORBIDDEN")

        admin = add_user(self.db, full_name="Site Admin", role=UserRole.ADMIN)
        done = check_out(
            self.db,
            user_id=admin.id,
            record_id=record.id,
            now=datetime(2026, 3, 2, 18, 0),
            config=self.config,
            acting_role=UserRole.ADMIN,
        )
        self.assertEqual(done.user_id, self.user.id)
        self.assertIsNotNone(done.time_out)

    def test_schedule_edit_after_check_in_does_not_move_shift_end(self) -> None:
        record = self._check_in(self.session.id, datetime(2026, 3, 2, 9, 0))
        update_schedule(
            self.db,
            schedule_id=self.schedule.id,
            payload=ScheduleCreate(name="Day shift", time_in=time(9, 0), time_out=time(21, 0)),
        )

        done = self._check_out(record, datetime(2026, 3, 2, 18, 0))

        self.assertEqual(done.status, RecordStatus.PRESENT)
        self.db.refresh(self.session)
        self.assertEqual(self.session.shift_time_out, time(18, 0))
        self.assertEqual(self.schedule.time_out, time(21, 0))

    def test_failure_while_finalizing_rolls_back(self) -> None:
        record = self._check_in(self.session.id, datetime(2026, 3, 2, 9, 0))

        def write_then_fail(db, locked, **kwargs):  # type: ignore[no-untyped-def]
            locked.time_out = kwargs["time_out"]
            raise RuntimeError("connection reset")

        with patch("shiftclock.services.checkout.finalize_record", side_effect=write_then_fail):
            with self.assertRaises(ApiError) as ctx:
                self._check_out(record, datetime(2026, 3, 2, 18, 0))

        self.assertEqual(ctx.exception.code, "SYSTEM_ERROR")
        self.db.refresh(record)
        self.assertIsNone(record.time_out)
        self.assertIsNone(record.hours_worked)

        done = self._check_out(record, datetime(2026, 3, 2, 18, 1))
        self.assertEqual(done.time_out, datetime(2026, 3, 2, 18, 1))

    def test_unknown_record(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            check_out(self.db, user_id=self.user.id, record_id=404, now=datetime(2026, 3, 2, 18, 0), config=self.config)
        self.assertEqual(ctx.exception.code, "RECORD_NOT_FOUND")


if __name__ == "__main__":
    unittest.main()
