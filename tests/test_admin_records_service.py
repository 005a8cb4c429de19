from __future__ import annotations

import unittest
from datetime import date, datetime

from sqlalchemy import select

from shiftclock.errors import ApiError
from shiftclock.models import AttendanceRecord, BreakEntry, BreakType, OvertimeStatus, RecordStatus
from shiftclock.schemas import AdminRecordCreate, AdminRecordUpdate
from shiftclock.services.admin_records import create_manual_record, delete_record, update_record
from shiftclock.services.attendance_config import AttendanceConfig

from attendance_fixtures import add_schedule, add_session, add_user, make_engine, make_session_factory

SHIFT_DAY = date(2026, 3, 2)


class AdminRecordServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine()
        self.db = make_session_factory(self.engine)()
        self.config = AttendanceConfig(allow_overtime=True)
        self.user = add_user(self.db)
        self.admin_id = 99
        self.session = add_session(self.db, add_schedule(self.db), SHIFT_DAY)

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def _create(self, **overrides) -> AttendanceRecord:
        values = {
            "user_id": self.user.id,
            "session_id": self.session.id,
            "attendance_date": SHIFT_DAY,
            "time_in": datetime(2026, 3, 2, 9, 0),
            "time_out": datetime(2026, 3, 2, 17, 0),
        }
        values.update(overrides)
        return create_manual_record(
            self.db,
            payload=AdminRecordCreate(**values),
            admin_id=self.admin_id,
            config=self.config,
        )

    def test_manual_record_computes_hours_and_notes_author(self) -> None:
        record = self._create()

        self.assertEqual(record.status, RecordStatus.PRESENT)
        self.assertEqual(record.hours_worked, 8.0)
        self.assertEqual(record.overtime_minutes, 0)
        self.assertIn("Created manually by admin #99", record.notes or "")

    def test_second_record_for_same_day_is_rejected(self) -> None:
        self._create()
        with self.assertRaises(ApiError) as ctx:
            self._create()
        self.assertEqual(ctx.exception.code, "DUPLICATE_RECORD")
        self.assertEqual(ctx.exception.status_code, 409)

    def test_unknown_user_or_session_is_rejected(self) -> None:
        with self.assertRaises(ApiError) as ctx:
            self._create(user_id=404)
        self.assertEqual(ctx.exception.code, "USER_NOT_FOUND")

        with self.assertRaises(ApiError) as ctx:
            self._create(session_id=404)
        self.assertEqual(ctx.exception.code, "SESSION_NOT_FOUND")

    def test_update_recalculates_hours_and_overtime(self) -> None:
        record = self._create()
        self.db.add(
            BreakEntry(
                attendance_id=record.id,
                user_id=self.user.id,
                break_date=SHIFT_DAY,
                break_type=BreakType.MEAL,
                break_start=datetime(2026, 3, 2, 12, 0),
                break_end=datetime(2026, 3, 2, 12, 30),
                duration_minutes=30,
                duration_limit=60,
                penalty_minutes=0,
            )
        )
        self.db.commit()

        updated = update_record(
            self.db,
            record_id=record.id,
            payload=AdminRecordUpdate(time_out=datetime(2026, 3, 2, 19, 30), reason="forgot to clock out"),
            admin_id=self.admin_id,
            config=self.config,
        )

        self.assertEqual(updated.hours_worked, 10.0)
        self.assertEqual(updated.overtime_minutes, 90)
        self.assertEqual(updated.overtime_status, OvertimeStatus.PENDING)
        self.assertIn("Edited by admin #99: forgot to clock out", updated.notes or "")

    def test_explicit_overtime_status_survives_recalculation(self) -> None:
        record = self._create()
        updated = update_record(
            self.db,
            record_id=record.id,
            payload=AdminRecordUpdate(
                time_out=datetime(2026, 3, 2, 19, 30),
                overtime_status=OvertimeStatus.APPROVED,
                reason="approved by manager",
            ),
            admin_id=self.admin_id,
            config=self.config,
        )
        self.assertEqual(updated.overtime_status, OvertimeStatus.APPROVED)

    def test_status_only_update_keeps_times(self) -> None:
        record = self._create()
        updated = update_record(
            self.db,
            record_id=record.id,
            payload=AdminRecordUpdate(status=RecordStatus.EXCUSED, excuse_reason="doctor", reason="sick note"),
            admin_id=self.admin_id,
            config=self.config,
        )
        self.assertEqual(updated.status, RecordStatus.EXCUSED)
        self.assertEqual(updated.excuse_reason, "doctor")
        self.assertEqual(updated.hours_worked, 8.0)

    def test_update_rejects_time_out_before_time_in(self) -> None:
        record = self._create()
        with self.assertRaises(ApiError) as ctx:
            update_record(
                self.db,
                record_id=record.id,
                payload=AdminRecordUpdate(time_out=datetime(2026, 3, 2, 8, 0), reason="typo fix"),
                admin_id=self.admin_id,
                config=self.config,
            )
        self.assertEqual(ctx.exception.code, "VALIDATION_ERROR")

    def test_delete_removes_record_and_breaks(self) -> None:
        record = self._create()
        self.db.add(
            BreakEntry(
                attendance_id=record.id,
                user_id=self.user.id,
                break_date=SHIFT_DAY,
                break_type=BreakType.COFFEE,
                break_start=datetime(2026, 3, 2, 10, 0),
                break_end=datetime(2026, 3, 2, 10, 10),
                duration_minutes=10,
                duration_limit=15,
                penalty_minutes=0,
            )
        )
        self.db.commit()

        delete_record(self.db, record_id=record.id)

        self.assertIsNone(self.db.scalar(select(AttendanceRecord)))
        self.assertIsNone(self.db.scalar(select(BreakEntry)))
        with self.assertRaises(ApiError) as ctx:
            delete_record(self.db, record_id=record.id)
        self.assertEqual(ctx.exception.code, "RECORD_NOT_FOUND")

    def test_overtime_below_minimum_is_ignored(self) -> None:
        record = self._create(time_out=datetime(2026, 3, 2, 18, 30))
        self.assertEqual(record.overtime_minutes, 0)
        self.assertEqual(record.overtime_status, OvertimeStatus.NONE)


if __name__ == "__main__":
    unittest.main()
