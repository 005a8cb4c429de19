from __future__ import annotations

import unittest
from datetime import date, datetime, time

from sqlalchemy import select

from shiftclock.errors import ApiError
from shiftclock.models import AttendanceRecord, RecordStatus, SessionStatus, SessionType, ShiftSession
from shiftclock.services import events
from shiftclock.services.attendance_config import AttendanceConfig
from shiftclock.services.sessions import (
    auto_detect_sessions,
    create_session,
    delete_session,
    lock_session,
    resolve_session_for_now,
    sync_session_statuses,
    unlock_session,
)

from attendance_fixtures import add_schedule, add_session, add_user, make_engine, make_session_factory

SHIFT_DAY = date(2026, 3, 2)


class SessionServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine()
        self.db = make_session_factory(self.engine)()
        self.config = AttendanceConfig()
        self.schedule = add_schedule(self.db, time_in=time(9, 0), time_out=time(18, 0))
        self.received: list[events.DomainEvent] = []
        events.subscribe(events.SESSION_UPDATED, self.received.append)

    def tearDown(self) -> None:
        events.unsubscribe(events.SESSION_UPDATED, self.received.append)
        self.db.close()
        self.engine.dispose()

    def test_sync_advances_and_reports_only_changes(self) -> None:
        session = add_session(self.db, self.schedule, SHIFT_DAY, status=SessionStatus.PENDING)

        changed = sync_session_statuses(self.db, now=datetime(2026, 3, 2, 9, 30))
        self.assertEqual([item.id for item in changed], [session.id])
        self.assertEqual(session.status, SessionStatus.ACTIVE)
        self.assertEqual(session.opened_at, datetime(2026, 3, 2, 9, 30))

        self.assertEqual(sync_session_statuses(self.db, now=datetime(2026, 3, 2, 9, 45)), [])

        changed = sync_session_statuses(self.db, now=datetime(2026, 3, 2, 18, 30))
        self.assertEqual(session.status, SessionStatus.COMPLETED)
        self.assertEqual([event.verb for event in self.received], ["status_changed", "status_changed"])

    def test_sync_leaves_locked_sessions(self) -> None:
        session = add_session(self.db, self.schedule, SHIFT_DAY, status=SessionStatus.LOCKED)
        sync_session_statuses(self.db, now=datetime(2026, 3, 2, 19, 0))
        self.assertEqual(session.status, SessionStatus.LOCKED)

    def test_create_with_placeholders_and_duplicate(self) -> None:
        employee = add_user(self.db)
        session = create_session(
            self.db,
            schedule_id=self.schedule.id,
            session_date=SHIFT_DAY,
            now=datetime(2026, 3, 2, 8, 0),
            employee_ids=[employee.id, employee.id],
        )
        self.assertEqual(session.status, SessionStatus.PENDING)
        self.assertEqual(session.session_type, SessionType.MANUAL)
        records = self.db.scalars(select(AttendanceRecord).where(AttendanceRecord.session_id == session.id)).all()
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].status, RecordStatus.PENDING)

        with self.assertRaises(ApiError) as ctx:
            create_session(self.db, schedule_id=self.schedule.id, session_date=SHIFT_DAY, now=datetime(2026, 3, 2, 8, 5))
        self.assertEqual(ctx.exception.code, "SESSION_EXISTS")
        self.assertEqual(ctx.exception.status_code, 409)

    def test_create_rejects_unknown_schedule_and_employees(self) -> None:
        with self.assertRaises(ApiError) as missing_schedule:
            create_session(self.db, schedule_id=999, session_date=SHIFT_DAY, now=datetime(2026, 3, 2, 8, 0))
        self.assertEqual(missing_schedule.exception.code, "SCHEDULE_NOT_FOUND")

        with self.assertRaises(ApiError) as missing_user:
            create_session(
                self.db,
                schedule_id=self.schedule.id,
                session_date=SHIFT_DAY,
                now=datetime(2026, 3, 2, 8, 0),
                employee_ids=[4242],
            )
        self.assertEqual(missing_user.exception.code, "USER_NOT_FOUND")
        self.assertIsNone(self.db.scalar(select(ShiftSession.id)))

    def test_lock_unlock_cycle(self) -> None:
        session = add_session(self.db, self.schedule, SHIFT_DAY)
        locked = lock_session(self.db, session_id=session.id, now=datetime(2026, 3, 2, 12, 0))
        self.assertEqual(locked.status, SessionStatus.LOCKED)
        self.assertEqual(locked.locked_at, datetime(2026, 3, 2, 12, 0))

        with self.assertRaises(ApiError) as again:
            lock_session(self.db, session_id=session.id, now=datetime(2026, 3, 2, 12, 1))
        self.assertEqual(again.exception.code, "SESSION_ALREADY_LOCKED")

        unlocked = unlock_session(self.db, session_id=session.id)
        self.assertEqual(unlocked.status, SessionStatus.ACTIVE)
        self.assertIsNone(unlocked.locked_at)

        with self.assertRaises(ApiError) as not_locked:
            unlock_session(self.db, session_id=session.id)
        self.assertEqual(not_locked.exception.code, "SESSION_NOT_LOCKED")

    def test_delete_cascades_records(self) -> None:
        employee = add_user(self.db)
        session = create_session(
            self.db,
            schedule_id=self.schedule.id,
            session_date=SHIFT_DAY,
            now=datetime(2026, 3, 2, 8, 0),
            employee_ids=[employee.id],
        )
        self.assertEqual(delete_session(self.db, session_id=session.id), 1)
        self.assertIsNone(self.db.scalar(select(AttendanceRecord.id)))

    def test_auto_detect_opens_session_once(self) -> None:
        now = datetime(2026, 3, 2, 8, 0)
        created = auto_detect_sessions(self.db, now=now, config=self.config)
        self.assertEqual(len(created), 1)
        self.assertEqual(created[0].session_type, SessionType.AUTO)
        self.assertEqual(created[0].session_date, SHIFT_DAY)
        self.assertEqual(auto_detect_sessions(self.db, now=now, config=self.config), [])

    def test_auto_detect_outside_window_does_nothing(self) -> None:
        self.assertEqual(auto_detect_sessions(self.db, now=datetime(2026, 3, 2, 15, 0), config=self.config), [])

    def test_overnight_session_resolved_after_midnight(self) -> None:
        night = add_schedule(self.db, time_in=time(22, 0), time_out=time(6, 0), name="Night")
        session = add_session(self.db, night, SHIFT_DAY)
        found = resolve_session_for_now(self.db, now=datetime(2026, 3, 3, 2, 0), config=self.config)
        self.assertIsNotNone(found)
        self.assertEqual(found.id, session.id)


if __name__ == "__main__":
    unittest.main()
