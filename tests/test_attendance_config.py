from __future__ import annotations

import unittest
from datetime import time

from sqlalchemy import select

from shiftclock.models import BreakType, Setting
from shiftclock.services.attendance_config import (
    DEFAULT_SETTINGS,
    AttendanceConfig,
    AttendanceConfigCache,
    load_attendance_config,
    parse_bool,
    seed_default_settings,
    upsert_settings,
)

from attendance_fixtures import make_engine, make_session_factory


class ParseHelpersTests(unittest.TestCase):
    def test_parse_bool_accepts_common_truthy_values(self) -> None:
        for raw in ("1", "true", "YES", " on "):
            self.assertTrue(parse_bool(raw, False))
        self.assertFalse(parse_bool("0", True))
        self.assertTrue(parse_bool("", True))
        self.assertFalse(parse_bool(None, False))

    def test_from_values_falls_back_on_garbage(self) -> None:
        config = AttendanceConfig.from_values(
            {
                "shift_boundary_hour": "99",
                "grace_period": "abc",
                "break_start_window": "12:00",
                "break_end_window": "not-a-time",
                "ot_rounding": " Down_15 ",
            }
        )
        self.assertEqual(config.shift_boundary_hour, 14)
        self.assertEqual(config.grace_period, 15)
        self.assertEqual(config.break_start_window, time(12, 0))
        self.assertIsNone(config.break_end_window)
        self.assertFalse(config.has_break_window)
        self.assertEqual(config.ot_rounding, "down_15")

    def test_segment_limits(self) -> None:
        config = AttendanceConfig.from_values({"coffee_break_minutes": "10", "meal_break_minutes": "45"})
        self.assertEqual(config.segment_limit(BreakType.COFFEE), 10)
        self.assertEqual(config.segment_limit(BreakType.MEAL), 45)


class StoredSettingsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine()
        self.db = make_session_factory(self.engine)()

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def test_seed_inserts_every_default_once(self) -> None:
        self.assertEqual(seed_default_settings(self.db), len(DEFAULT_SETTINGS))
        self.assertEqual(seed_default_settings(self.db), 0)
        self.assertEqual(load_attendance_config(self.db), AttendanceConfig())

    def test_upsert_ignores_unknown_keys(self) -> None:
        config = upsert_settings(self.db, {"grace_period": "5", "favourite_colour": "blue"})
        self.assertEqual(config.grace_period, 5)
        keys = set(self.db.scalars(select(Setting.key)).all())
        self.assertEqual(keys, {"grace_period"})

    def test_cache_serves_stale_value_until_invalidated(self) -> None:
        cache = AttendanceConfigCache(ttl_seconds=300)
        upsert_settings(self.db, {"grace_period": "5"})
        self.assertEqual(cache.get(self.db).grace_period, 5)

        upsert_settings(self.db, {"grace_period": "20"})
        self.assertEqual(cache.get(self.db).grace_period, 5)

        cache.invalidate()
        self.assertEqual(cache.get(self.db).grace_period, 20)


if __name__ == "__main__":
    unittest.main()
