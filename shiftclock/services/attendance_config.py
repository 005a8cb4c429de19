from __future__ import annotations

import logging
import threading
import time as monotonic_time
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from datetime import time
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from shiftclock.models import BreakType, Setting
from shiftclock.settings import get_settings

logger = logging.getLogger("shiftclock.attendance_config")

_TRUE_VALUES = {"1", "true", "yes", "on"}

# key -> (default value as stored, value type)
DEFAULT_SETTINGS: dict[str, tuple[str, str]] = {
    "shift_boundary_hour": ("14", "integer"),
    "grace_period": ("15", "integer"),
    "allow_multi_checkin": ("0", "boolean"),
    "prevent_duplicate_checkin": ("1", "boolean"),
    "allow_overtime": ("0", "boolean"),
    "min_overtime_minutes": ("60", "integer"),
    "ot_rounding": ("none", "string"),
    "require_ot_approval": ("1", "boolean"),
    "break_start_window": ("", "time"),
    "break_end_window": ("", "time"),
    "break_duration": ("90", "integer"),
    "coffee_break_minutes": ("15", "integer"),
    "meal_break_minutes": ("60", "integer"),
    "max_breaks": ("2", "integer"),
    "break_type_allowance": ("1", "boolean"),
    "auto_resume": ("0", "boolean"),
    "break_alerts": ("1", "boolean"),
    "break_penalty": ("1", "boolean"),
    "late_alerts": ("0", "boolean"),
    "absent_alerts": ("0", "boolean"),
    "auto_checkout": ("1", "boolean"),
    "auto_absent_time": ("01:00", "time"),
}


def parse_bool(raw: str | None, default: bool) -> bool:
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUE_VALUES


def parse_int(raw: str | None, default: int) -> int:
    if raw is None:
        return default
    try:
        return int(str(raw).strip())
    except ValueError:
        return default


def parse_clock_time(raw: str | None) -> time | None:
    if raw is None:
        return None
    cleaned = raw.strip()
    if not cleaned:
        return None
    parts = cleaned.split(":")
    try:
        hour = int(parts[0])
        minute = int(parts[1]) if len(parts) > 1 else 0
        return time(hour=hour, minute=minute)
    except (ValueError, IndexError):
        return None


@dataclass(frozen=True, slots=True)
class AttendanceConfig:
    shift_boundary_hour: int = 14
    grace_period: int = 15
    allow_multi_checkin: bool = False
    prevent_duplicate_checkin: bool = True
    allow_overtime: bool = False
    min_overtime_minutes: int = 60
    ot_rounding: str = "none"
    require_ot_approval: bool = True
    break_start_window: time | None = None
    break_end_window: time | None = None
    break_duration: int = 90
    coffee_break_minutes: int = 15
    meal_break_minutes: int = 60
    max_breaks: int = 2
    break_type_allowance: bool = True
    auto_resume: bool = False
    break_alerts: bool = True
    break_penalty: bool = True
    late_alerts: bool = False
    absent_alerts: bool = False
    auto_checkout: bool = True
    auto_absent_time: time = time(1, 0)

    @classmethod
    def from_values(cls, values: Mapping[str, str | None]) -> AttendanceConfig:
        defaults = cls()
        boundary = parse_int(values.get("shift_boundary_hour"), defaults.shift_boundary_hour)
        if not 0 <= boundary <= 23:
            boundary = defaults.shift_boundary_hour
        return cls(
            shift_boundary_hour=boundary,
            grace_period=max(0, parse_int(values.get("grace_period"), defaults.grace_period)),
            allow_multi_checkin=parse_bool(values.get("allow_multi_checkin"), defaults.allow_multi_checkin),
            prevent_duplicate_checkin=parse_bool(
                values.get("prevent_duplicate_checkin"),
                defaults.prevent_duplicate_checkin,
            ),
            allow_overtime=parse_bool(values.get("allow_overtime"), defaults.allow_overtime),
            min_overtime_minutes=max(
                0,
                parse_int(values.get("min_overtime_minutes"), defaults.min_overtime_minutes),
            ),
            ot_rounding=(values.get("ot_rounding") or defaults.ot_rounding).strip().lower(),
            require_ot_approval=parse_bool(values.get("require_ot_approval"), defaults.require_ot_approval),
            break_start_window=parse_clock_time(values.get("break_start_window")),
            break_end_window=parse_clock_time(values.get("break_end_window")),
            break_duration=max(0, parse_int(values.get("break_duration"), defaults.break_duration)),
            coffee_break_minutes=max(
                1,
                parse_int(values.get("coffee_break_minutes"), defaults.coffee_break_minutes),
            ),
            meal_break_minutes=max(1, parse_int(values.get("meal_break_minutes"), defaults.meal_break_minutes)),
            max_breaks=max(0, parse_int(values.get("max_breaks"), defaults.max_breaks)),
            break_type_allowance=parse_bool(values.get("break_type_allowance"), defaults.break_type_allowance),
            auto_resume=parse_bool(values.get("auto_resume"), defaults.auto_resume),
            break_alerts=parse_bool(values.get("break_alerts"), defaults.break_alerts),
            break_penalty=parse_bool(values.get("break_penalty"), defaults.break_penalty),
            late_alerts=parse_bool(values.get("late_alerts"), defaults.late_alerts),
            absent_alerts=parse_bool(values.get("absent_alerts"), defaults.absent_alerts),
            auto_checkout=parse_bool(values.get("auto_checkout"), defaults.auto_checkout),
            auto_absent_time=parse_clock_time(values.get("auto_absent_time")) or defaults.auto_absent_time,
        )

    @property
    def has_break_window(self) -> bool:
        return self.break_start_window is not None and self.break_end_window is not None

    def segment_limit(self, break_type: BreakType) -> int:
        if break_type == BreakType.COFFEE:
            return self.coffee_break_minutes
        return self.meal_break_minutes

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        for key, value in payload.items():
            if isinstance(value, time):
                payload[key] = value.strftime("%H:%M")
        return payload


def load_attendance_config(db: Session) -> AttendanceConfig:
    rows = db.scalars(select(Setting).where(Setting.key.in_(list(DEFAULT_SETTINGS)))).all()
    return AttendanceConfig.from_values({row.key: row.value for row in rows})


class AttendanceConfigCache:
    """Holds the last loaded snapshot and reloads it once ``ttl_seconds`` pass."""

    def __init__(self, ttl_seconds: float) -> None:
        self.ttl_seconds = ttl_seconds
        self._lock = threading.Lock()
        self._snapshot: AttendanceConfig | None = None
        self._loaded_at = 0.0

    def get(self, db: Session) -> AttendanceConfig:
        now = monotonic_time.monotonic()
        with self._lock:
            if self._snapshot is not None and now - self._loaded_at < self.ttl_seconds:
                return self._snapshot

        snapshot = load_attendance_config(db)
        with self._lock:
            self._snapshot = snapshot
            self._loaded_at = now
        logger.debug("attendance_config_refreshed", extra={"config": snapshot.to_dict()})
        return snapshot

    def invalidate(self) -> None:
        with self._lock:
            self._snapshot = None
            self._loaded_at = 0.0


_config_cache = AttendanceConfigCache(ttl_seconds=get_settings().attendance_config_ttl_seconds)


def get_attendance_config(db: Session) -> AttendanceConfig:
    return _config_cache.get(db)


def invalidate_attendance_config() -> None:
    _config_cache.invalidate()


def upsert_settings(db: Session, values: Mapping[str, str | None]) -> AttendanceConfig:
    existing = {
        row.key: row
        for row in db.scalars(select(Setting).where(Setting.key.in_(list(values)))).all()
    }
    for key, value in values.items():
        if key not in DEFAULT_SETTINGS:
            continue
        row = existing.get(key)
        if row is None:
            db.add(Setting(key=key, value=value, group="attendance", type=DEFAULT_SETTINGS[key][1]))
        else:
            row.value = value
    db.commit()
    invalidate_attendance_config()
    return load_attendance_config(db)


def seed_default_settings(db: Session) -> int:
    existing_keys = set(db.scalars(select(Setting.key)).all())
    created = 0
    for key, (value, value_type) in DEFAULT_SETTINGS.items():
        if key in existing_keys:
            continue
        db.add(Setting(key=key, value=value, group="attendance", type=value_type))
        created += 1
    db.commit()
    invalidate_attendance_config()
    return created
