from __future__ import annotations

from datetime import datetime

from fastapi import Depends
from sqlalchemy.orm import Session

from shiftclock.db import get_db
from shiftclock.services.attendance_config import AttendanceConfig, get_attendance_config
from shiftclock.services.locks import UserLockProvider, get_lock_provider
from shiftclock.services.logical_day import local_now


def get_now() -> datetime:
    return local_now()


def get_config(db: Session = Depends(get_db)) -> AttendanceConfig:
    return get_attendance_config(db)


def get_locks() -> UserLockProvider:
    return get_lock_provider()
