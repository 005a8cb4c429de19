#!/usr/bin/env python
from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from shiftclock.db import SessionLocal
from shiftclock.logging_utils import setup_json_logging
from shiftclock.services.attendance_config import load_attendance_config, seed_default_settings
from shiftclock.services.logical_day import local_now
from shiftclock.services.maintenance import run_maintenance
from shiftclock.settings import get_settings


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run attendance maintenance sweeps.")
    parser.add_argument(
        "--seed-settings",
        action="store_true",
        help="Insert any missing attendance settings with their defaults before running.",
    )
    parser.add_argument(
        "--now",
        help="Local wall-clock time to run as (YYYY-MM-DDTHH:MM), for replaying a missed run.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    setup_json_logging(get_settings().log_level)
    now = datetime.fromisoformat(args.now) if args.now else local_now()

    db = SessionLocal()
    try:
        seeded = seed_default_settings(db) if args.seed_settings else 0
        config = load_attendance_config(db)
        report = run_maintenance(db, now=now, config=config)
    finally:
        db.close()

    summary = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "local_now": now.isoformat(),
        "settings_seeded": seeded,
        **report.to_dict(),
    }
    print(json.dumps(summary, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
