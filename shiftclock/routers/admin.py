from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from shiftclock.audit import audit_request
from shiftclock.db import get_db
from shiftclock.deps import get_config, get_now
from shiftclock.models import AuditActorType, SessionStatus, User
from shiftclock.schemas import (
    AdminRecordCreate,
    AdminRecordUpdate,
    AttendanceRecordRead,
    AttendanceSettingsRead,
    AttendanceSettingsUpdate,
    MaintenanceRunResponse,
    NotificationRead,
    RecordDeleteResponse,
    ScheduleCreate,
    ScheduleRead,
    SessionCreate,
    SessionDeleteResponse,
    SessionRead,
    SessionSyncResponse,
)
from shiftclock.security import require_admin
from shiftclock.services.admin_records import create_manual_record, delete_record, update_record
from shiftclock.services.attendance_config import AttendanceConfig, upsert_settings
from shiftclock.services.maintenance import run_maintenance
from shiftclock.services.notifications import list_notifications
from shiftclock.services.schedules import create_schedule, list_schedules, update_schedule
from shiftclock.services.sessions import (
    create_session,
    delete_session,
    get_today_sessions,
    list_sessions,
    lock_session,
    sync_session_statuses,
    unlock_session,
)

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _session_read(session) -> SessionRead:
    return SessionRead.model_validate(session)


@router.get("/sessions", response_model=list[SessionRead])
def get_sessions(
    status: SessionStatus | None = Query(default=None),
    session_date: date | None = Query(default=None, alias="date"),
    schedule_id: int | None = Query(default=None, ge=1),
    limit: int = Query(default=100, ge=1, le=500),
    _admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[SessionRead]:
    sessions = list_sessions(db, status=status, session_date=session_date, schedule_id=schedule_id, limit=limit)
    return [_session_read(session) for session in sessions]


@router.post("/sessions", response_model=SessionRead, status_code=201)
def post_session(
    payload: SessionCreate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> SessionRead:
    session = create_session(
        db,
        schedule_id=payload.schedule_id,
        session_date=payload.session_date,
        now=now,
        created_by=admin.id,
        employee_ids=payload.employee_ids,
    )
    audit_request(
        db,
        request,
        actor_type=AuditActorType.ADMIN,
        actor_id=admin.id,
        action="SESSION_CREATED",
        entity_type="attendance_session",
        entity_id=session.id,
        details={"schedule_id": payload.schedule_id, "date": payload.session_date.isoformat()},
    )
    return _session_read(session)


@router.get("/sessions/today", response_model=list[SessionRead])
def get_sessions_today(
    _admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    config: AttendanceConfig = Depends(get_config),
    now: datetime = Depends(get_now),
) -> list[SessionRead]:
    return [_session_read(session) for session in get_today_sessions(db, now=now, config=config)]


@router.post("/sessions/sync", response_model=SessionSyncResponse)
def post_sessions_sync(
    _admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> SessionSyncResponse:
    changed = sync_session_statuses(db, now=now)
    return SessionSyncResponse(changed=[_session_read(session) for session in changed])


@router.post("/sessions/{session_id}/lock", response_model=SessionRead)
def post_session_lock(
    session_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> SessionRead:
    session = lock_session(db, session_id=session_id, now=now)
    audit_request(
        db,
        request,
        actor_type=AuditActorType.ADMIN,
        actor_id=admin.id,
        action="SESSION_LOCKED",
        entity_type="attendance_session",
        entity_id=session.id,
    )
    return _session_read(session)


@router.post("/sessions/{session_id}/unlock", response_model=SessionRead)
def post_session_unlock(
    session_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> SessionRead:
    session = unlock_session(db, session_id=session_id)
    audit_request(
        db,
        request,
        actor_type=AuditActorType.ADMIN,
        actor_id=admin.id,
        action="SESSION_UNLOCKED",
        entity_type="attendance_session",
        entity_id=session.id,
    )
    return _session_read(session)


@router.delete("/sessions/{session_id}", response_model=SessionDeleteResponse)
def remove_session(
    session_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> SessionDeleteResponse:
    records_deleted = delete_session(db, session_id=session_id)
    audit_request(
        db,
        request,
        actor_type=AuditActorType.ADMIN,
        actor_id=admin.id,
        action="SESSION_DELETED",
        entity_type="attendance_session",
        entity_id=session_id,
        details={"records_deleted": records_deleted},
    )
    return SessionDeleteResponse(session_id=session_id, records_deleted=records_deleted)


@router.get("/schedules", response_model=list[ScheduleRead])
def get_schedules(
    include_inactive: bool = Query(default=False),
    _admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[ScheduleRead]:
    return [ScheduleRead.model_validate(item) for item in list_schedules(db, include_inactive=include_inactive)]


@router.post("/schedules", response_model=ScheduleRead, status_code=201)
def post_schedule(
    payload: ScheduleCreate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ScheduleRead:
    schedule = create_schedule(db, payload=payload)
    audit_request(
        db,
        request,
        actor_type=AuditActorType.ADMIN,
        actor_id=admin.id,
        action="SCHEDULE_CREATED",
        entity_type="schedule",
        entity_id=schedule.id,
        details={"name": schedule.name},
    )
    return ScheduleRead.model_validate(schedule)


@router.put("/schedules/{schedule_id}", response_model=ScheduleRead)
def put_schedule(
    schedule_id: int,
    payload: ScheduleCreate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ScheduleRead:
    schedule = update_schedule(db, schedule_id=schedule_id, payload=payload)
    audit_request(
        db,
        request,
        actor_type=AuditActorType.ADMIN,
        actor_id=admin.id,
        action="SCHEDULE_UPDATED",
        entity_type="schedule",
        entity_id=schedule.id,
    )
    return ScheduleRead.model_validate(schedule)


@router.post("/records", response_model=AttendanceRecordRead, status_code=201)
def post_record(
    payload: AdminRecordCreate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    config: AttendanceConfig = Depends(get_config),
) -> AttendanceRecordRead:
    record = create_manual_record(db, payload=payload, admin_id=admin.id, config=config)
    audit_request(
        db,
        request,
        actor_type=AuditActorType.ADMIN,
        actor_id=admin.id,
        action="RECORD_CREATED",
        entity_type="attendance_record",
        entity_id=record.id,
        details={"user_id": record.user_id, "attendance_date": record.attendance_date.isoformat()},
    )
    return AttendanceRecordRead.model_validate(record)


@router.patch("/records/{record_id}", response_model=AttendanceRecordRead)
def patch_record(
    record_id: int,
    payload: AdminRecordUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    config: AttendanceConfig = Depends(get_config),
) -> AttendanceRecordRead:
    record = update_record(db, record_id=record_id, payload=payload, admin_id=admin.id, config=config)
    audit_request(
        db,
        request,
        actor_type=AuditActorType.ADMIN,
        actor_id=admin.id,
        action="RECORD_UPDATED",
        entity_type="attendance_record",
        entity_id=record.id,
        details={"reason": payload.reason, "fields": sorted(payload.model_fields_set - {"reason"})},
    )
    return AttendanceRecordRead.model_validate(record)


@router.delete("/records/{record_id}", response_model=RecordDeleteResponse)
def remove_record(
    record_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> RecordDeleteResponse:
    delete_record(db, record_id=record_id)
    audit_request(
        db,
        request,
        actor_type=AuditActorType.ADMIN,
        actor_id=admin.id,
        action="RECORD_DELETED",
        entity_type="attendance_record",
        entity_id=record_id,
    )
    return RecordDeleteResponse(record_id=record_id)


@router.get("/settings/attendance", response_model=AttendanceSettingsRead)
def get_attendance_settings(
    _admin: User = Depends(require_admin),
    config: AttendanceConfig = Depends(get_config),
) -> AttendanceSettingsRead:
    return AttendanceSettingsRead(values=config.to_dict())


@router.put("/settings/attendance", response_model=AttendanceSettingsRead)
def put_attendance_settings(
    payload: AttendanceSettingsUpdate,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> AttendanceSettingsRead:
    config = upsert_settings(db, payload.values)
    audit_request(
        db,
        request,
        actor_type=AuditActorType.ADMIN,
        actor_id=admin.id,
        action="ATTENDANCE_SETTINGS_UPDATED",
        entity_type="setting",
        details={"keys": sorted(payload.values)},
    )
    return AttendanceSettingsRead(values=config.to_dict())


@router.get("/notifications", response_model=list[NotificationRead])
def get_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> list[NotificationRead]:
    items = list_notifications(db, user_id=admin.id, unread_only=unread_only, limit=limit)
    return [NotificationRead.model_validate(item) for item in items]


@router.post("/maintenance/run", response_model=MaintenanceRunResponse)
def post_maintenance_run(
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    config: AttendanceConfig = Depends(get_config),
    now: datetime = Depends(get_now),
) -> MaintenanceRunResponse:
    report = run_maintenance(db, now=now, config=config)
    audit_request(
        db,
        request,
        actor_type=AuditActorType.ADMIN,
        actor_id=admin.id,
        action="MAINTENANCE_RUN",
        details=report.to_dict(),
    )
    return MaintenanceRunResponse(**report.to_dict())
