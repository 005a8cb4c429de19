from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from shiftclock.audit import audit_request, client_ip
from shiftclock.db import get_db
from shiftclock.deps import get_config, get_locks, get_now
from shiftclock.errors import ApiError
from shiftclock.models import AuditActorType, User
from shiftclock.schemas import (
    AttendanceActionResponse,
    AttendanceRecordRead,
    CanConfirmResponse,
    ConfirmRequest,
    TodayStatusResponse,
)
from shiftclock.security import get_current_user
from shiftclock.services.attendance_config import AttendanceConfig
from shiftclock.services.checkin import can_confirm, confirm_attendance
from shiftclock.services.checkout import check_out
from shiftclock.services.locks import UserLockProvider
from shiftclock.services.records import list_user_records
from shiftclock.services.status import get_today_status

router = APIRouter(prefix="/api/attendance", tags=["attendance"])


def _audit_actor(user: User) -> AuditActorType:
    return AuditActorType.ADMIN if user.role.value == "admin" else AuditActorType.USER


@router.post("/sessions/{session_id}/confirm", response_model=AttendanceActionResponse)
def confirm(
    session_id: int,
    request: Request,
    payload: ConfirmRequest | None = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    config: AttendanceConfig = Depends(get_config),
    locks: UserLockProvider = Depends(get_locks),
    now: datetime = Depends(get_now),
) -> AttendanceActionResponse:
    device_info = payload.device.model_dump(exclude_none=True) if payload and payload.device else {}
    device_info["ip_address"] = client_ip(request)
    try:
        record = confirm_attendance(
            db,
            user_id=user.id,
            session_id=session_id,
            now=now,
            config=config,
            device_info=device_info,
            lock_provider=locks,
        )
    except ApiError as exc:
        db.rollback()
        audit_request(
            db,
            request,
            actor_type=_audit_actor(user),
            actor_id=user.id,
            action="ATTENDANCE_CONFIRM",
            success=False,
            entity_type="attendance_session",
            entity_id=session_id,
            details={"error_code": exc.code},
        )
        raise

    request.state.record_id = record.id
    audit_request(
        db,
        request,
        actor_type=_audit_actor(user),
        actor_id=user.id,
        action="ATTENDANCE_CONFIRM",
        entity_type="attendance_record",
        entity_id=record.id,
        details={
            "session_id": session_id,
            "status": record.status.value,
            "minutes_late": record.minutes_late,
        },
    )
    message = "Checked in on time." if record.status.value == "present" else f"Checked in {record.minutes_late} min late."
    return AttendanceActionResponse(
        action="confirmed",
        message=message,
        record=AttendanceRecordRead.model_validate(record),
    )


@router.get("/sessions/{session_id}/can-confirm", response_model=CanConfirmResponse)
def can_confirm_session(
    session_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    config: AttendanceConfig = Depends(get_config),
    now: datetime = Depends(get_now),
) -> CanConfirmResponse:
    result = can_confirm(db, user_id=user.id, session_id=session_id, now=now, config=config)
    return CanConfirmResponse(**result)


@router.post("/records/{record_id}/check-out", response_model=AttendanceActionResponse)
def checkout(
    record_id: int,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    config: AttendanceConfig = Depends(get_config),
    now: datetime = Depends(get_now),
) -> AttendanceActionResponse:
    try:
        record = check_out(
            db,
            user_id=user.id,
            record_id=record_id,
            now=now,
            config=config,
            acting_role=user.role,
        )
    except ApiError as exc:
        db.rollback()
        audit_request(
            db,
            request,
            actor_type=_audit_actor(user),
            actor_id=user.id,
            action="ATTENDANCE_CHECKOUT",
            success=False,
            entity_type="attendance_record",
            entity_id=record_id,
            details={"error_code": exc.code},
        )
        raise

    request.state.record_id = record.id
    audit_request(
        db,
        request,
        actor_type=_audit_actor(user),
        actor_id=user.id,
        action="ATTENDANCE_CHECKOUT",
        entity_type="attendance_record",
        entity_id=record.id,
        details={
            "status": record.status.value,
            "hours_worked": record.hours_worked,
            "overtime_minutes": record.overtime_minutes,
        },
    )
    return AttendanceActionResponse(
        action="checked_out",
        message=f"Checked out. {record.hours_worked or 0:.2f} hours worked.",
        record=AttendanceRecordRead.model_validate(record),
    )


@router.get("/today-status", response_model=TodayStatusResponse)
def today_status(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    config: AttendanceConfig = Depends(get_config),
    now: datetime = Depends(get_now),
) -> TodayStatusResponse:
    return TodayStatusResponse(**get_today_status(db, user_id=user.id, now=now, config=config))


@router.get("/my-records", response_model=list[AttendanceRecordRead])
def my_records(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[AttendanceRecordRead]:
    records = list_user_records(db, user_id=user.id, start_date=start_date, end_date=end_date, limit=limit)
    return [AttendanceRecordRead.model_validate(record) for record in records]
