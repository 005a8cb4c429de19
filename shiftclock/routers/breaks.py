from datetime import datetime

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from shiftclock.audit import audit_request
from shiftclock.db import get_db
from shiftclock.deps import get_config, get_now
from shiftclock.errors import ApiError
from shiftclock.models import AuditActorType, User
from shiftclock.schemas import BreakActionResponse, BreakEntryRead, BreakStartRequest, BreakStatusResponse
from shiftclock.security import get_current_user
from shiftclock.services.attendance_config import AttendanceConfig
from shiftclock.services.breaks import end_break, get_break_status, start_break

router = APIRouter(prefix="/api/breaks", tags=["breaks"])


@router.post("/start", response_model=BreakActionResponse)
def start(
    payload: BreakStartRequest,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    config: AttendanceConfig = Depends(get_config),
    now: datetime = Depends(get_now),
) -> BreakActionResponse:
    try:
        entry = start_break(db, user_id=user.id, break_type=payload.break_type, now=now, config=config)
    except ApiError as exc:
        db.rollback()
        audit_request(
            db,
            request,
            actor_type=AuditActorType.USER,
            actor_id=user.id,
            action="BREAK_START",
            success=False,
            details={"break_type": payload.break_type.value, "error_code": exc.code},
        )
        raise

    audit_request(
        db,
        request,
        actor_type=AuditActorType.USER,
        actor_id=user.id,
        action="BREAK_START",
        entity_type="break",
        entity_id=entry.id,
        details={"break_type": entry.break_type.value, "duration_limit": entry.duration_limit},
    )
    return BreakActionResponse(
        action="started",
        message=f"{entry.break_type.value} break started ({entry.duration_limit} min allowed).",
        break_entry=BreakEntryRead.model_validate(entry),
    )


@router.post("/end", response_model=BreakActionResponse)
def end(
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    config: AttendanceConfig = Depends(get_config),
    now: datetime = Depends(get_now),
) -> BreakActionResponse:
    try:
        entry = end_break(db, user_id=user.id, now=now, config=config)
    except ApiError as exc:
        db.rollback()
        audit_request(
            db,
            request,
            actor_type=AuditActorType.USER,
            actor_id=user.id,
            action="BREAK_END",
            success=False,
            details={"error_code": exc.code},
        )
        raise

    audit_request(
        db,
        request,
        actor_type=AuditActorType.USER,
        actor_id=user.id,
        action="BREAK_END",
        entity_type="break",
        entity_id=entry.id,
        details={
            "duration_minutes": entry.duration_minutes,
            "penalty_minutes": entry.penalty_minutes,
        },
    )
    message = f"Break ended after {entry.duration_minutes} min."
    if entry.penalty_minutes:
        message = f"{message} {entry.penalty_minutes} min over the limit."
    return BreakActionResponse(
        action="ended",
        message=message,
        break_entry=BreakEntryRead.model_validate(entry),
    )


@router.get("/status", response_model=BreakStatusResponse)
def status(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    config: AttendanceConfig = Depends(get_config),
    now: datetime = Depends(get_now),
) -> BreakStatusResponse:
    return BreakStatusResponse(**get_break_status(db, user_id=user.id, now=now, config=config))
