from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from shiftclock.db import get_db
from shiftclock.errors import ApiError
from shiftclock.models import User, UserRole

USER_ID_HEADER = "X-User-Id"


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """Resolve the acting user from the identity header set by the fronting gateway."""
    raw_user_id = (request.headers.get(USER_ID_HEADER) or "").strip()
    if not raw_user_id.isdigit():
        raise ApiError(
            status_code=401,
            code="UNAUTHENTICATED",
            message="Missing or invalid user identity.",
        )

    user = db.get(User, int(raw_user_id))
    if user is None:
        raise ApiError(status_code=401, code="UNAUTHENTICATED", message="Unknown user.")
    if not user.is_active:
        raise ApiError(
            status_code=403,
            code="USER_INACTIVE",
            message="Inactive users cannot perform attendance actions.",
        )

    request.state.actor = user.role.value
    request.state.actor_id = str(user.id)
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.ADMIN:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Administrator access required.")
    return user
