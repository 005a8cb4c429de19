from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

# Default HTTP status for every machine-readable attendance error code.
ERROR_STATUS_CODES: dict[str, int] = {
    "PROCESSING": 429,
    "DUPLICATE_REQUEST": 429,
    "SESSION_NOT_FOUND": 404,
    "RECORD_NOT_FOUND": 404,
    "SCHEDULE_NOT_FOUND": 404,
    "USER_NOT_FOUND": 404,
    "NO_SCHEDULE": 400,
    "SESSION_LOCKED": 403,
    "TOO_EARLY": 403,
    "TOO_LATE": 403,
    "FORBIDDEN": 403,
    "CURRENTLY_CHECKED_IN": 400,
    "ALREADY_CHECKED_IN_TODAY": 400,
    "ALREADY_CHECKED_OUT": 400,
    "NOT_CHECKED_IN": 400,
    "RECORD_TOO_OLD": 400,
    "ALREADY_ON_BREAK": 400,
    "NO_BREAK_FOUND": 400,
    "BREAK_TYPE_USED": 400,
    "BREAK_LIMIT_REACHED": 400,
    "INVALID_BREAK_TYPE": 422,
    "SESSION_EXISTS": 409,
    "DUPLICATE_RECORD": 409,
    "SESSION_ALREADY_LOCKED": 422,
    "SESSION_NOT_LOCKED": 422,
    "VALIDATION_ERROR": 422,
    "SYSTEM_ERROR": 500,
}

RETRYABLE_ERROR_CODES = frozenset({"PROCESSING"})


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message

    @property
    def retryable(self) -> bool:
        return self.code in RETRYABLE_ERROR_CODES


def attendance_error(code: str, message: str) -> ApiError:
    return ApiError(
        status_code=ERROR_STATUS_CODES.get(code, 400),
        code=code,
        message=message,
    )


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(request: Request, *, status_code: int, code: str, message: str) -> JSONResponse:
    payload = {
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
        }
    }
    headers = {"Retry-After": "1"} if code in RETRYABLE_ERROR_CODES else None
    return JSONResponse(status_code=status_code, content=payload, headers=headers)
