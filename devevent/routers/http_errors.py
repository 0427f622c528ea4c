from fastapi import HTTPException

from devevent.errors import DomainError, ErrorCode

STATUS_BY_CODE = {
    ErrorCode.MISSING_FIELD: 400,
    ErrorCode.INVALID_DATE: 400,
    ErrorCode.INVALID_TIME: 400,
    ErrorCode.INVALID_MODE: 400,
    ErrorCode.EMPTY_COLLECTION: 400,
    ErrorCode.TOO_MANY_TAGS: 400,
    ErrorCode.INVALID_EMAIL: 400,
    ErrorCode.INVALID_SLUG: 400,
    ErrorCode.EMPTY_SLUG_BASE: 400,
    ErrorCode.EVENT_NOT_FOUND: 404,
    ErrorCode.DUPLICATE_BOOKING: 409,
    ErrorCode.SLUG_ALLOCATION_EXHAUSTED: 409,
    ErrorCode.CONSTRAINT_VIOLATION: 409,
    ErrorCode.NOT_CONNECTED: 503,
}


def http_error(error: DomainError) -> HTTPException:
    """Map a domain error to an HTTP error carrying only its code and safe message"""
    return HTTPException(
        status_code=STATUS_BY_CODE.get(error.code, 500),
        detail={"code": error.code.value, "message": error.message},
    )
