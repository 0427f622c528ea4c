"""Domain error codes for events and bookings."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """Domain error codes."""

    MISSING_FIELD = "MISSING_FIELD"
    INVALID_DATE = "INVALID_DATE"
    INVALID_TIME = "INVALID_TIME"
    INVALID_MODE = "INVALID_MODE"
    EMPTY_COLLECTION = "EMPTY_COLLECTION"
    TOO_MANY_TAGS = "TOO_MANY_TAGS"
    INVALID_EMAIL = "INVALID_EMAIL"
    INVALID_SLUG = "INVALID_SLUG"
    EMPTY_SLUG_BASE = "EMPTY_SLUG_BASE"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    DUPLICATE_BOOKING = "DUPLICATE_BOOKING"
    SLUG_ALLOCATION_EXHAUSTED = "SLUG_ALLOCATION_EXHAUSTED"
    CONSTRAINT_VIOLATION = "CONSTRAINT_VIOLATION"
    NOT_CONNECTED = "NOT_CONNECTED"


@dataclass(frozen=True)
class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class MissingFieldError(DomainError):
    """Raised when a required field is absent or blank."""

    def __init__(self, field: str) -> None:
        super().__init__(
            code=ErrorCode.MISSING_FIELD,
            message=f"{field} is required",
        )
        object.__setattr__(self, "field", field)


class InvalidDateError(DomainError):
    def __init__(self, value: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_DATE,
            message="Invalid date format",
        )
        object.__setattr__(self, "value", value)


class InvalidTimeError(DomainError):
    def __init__(self, value: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_TIME,
            message="Invalid time format. Use HH:MM or H:MM AM/PM",
        )
        object.__setattr__(self, "value", value)


class InvalidModeError(DomainError):
    def __init__(self, value: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_MODE,
            message="Mode must be one of: online, offline, or hybrid",
        )
        object.__setattr__(self, "value", value)


class EmptyCollectionError(DomainError):
    """Raised when agenda or tags is empty."""

    def __init__(self, field: str) -> None:
        super().__init__(
            code=ErrorCode.EMPTY_COLLECTION,
            message=f"{field} must contain at least one entry",
        )
        object.__setattr__(self, "field", field)


class TooManyTagsError(DomainError):
    """Raised when an event carries more distinct tags than one write can index."""

    def __init__(self, count: int, limit: int) -> None:
        super().__init__(
            code=ErrorCode.TOO_MANY_TAGS,
            message=f"An event can have at most {limit} distinct tags",
        )
        object.__setattr__(self, "count", count)
        object.__setattr__(self, "limit", limit)


class InvalidEmailError(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.INVALID_EMAIL,
            message="Invalid email format",
        )


class InvalidSlugError(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.INVALID_SLUG,
            message="Slug must contain only lowercase letters, numbers, underscores, and hyphens",
        )


class EmptySlugBaseError(DomainError):
    """Raised when a title reduces to an empty slug."""

    def __init__(self, title: str) -> None:
        super().__init__(
            code=ErrorCode.EMPTY_SLUG_BASE,
            message="Title must contain at least one letter or digit",
        )
        object.__setattr__(self, "title", title)


class EventNotFoundError(DomainError):
    """Raised when an event is not found."""

    def __init__(self, event_ref: str) -> None:
        super().__init__(
            code=ErrorCode.EVENT_NOT_FOUND,
            message="Event not found",
        )
        object.__setattr__(self, "event_ref", event_ref)


class DuplicateBookingError(DomainError):
    """Raised when the email already holds a booking for the event."""

    def __init__(self, event_id: str, email: str) -> None:
        super().__init__(
            code=ErrorCode.DUPLICATE_BOOKING,
            message="This email has already booked this event",
        )
        object.__setattr__(self, "event_id", event_id)
        object.__setattr__(self, "email", email)


class SlugAllocationExhaustedError(DomainError):
    def __init__(self, base: str, attempts: int) -> None:
        super().__init__(
            code=ErrorCode.SLUG_ALLOCATION_EXHAUSTED,
            message="Could not allocate a unique slug, please retry",
        )
        object.__setattr__(self, "base", base)
        object.__setattr__(self, "attempts", attempts)


class ConstraintViolationError(DomainError):
    """Raised when the store rejects a write on a uniqueness or existence condition."""

    def __init__(self, field: Optional[str] = None) -> None:
        super().__init__(
            code=ErrorCode.CONSTRAINT_VIOLATION,
            message=f"Constraint violated on {field}" if field else "Constraint violated",
        )
        object.__setattr__(self, "field", field)


class NotConnectedError(DomainError):
    def __init__(self) -> None:
        super().__init__(
            code=ErrorCode.NOT_CONNECTED,
            message="Event store is unavailable",
        )
