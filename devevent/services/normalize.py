import re
from datetime import date, datetime, timezone

from dateutil import parser as date_parser
from email_validator import EmailNotValidError, validate_email

from devevent.errors import (
    InvalidDateError,
    InvalidEmailError,
    InvalidTimeError,
    MissingFieldError,
)

_NON_SLUG_CHARS = re.compile(r"[^\w\s-]", re.ASCII)
_WHITESPACE_RUN = re.compile(r"\s+")
_HYPHEN_RUN = re.compile(r"-+")
_TIME_PATTERN = re.compile(r"^(\d{1,2}):([0-5]\d)(?:\s*([ap]m))?$", re.IGNORECASE)
_DATE_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))


def normalize_slug_text(title: str) -> str:
    """Turn a human-entered title into URL-safe slug text.

    The result holds only lowercase ASCII word characters and single hyphens,
    never starts or ends with a hyphen, and may be empty.
    """
    slug = title.lower().strip()
    slug = _NON_SLUG_CHARS.sub("", slug)
    slug = _WHITESPACE_RUN.sub("-", slug)
    slug = _HYPHEN_RUN.sub("-", slug)
    return slug.strip("-")


def normalize_date(value: str) -> str:
    """Parse a calendar date in any common form and return ``YYYY-MM-DD`` (UTC)."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidDateError(value)

    # Any component missing from the input is taken from the default, so two
    # parses with different defaults only agree on a complete calendar date
    dates = [_parse_utc_date(value, default) for default in _DATE_DEFAULTS]
    if dates[0] != dates[1]:
        raise InvalidDateError(value)
    return dates[0].isoformat()


def _parse_utc_date(value: str, default: datetime) -> date:
    try:
        parsed = date_parser.parse(value.strip(), default=default)
    except (ValueError, OverflowError) as e:
        raise InvalidDateError(value) from e

    # Naive values are read as UTC
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc)
    return parsed.date()


def normalize_time(value: str) -> str:
    """Return a 24-hour ``HH:MM`` string for ``H:MM``/``HH:MM`` with optional AM/PM."""
    if not isinstance(value, str):
        raise InvalidTimeError(value)
    match = _TIME_PATTERN.match(value.strip())
    if not match:
        raise InvalidTimeError(value)

    hours = int(match.group(1))
    minutes = int(match.group(2))
    meridiem = match.group(3)

    if meridiem is None:
        if hours > 23:
            raise InvalidTimeError(value)
    else:
        if not 1 <= hours <= 12:
            raise InvalidTimeError(value)
        if meridiem.lower() == "am":
            hours = 0 if hours == 12 else hours
        else:
            hours = 12 if hours == 12 else hours + 12

    return f"{hours:02d}:{minutes:02d}"


def normalize_email(value: str) -> str:
    """Trim and lowercase an email address, rejecting malformed ones."""
    if not isinstance(value, str):
        raise InvalidEmailError()
    email = value.strip().lower()
    try:
        # Syntax only, bookings must not depend on DNS
        validate_email(email, check_deliverability=False)
    except EmailNotValidError as e:
        raise InvalidEmailError() from e
    return email


def normalize_text(field: str, value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise MissingFieldError(field)
    return value.strip()
