"""Field rules shared by the request schemas.

Every rule is a pure function returning a ``Check``: either the cleaned value
or a human readable failure message. Schemas turn failed checks into pydantic
errors so that all failing fields of a request are reported together.
"""
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from email_validator import EmailNotValidError, validate_email

from taskmanager.models.task import PRIORITIES

BCRYPT_MAX_BYTES = 72

_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"\d")

_TRUE = {"true", "1"}
_FALSE = {"false", "0"}


@dataclass(frozen=True)
class Check:
    value: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def passed(value: Any) -> Check:
    return Check(value=value)


def failed(message: str) -> Check:
    return Check(error=message)


def trimmed_length(value: Any, min_length: int, max_length: int, message: str) -> Check:
    if not isinstance(value, str):
        return failed(message)
    value = value.strip()
    if not min_length <= len(value) <= max_length:
        return failed(message)
    return passed(value)


def name(value: Any) -> Check:
    return trimmed_length(value, 2, 50, "Name must be between 2 and 50 characters")


def email(value: Any) -> Check:
    """Validate syntax and return the canonical lower-cased address."""
    if not isinstance(value, str):
        return failed("Please provide a valid email")
    try:
        info = validate_email(value.strip(), check_deliverability=False)
    except EmailNotValidError:
        return failed("Please provide a valid email")
    return passed(info.normalized.lower())


def password(value: Any, label: str = "Password") -> Check:
    if not isinstance(value, str) or len(value) < 6:
        return failed(f"{label} must be at least 6 characters long")
    if len(value.encode("utf-8")) > BCRYPT_MAX_BYTES:
        return failed(f"{label} must be at most {BCRYPT_MAX_BYTES} bytes when UTF-8 encoded")
    if not (_UPPER.search(value) and _LOWER.search(value) and _DIGIT.search(value)):
        return failed(
            f"{label} must contain at least one uppercase letter, one lowercase letter, and one number"
        )
    return passed(value)


def required(value: Any, message: str) -> Check:
    if value is None or (isinstance(value, str) and not value):
        return failed(message)
    return passed(value)


def priority(value: Any) -> Check:
    if value not in PRIORITIES:
        return failed("Priority must be low, medium, or high")
    return passed(value)


def parse_iso_datetime(value: Any) -> Check:
    """Parse an ISO-8601 date or datetime; naive values are taken as UTC."""
    if not isinstance(value, str) or not value.strip():
        return failed("Due date must be a valid date")
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return failed("Due date must be a valid date")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return passed(parsed.astimezone(timezone.utc))


def future_date(value: datetime, now: Optional[datetime] = None) -> Check:
    # compared against the clock at evaluation time, not request receipt
    now = now or datetime.now(timezone.utc)
    if value <= now:
        return failed("Due date must be in the future")
    return passed(value)


def due_date(value: Any, now: Optional[datetime] = None) -> Check:
    check = parse_iso_datetime(value)
    if not check.ok:
        return check
    return future_date(check.value, now)


def boolean_like(value: Any, message: str) -> Check:
    if isinstance(value, bool):
        return passed(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return passed(True)
        if lowered in _FALSE:
            return passed(False)
    return failed(message)


def bounded_int(value: Any, minimum: int, maximum: Optional[int], message: str) -> Check:
    if isinstance(value, bool):
        return failed(message)
    if isinstance(value, str):
        if not re.fullmatch(r"[+-]?\d+", value.strip()):
            return failed(message)
        value = int(value)
    if not isinstance(value, int):
        return failed(message)
    if value < minimum or (maximum is not None and value > maximum):
        return failed(message)
    return passed(value)


def object_id(value: Any) -> Check:
    """Accept canonical UUID text only, the key format of every table."""
    if not isinstance(value, str):
        return failed("Invalid ID format")
    try:
        parsed = uuid.UUID(value)
    except ValueError:
        return failed("Invalid ID format")
    if str(parsed) != value.lower():
        return failed("Invalid ID format")
    return passed(str(parsed))
