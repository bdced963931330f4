import re
import uuid

from mathkids.errors import ErrorCode, service_error

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 128


def coerce_uuid(value):
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def require_valid_email(email: str | None) -> str:
    """Return the normalized email or raise invalid_input."""
    normalized = normalize_email(email)
    if not normalized:
        raise service_error(ErrorCode.invalid_input, "Email is required")
    if not EMAIL_PATTERN.match(normalized):
        raise service_error(ErrorCode.invalid_input, "Invalid email format")
    return normalized


def require_valid_password(password: str | None, field: str = "Password") -> str:
    if not password:
        raise service_error(ErrorCode.invalid_input, f"{field} is required")
    if len(password) < PASSWORD_MIN_LENGTH:
        raise service_error(
            ErrorCode.invalid_input,
            f"{field} must be at least {PASSWORD_MIN_LENGTH} characters",
        )
    if len(password) > PASSWORD_MAX_LENGTH:
        raise service_error(
            ErrorCode.invalid_input,
            f"{field} must be at most {PASSWORD_MAX_LENGTH} characters",
        )
    return password
