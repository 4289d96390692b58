"""Input checks shared by the account and shipment services."""
import re
from typing import Optional

from boxinator.errors import ValidationFailed

MIN_PASSWORD_LENGTH = 8

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_RGBA_RE = re.compile(
    r"^rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*(?:,\s*(\d*\.?\d+)\s*)?\)$"
)
_COUNTRY_CODE_RE = re.compile(r"^[A-Za-z]{2,3}$")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and bool(_EMAIL_RE.match(email.strip()))


def is_valid_rgba(color: Optional[str]) -> bool:
    """Accepts ``rgba(r, g, b[, a])`` with 0-255 channels and alpha in 0-1."""
    if not color:
        return False
    match = _RGBA_RE.match(color.strip())
    if not match:
        return False
    if any(int(channel) > 255 for channel in match.group(1, 2, 3)):
        return False
    alpha = match.group(4)
    return alpha is None or 0.0 <= float(alpha) <= 1.0


def is_valid_country_code(code: Optional[str]) -> bool:
    return bool(code) and bool(_COUNTRY_CODE_RE.match(code))


def require_text(value: Optional[str], message: str) -> str:
    if value is None or not value.strip():
        raise ValidationFailed(message)
    return value.strip()


def require_password(password: Optional[str]) -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return password
