# gibber/core/validation.py
import re

from gibber.config import settings

EMAIL_PATTERN = re.compile(r"^[\w.=-]+@[\w.-]+\.\w{2,3}$")


def valid_email(email: str) -> bool:
    return bool(email) and EMAIL_PATTERN.match(email) is not None


def valid_password(password: str, min_length: int | None = None) -> bool:
    """Passwords only have a length rule."""
    if min_length is None:
        min_length = settings.password_min_length
    return len(password) >= min_length
