"""Input validation utilities"""

import re
from urllib.parse import urlsplit

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
MAX_EMAIL_LENGTH = 255

MIN_PASSWORD_LENGTH = 8
# bcrypt ignores everything past 72 bytes
MAX_PASSWORD_BYTES = 72

COMMON_PASSWORDS = frozenset(
    {
        "password", "123456", "12345678", "qwerty", "abc123",
        "monkey", "1234567", "letmein", "trustno1", "dragon",
        "baseball", "iloveyou", "master", "sunshine", "ashley",
        "bailey", "passw0rd", "shadow", "123123", "654321",
        "superman", "qazwsx", "michael", "football",
        "password1", "password123", "p@ssw0rd", "p@ssword1",
    }
)

# (pattern, missing-class message) in the order they are reported
PASSWORD_CHARACTER_RULES = (
    (re.compile(r"[A-Z]"), "an uppercase letter"),
    (re.compile(r"[a-z]"), "a lowercase letter"),
    (re.compile(r"\d"), "a digit"),
    (re.compile(r"[!@#$%^&*(),.?\":{}|<>_\-+=\[\]\\/~`';]"), "a special character"),
)


def validate_email(email: str) -> tuple[bool, str | None]:
    """
    Validate email format

    Args:
        email: Email address to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not email:
        return False, "Email is required"

    if len(email) > MAX_EMAIL_LENGTH:
        return False, f"Email is too long (max {MAX_EMAIL_LENGTH} characters)"

    if not EMAIL_PATTERN.match(email):
        return False, "Invalid email format"

    return True, None


def validate_password(password: str) -> tuple[bool, str | None]:
    """
    Check a new password against the strength policy

    The password needs at least eight characters, fits in bcrypt's 72 byte
    input, is not on the common-password list and mixes upper and lower case
    letters, digits and punctuation. Only the first failed rule is reported.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not password:
        return False, "Password is required"

    if len(password) < MIN_PASSWORD_LENGTH:
        return False, f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"

    if len(password.encode()) > MAX_PASSWORD_BYTES:
        return False, f"Password is too long (max {MAX_PASSWORD_BYTES} bytes)"

    if password.lower() in COMMON_PASSWORDS:
        return False, "Password is too common, please choose a stronger password"

    for pattern, requirement in PASSWORD_CHARACTER_RULES:
        if not pattern.search(password):
            return False, f"Password must contain at least {requirement}"

    return True, None


def validate_redirect_uri(uri: str) -> tuple[bool, str | None]:
    """
    Validate a redirect URI offered at client registration

    Registered URIs must be absolute and carry no fragment; they are later
    matched by exact string equality.
    """
    if not uri:
        return False, "Redirect URI is required"

    parts = urlsplit(uri)
    if not parts.scheme or not parts.netloc:
        return False, f"Redirect URI must be absolute: {uri}"

    if parts.fragment:
        return False, f"Redirect URI must not contain a fragment: {uri}"

    return True, None
