"""Utility modules"""

from sso_service.utils.crypto import (
    SecretCodec,
    constant_time_compare,
    generate_secret,
    hash_token,
)
from sso_service.utils.timeutils import ensure_aware, utcnow
from sso_service.utils.validators import (
    validate_email,
    validate_password,
    validate_redirect_uri,
)

__all__ = [
    "SecretCodec",
    "hash_token",
    "generate_secret",
    "constant_time_compare",
    "utcnow",
    "ensure_aware",
    "validate_email",
    "validate_password",
    "validate_redirect_uri",
]
