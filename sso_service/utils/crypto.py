"""Cryptography utilities"""

import base64
import hashlib
import secrets

import pyotp
from passlib.context import CryptContext

BACKUP_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


def hash_token(value: str) -> str:
    """
    Hash an opaque token value using SHA-256

    Refresh tokens and authorization codes are looked up by this digest;
    the raw value is never stored.

    Args:
        value: Opaque token value

    Returns:
        Hexadecimal hash string (64 characters)
    """
    return hashlib.sha256(value.encode()).hexdigest()


def constant_time_compare(a: str, b: str) -> bool:
    """
    Compare two strings in constant time to prevent timing attacks

    Args:
        a: First string
        b: Second string

    Returns:
        True if strings are equal, False otherwise
    """
    return secrets.compare_digest(a.encode(), b.encode())


def generate_secret(length: int = 32) -> str:
    """
    Generate a cryptographically secure random secret

    Args:
        length: Length of the secret in bytes

    Returns:
        URL-safe base64 secret string
    """
    return secrets.token_urlsafe(length)


class SecretCodec:
    """Secure random values, adaptive hashing and code comparison"""

    def __init__(self, bcrypt_rounds: int = 12):
        # Password hashing context with bcrypt
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=bcrypt_rounds,
        )

    # Adaptive hashing

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt"""
        return self._context.hash(password)

    def verify_password(self, plain_password: str, hashed_password: str | None) -> bool:
        """
        Verify a password against a hash (constant-time comparison)

        A missing hash still spends the time of a real verification so that
        unknown principals cannot be told apart by latency.
        """
        if not hashed_password:
            self._context.dummy_verify()
            return False
        return self._context.verify(plain_password, hashed_password)

    def dummy_verify(self) -> None:
        """Spend the time of one hash verification"""
        self._context.dummy_verify()

    # Client secrets and backup codes share the password context
    hash_secret = hash_password
    verify_secret = verify_password

    # Random identifiers

    def generate_client_id(self) -> str:
        """16 random bytes, URL-safe"""
        return base64.urlsafe_b64encode(secrets.token_bytes(16)).decode().rstrip("=")

    def generate_client_secret(self) -> str:
        """32 random bytes, URL-safe"""
        return generate_secret(32)

    def generate_refresh_token(self) -> str:
        """Opaque 256-bit refresh token"""
        return generate_secret(32)

    def generate_authorization_code(self) -> str:
        """Opaque 256-bit authorization code"""
        return generate_secret(32)

    def generate_backup_code(self, length: int = 8) -> str:
        """Random alphanumeric backup code"""
        return "".join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(length))

    def generate_totp_secret(self) -> str:
        """Base32 shared secret for authenticator apps"""
        return pyotp.random_base32(length=32)

    # Codes

    @staticmethod
    def normalize_code(code: str) -> str:
        """Strip separators and whitespace from a user-entered code"""
        return "".join(ch for ch in code.strip() if ch.isalnum()).upper()

    def verify_totp(self, secret: str, code: str, valid_window: int = 1) -> bool:
        """
        Verify a time-based one-time code

        Args:
            secret: Base32 shared secret
            code: Submitted code
            valid_window: Accepted clock skew in 30-second steps

        Returns:
            True if the code matches the current step (+/- valid_window)
        """
        cleaned = self.normalize_code(code)
        if not cleaned.isdigit() or len(cleaned) != 6:
            return False
        return pyotp.TOTP(secret).verify(cleaned, valid_window=valid_window)

    @staticmethod
    def provisioning_uri(secret: str, account_name: str, issuer: str) -> str:
        """otpauth:// URI for authenticator-app QR encoding"""
        return pyotp.TOTP(secret).provisioning_uri(name=account_name, issuer_name=issuer)
