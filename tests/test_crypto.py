"""
Unit tests for hashing, random identifiers and one-time codes.
"""

import pyotp
import pytest

from sso_service.utils.crypto import (
    BACKUP_CODE_ALPHABET,
    SecretCodec,
    constant_time_compare,
    hash_token,
)


@pytest.fixture
def codec():
    return SecretCodec(bcrypt_rounds=4)


class TestHashing:
    """Tests for adaptive and digest hashing."""

    def test_password_roundtrip(self, codec):
        hashed = codec.hash_password("Corr3ct!Horse")

        assert hashed != "Corr3ct!Horse"
        assert codec.verify_password("Corr3ct!Horse", hashed)
        assert not codec.verify_password("corr3ct!horse", hashed)

    def test_same_password_hashes_differently(self, codec):
        assert codec.hash_password("Corr3ct!Horse") != codec.hash_password("Corr3ct!Horse")

    def test_missing_hash_never_verifies(self, codec):
        assert not codec.verify_password("anything", None)
        assert not codec.verify_password("anything", "")

    def test_hash_token_is_sha256_hex(self):
        digest = hash_token("opaque-value")

        assert len(digest) == 64
        assert digest == hash_token("opaque-value")
        assert digest != hash_token("opaque-value2")

    def test_constant_time_compare(self):
        assert constant_time_compare("abc", "abc")
        assert not constant_time_compare("abc", "abd")


class TestRandomValues:
    """Tests for generated identifiers and codes."""

    def test_client_ids_are_unique(self, codec):
        ids = {codec.generate_client_id() for _ in range(50)}
        assert len(ids) == 50

    def test_refresh_tokens_carry_256_bits(self, codec):
        # 32 bytes -> 43 base64url characters
        assert len(codec.generate_refresh_token()) >= 43

    def test_backup_code_shape(self, codec):
        code = codec.generate_backup_code(10)

        assert len(code) == 10
        assert all(ch in BACKUP_CODE_ALPHABET for ch in code)

    def test_totp_secret_is_base32(self, codec):
        secret = codec.generate_totp_secret()
        # pyotp accepts it and produces a 6 digit code
        assert len(pyotp.TOTP(secret).now()) == 6


class TestCodes:
    """Tests for code normalization and TOTP verification."""

    def test_normalize_code(self):
        assert SecretCodec.normalize_code(" ab12-cd34 ") == "AB12CD34"

    def test_verify_totp_accepts_current_code(self, codec):
        secret = codec.generate_totp_secret()
        code = pyotp.TOTP(secret).now()

        assert codec.verify_totp(secret, code)
        assert codec.verify_totp(secret, f"{code[:3]} {code[3:]}")

    def test_verify_totp_rejects_malformed(self, codec):
        secret = codec.generate_totp_secret()

        assert not codec.verify_totp(secret, "12345")
        assert not codec.verify_totp(secret, "abcdef")
        assert not codec.verify_totp(secret, "")

    def test_provisioning_uri(self):
        uri = SecretCodec.provisioning_uri("JBSWY3DPEHPK3PXP", "alice@example.com", "SSO Service")

        assert uri.startswith("otpauth://totp/")
        assert "secret=JBSWY3DPEHPK3PXP" in uri
        assert "issuer=SSO%20Service" in uri
