"""RSA signing key management"""

import os
from functools import cached_property
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from sso_service.core.config import logger

PUBLIC_EXPONENT = 65537


def _private_pem(key: rsa.RSAPrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def _public_pem(key: rsa.RSAPublicKey) -> bytes:
    return key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


class RSAKeyManager:
    """
    Owns the key pair that signs access tokens

    Keys live as PEM files. A missing private key is generated on first load;
    a missing public key is derived from the private one. The private file is
    written with mode 0600.
    """

    def __init__(self, private_key_path: str, public_key_path: str, kid: str):
        self.private_key_path = Path(private_key_path)
        self.public_key_path = Path(public_key_path)
        self.kid = kid
        self._private_key: rsa.RSAPrivateKey | None = None

    def load_keys(self) -> None:
        """Read the key pair from disk, generating one if absent"""
        if not self.private_key_path.exists():
            logger.warning(f"No signing key at {self.private_key_path}, generating one")
            self.generate_keys()
            return

        try:
            self._set_private_key(
                serialization.load_pem_private_key(self.private_key_path.read_bytes(), password=None)
            )
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load RSA keys: {e}")
            raise

        if not self.public_key_path.exists():
            self._write(self.public_key_path, _public_pem(self.public_key), 0o644)

        logger.info(f"RSA signing key loaded (kid={self.kid})")

    def generate_keys(self, key_size: int = 2048) -> None:
        """
        Create a fresh key pair and persist both halves

        Args:
            key_size: Modulus size in bits
        """
        self._set_private_key(rsa.generate_private_key(public_exponent=PUBLIC_EXPONENT, key_size=key_size))
        self._write(self.private_key_path, _private_pem(self._private_key), 0o600)
        self._write(self.public_key_path, _public_pem(self.public_key), 0o644)
        logger.info(f"Generated new RSA key pair ({key_size} bits, kid={self.kid})")

    @staticmethod
    def _write(path: Path, data: bytes, mode: int) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            os.chmod(path, mode)
        except OSError as e:
            logger.error(f"Failed to save RSA key to {path}: {e}")
            raise

    def _set_private_key(self, key: rsa.RSAPrivateKey) -> None:
        self._private_key = key
        # Drop cached derivations of the previous key
        for name in ("public_key", "_private_pem_text", "_public_pem_text"):
            self.__dict__.pop(name, None)

    @property
    def private_key(self) -> rsa.RSAPrivateKey:
        if self._private_key is None:
            self.load_keys()
        return self._private_key

    @cached_property
    def public_key(self) -> rsa.RSAPublicKey:
        return self.private_key.public_key()

    @cached_property
    def _private_pem_text(self) -> str:
        return _private_pem(self.private_key).decode()

    @cached_property
    def _public_pem_text(self) -> str:
        return _public_pem(self.public_key).decode()

    def get_private_key_pem(self) -> str:
        """Private key as PKCS8 PEM, for signing"""
        return self._private_pem_text

    def get_public_key_pem(self) -> str:
        """Public key as SubjectPublicKeyInfo PEM, for verification"""
        return self._public_pem_text
