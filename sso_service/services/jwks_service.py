"""JWKS (JSON Web Key Set) service"""

import base64

from sso_service.core.security import RSAKeyManager


class JWKSService:
    """Publishes the access-token verification key"""

    def __init__(self, key_manager: RSAKeyManager):
        self.key_manager = key_manager

    def get_jwks(self) -> dict:
        """
        Get JWKS (JSON Web Key Set) for public key distribution

        Returns:
            JWKS dictionary with public keys
        """
        public_numbers = self.key_manager.public_key.public_numbers()

        return {
            "keys": [
                {
                    "kty": "RSA",
                    "use": "sig",
                    "kid": self.key_manager.kid,
                    "alg": "RS256",
                    "n": self._int_to_base64url(public_numbers.n),
                    "e": self._int_to_base64url(public_numbers.e),
                }
            ]
        }

    @staticmethod
    def _int_to_base64url(value: int) -> str:
        """Big-endian unsigned integer, base64url without padding"""
        value_bytes = value.to_bytes((value.bit_length() + 7) // 8, byteorder="big")
        return base64.urlsafe_b64encode(value_bytes).decode("utf-8").rstrip("=")
