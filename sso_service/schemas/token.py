"""Token schemas (JWT payload)"""

from pydantic import BaseModel, Field


class JWTPayload(BaseModel):
    """Base JWT payload"""

    iss: str = Field(..., description="Issuer")
    sub: str = Field(..., description="Subject (user_id)")
    aud: str = Field(..., description="Audience")
    exp: int = Field(..., description="Expiration time (Unix timestamp)")
    iat: int = Field(..., description="Issued at (Unix timestamp)")
    nbf: int = Field(..., description="Not before (Unix timestamp)")
    jti: str = Field(..., description="JWT ID (unique identifier)")


class AccessTokenPayload(JWTPayload):
    """Access token payload"""

    scopes: list[str] = Field(default_factory=list, description="Granted scopes")
    client_id: str | None = Field(None, description="Client the token was issued to")

    @property
    def user_id(self) -> str:
        return self.sub


class IssuedTokens(BaseModel):
    """Access and refresh token pair with expiry metadata"""

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    refresh_expires_in: int
    scopes: list[str]
    access_token_payload: AccessTokenPayload

    @property
    def scope(self) -> str:
        return " ".join(self.scopes)
