"""OAuth schemas"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class GrantType(str, Enum):
    """OAuth2 grant types"""

    AUTHORIZATION_CODE = "authorization_code"
    REFRESH_TOKEN = "refresh_token"
    CLIENT_CREDENTIALS = "client_credentials"


# Grant types the token endpoint serves
TOKEN_ENDPOINT_GRANTS = frozenset({GrantType.AUTHORIZATION_CODE.value, GrantType.REFRESH_TOKEN.value})

# Scopes a client may be registered with
SUPPORTED_SCOPES = ("openid", "profile", "email", "offline_access")


class TokenResponse(BaseModel):
    """OAuth2 token response"""

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    scope: str = ""


class TokenErrorResponse(BaseModel):
    """OAuth2 error response"""

    error: str
    error_description: str | None = None
    error_uri: str | None = None


class OAuthClientCreate(BaseModel):
    """Schema for registering an OAuth client"""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    redirect_uris: list[str] = Field(..., min_length=1)
    grant_types: list[str] = Field(
        default_factory=lambda: [GrantType.AUTHORIZATION_CODE.value, GrantType.REFRESH_TOKEN.value]
    )
    scopes: list[str] = Field(default_factory=lambda: ["openid", "profile", "email"])


class OAuthClientResponse(BaseModel):
    """Schema for OAuth client response (never carries the secret)"""

    id: str
    client_id: str
    name: str
    description: str | None
    owner_id: str
    redirect_uris: list[str]
    grant_types: list[str]
    scopes: list[str]
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class OAuthClientCreated(OAuthClientResponse):
    """Registration result; the only place the plaintext secret appears"""

    client_secret: str


class AuthorizeResult(BaseModel):
    """Outcome of a successful authorize call"""

    code: str
    redirect_uri: str
    state: str | None = None
    expires_in: int


class IntrospectionResponse(BaseModel):
    """RFC 7662 style introspection result"""

    active: bool
    client_id: str | None = None
    user_id: str | None = None
    scopes: list[str] | None = None
    exp: int | None = None

    def to_response(self) -> dict:
        """Inactive tokens expose nothing but the flag"""
        if not self.active:
            return {"active": False}
        return self.model_dump()
