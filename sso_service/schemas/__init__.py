"""Pydantic schemas"""

from sso_service.schemas.oauth import (
    SUPPORTED_SCOPES,
    TOKEN_ENDPOINT_GRANTS,
    AuthorizeResult,
    GrantType,
    IntrospectionResponse,
    OAuthClientCreate,
    OAuthClientCreated,
    OAuthClientResponse,
    TokenErrorResponse,
    TokenResponse,
)
from sso_service.schemas.token import AccessTokenPayload, IssuedTokens, JWTPayload
from sso_service.schemas.two_factor import (
    BackupCodesResponse,
    TwoFactorCodeRequest,
    TwoFactorSetupResponse,
    TwoFactorStatusResponse,
    TwoFactorVerifyResponse,
)
from sso_service.schemas.user import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    RegisterRequest,
    TokenValidationResponse,
    UserResponse,
)

__all__ = [
    # OAuth
    "GrantType",
    "SUPPORTED_SCOPES",
    "TOKEN_ENDPOINT_GRANTS",
    "TokenResponse",
    "TokenErrorResponse",
    "OAuthClientCreate",
    "OAuthClientResponse",
    "OAuthClientCreated",
    "AuthorizeResult",
    "IntrospectionResponse",
    # Token
    "JWTPayload",
    "AccessTokenPayload",
    "IssuedTokens",
    # Two-factor
    "TwoFactorCodeRequest",
    "TwoFactorSetupResponse",
    "TwoFactorStatusResponse",
    "TwoFactorVerifyResponse",
    "BackupCodesResponse",
    # User
    "RegisterRequest",
    "LoginRequest",
    "LoginResponse",
    "RefreshRequest",
    "ChangePasswordRequest",
    "UserResponse",
    "TokenValidationResponse",
]
