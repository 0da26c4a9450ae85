"""User and authentication schemas"""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field


class RegisterRequest(BaseModel):
    """Schema for registering a user

    Password strength is checked by the service so that weak passwords
    surface as ``weak_credential`` rather than a validation error.
    """

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=255)
    first_name: str = Field("", max_length=100)
    last_name: str = Field("", max_length=100)


class LoginRequest(BaseModel):
    """Password login, with optional second factor"""

    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=255)
    client_id: str | None = None
    second_factor_code: str | None = Field(None, max_length=32)


class RefreshRequest(BaseModel):
    """Body carrying an opaque refresh token"""

    refresh_token: str = Field(..., min_length=1)


class ChangePasswordRequest(BaseModel):
    old_password: str = Field(..., min_length=1, max_length=255)
    new_password: str = Field(..., min_length=1, max_length=255)


class UserResponse(BaseModel):
    """Schema for user response (without sensitive data)"""

    id: str
    email: str
    first_name: str
    last_name: str
    is_active: bool
    is_verified: bool
    created_at: datetime
    last_login_at: datetime | None

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    """Token pair issued at login"""

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    scope: str
    user: UserResponse


class TokenValidationResponse(BaseModel):
    """Claims of the caller's own access token"""

    valid: bool = True
    user_id: str
    client_id: str | None
    scopes: list[str]
    exp: int
    iat: int
