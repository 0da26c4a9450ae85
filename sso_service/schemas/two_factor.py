"""Two-factor authentication schemas"""

from datetime import datetime

from pydantic import BaseModel, Field


class TwoFactorCodeRequest(BaseModel):
    """A TOTP code (or, where accepted, a backup code)"""

    code: str = Field(..., min_length=1, max_length=32)


class TwoFactorSetupResponse(BaseModel):
    """Provisioning material, shown once"""

    secret: str
    provisioning_uri: str
    backup_codes: list[str]


class BackupCodesResponse(BaseModel):
    backup_codes: list[str]


class TwoFactorStatusResponse(BaseModel):
    enabled: bool
    method: str | None = None
    status: str | None = None
    backup_codes_remaining: int = 0
    verified_at: datetime | None = None


class TwoFactorVerifyResponse(BaseModel):
    valid: bool
