"""Database models"""

from sso_service.models.access_token import AccessToken
from sso_service.models.audit_log import AuditLog
from sso_service.models.authorization_code import AuthorizationCode
from sso_service.models.database import Base, Database
from sso_service.models.lockout import LockoutRecord
from sso_service.models.oauth_client import OAuthClient
from sso_service.models.refresh_token import RefreshToken
from sso_service.models.two_factor import BackupCode, TwoFactorSecret, TwoFactorStatus
from sso_service.models.user import User

__all__ = [
    "Base",
    "Database",
    "User",
    "OAuthClient",
    "RefreshToken",
    "AccessToken",
    "AuthorizationCode",
    "TwoFactorSecret",
    "TwoFactorStatus",
    "BackupCode",
    "LockoutRecord",
    "AuditLog",
]
