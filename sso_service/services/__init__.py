"""Business logic services"""

from sso_service.services.audit_service import AuditService
from sso_service.services.auth_service import AuthService
from sso_service.services.brute_force_protection import LockoutTracker
from sso_service.services.jwks_service import JWKSService
from sso_service.services.notification_service import LoggingNotificationSink, NotificationSink
from sso_service.services.oauth2_service import OAuth2Service
from sso_service.services.oauth_client_service import OAuthClientService
from sso_service.services.rate_limiter import RateLimiter
from sso_service.services.refresh_token_service import RefreshTokenService
from sso_service.services.token_service import TokenService
from sso_service.services.two_factor_service import TwoFactorService
from sso_service.services.user_service import UserService

__all__ = [
    "AuditService",
    "AuthService",
    "JWKSService",
    "LockoutTracker",
    "LoggingNotificationSink",
    "NotificationSink",
    "OAuth2Service",
    "OAuthClientService",
    "RateLimiter",
    "RefreshTokenService",
    "TokenService",
    "TwoFactorService",
    "UserService",
]
