"""
Service container

Builds every service from a ``Settings`` object with its collaborators
passed in explicitly. One container exists per application instance and is
reachable from request handlers through ``app.state.container``.
"""

from sso_service.core.config import Settings, logger
from sso_service.core.security import RSAKeyManager
from sso_service.models.database import Database
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
from sso_service.utils.crypto import SecretCodec


class ServiceContainer:
    """Wires the credential and token services together"""

    def __init__(
        self,
        settings: Settings,
        database: Database | None = None,
        notifier: NotificationSink | None = None,
        audit: AuditService | None = None,
        rate_limiter: RateLimiter | None = None,
    ):
        self.settings = settings

        # Infrastructure
        self.database = database or Database(
            settings.db_url,
            timeout=settings.db_timeout,
            echo=settings.db_echo,
        )
        self.key_manager = RSAKeyManager(
            settings.private_key_path,
            settings.public_key_path,
            settings.key_id,
        )
        self.codec = SecretCodec(bcrypt_rounds=settings.bcrypt_rounds)

        # Sinks
        self.notifier = notifier or LoggingNotificationSink()
        self.audit = audit or AuditService(self.database.session_maker)
        self.rate_limiter = rate_limiter or RateLimiter(
            settings.redis_url,
            limit_per_ip=settings.rate_limit_per_ip,
            credential_limit_per_ip=settings.rate_limit_credentials_per_ip,
            window=settings.rate_limit_window,
        )

        # Core services, leaves first
        self.users = UserService(self.codec)
        self.clients = OAuthClientService(self.codec)
        self.refresh_tokens = RefreshTokenService()
        self.lockout = LockoutTracker(
            threshold=settings.lockout_threshold,
            window=settings.lockout_window,
            duration=settings.lockout_duration,
            notifier=self.notifier,
        )
        self.tokens = TokenService(
            key_manager=self.key_manager,
            codec=self.codec,
            refresh_tokens=self.refresh_tokens,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
            access_token_lifetime=settings.access_token_lifetime,
            refresh_token_lifetime=settings.refresh_token_lifetime,
            audit=self.audit,
        )
        self.two_factor = TwoFactorService(
            codec=self.codec,
            issuer=settings.totp_issuer,
            valid_window=settings.totp_valid_window,
            backup_code_count=settings.backup_code_count,
            backup_code_length=settings.backup_code_length,
            audit=self.audit,
            notifier=self.notifier,
        )
        self.auth = AuthService(
            users=self.users,
            tokens=self.tokens,
            lockout=self.lockout,
            two_factor=self.two_factor,
            codec=self.codec,
            audit=self.audit,
            default_scopes=settings.default_login_scopes,
        )
        self.oauth2 = OAuth2Service(
            clients=self.clients,
            tokens=self.tokens,
            codec=self.codec,
            audit=self.audit,
            notifier=self.notifier,
            code_lifetime=settings.authorization_code_lifetime,
        )
        self.jwks = JWKSService(self.key_manager)

    async def startup(self) -> None:
        """Load signing keys and create tables"""
        self.key_manager.load_keys()
        await self.database.init()
        logger.info("Service container started")

    async def shutdown(self) -> None:
        await self.rate_limiter.close()
        await self.database.close()
        logger.info("Service container stopped")
