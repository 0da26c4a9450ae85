"""Authentication service"""

from sqlalchemy.ext.asyncio import AsyncSession

from sso_service.core.config import logger
from sso_service.core.errors import AuthError, ErrorKind
from sso_service.schemas.token import IssuedTokens
from sso_service.schemas.user import LoginResponse, UserResponse
from sso_service.services.audit_service import AuditService
from sso_service.services.brute_force_protection import LockoutTracker
from sso_service.services.token_service import TokenService
from sso_service.services.two_factor_service import TwoFactorService
from sso_service.services.user_service import UserService
from sso_service.utils.crypto import SecretCodec
from sso_service.utils.validators import validate_email, validate_password


class AuthService:
    """Registration, password login, session refresh and logout"""

    def __init__(
        self,
        users: UserService,
        tokens: TokenService,
        lockout: LockoutTracker,
        two_factor: TwoFactorService,
        codec: SecretCodec,
        audit: AuditService,
        default_scopes: list[str] | None = None,
    ):
        self.users = users
        self.tokens = tokens
        self.lockout = lockout
        self.two_factor = two_factor
        self.codec = codec
        self.audit = audit
        self.default_scopes = list(default_scopes or ["openid", "profile", "email"])

    async def register(
        self,
        db: AsyncSession,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
    ) -> UserResponse:
        """
        Register a new user

        Args:
            db: Database session
            email: Email address (normalized to lower case)
            password: Plain text password
            first_name: Given name
            last_name: Family name

        Returns:
            Public projection of the created user

        Raises:
            AuthError: WEAK_CREDENTIAL, ALREADY_EXISTS
        """
        email = self.users.normalize_email(email)

        is_valid, error = validate_email(email)
        if not is_valid:
            raise AuthError(ErrorKind.WEAK_CREDENTIAL, error)

        is_valid, error = validate_password(password)
        if not is_valid:
            raise AuthError(ErrorKind.WEAK_CREDENTIAL, error)

        user = await self.users.create_user(db, email, password, first_name, last_name)

        await self.audit.record("user_registered", "user", user_id=user.id)

        return UserResponse.model_validate(user)

    async def login(
        self,
        db: AsyncSession,
        email: str,
        password: str,
        client_id: str | None = None,
        second_factor_code: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> LoginResponse:
        """
        Authenticate with email and password (and second factor when enabled)

        Args:
            db: Database session
            email: Email address
            password: Plain text password
            client_id: Client the session is opened for
            second_factor_code: TOTP or backup code
            ip_address: Client IP address
            user_agent: Client user agent

        Returns:
            LoginResponse with the token pair and the public user

        Raises:
            AuthError: ACCOUNT_LOCKED, INVALID_CREDENTIALS,
                SECOND_FACTOR_REQUIRED, INVALID_SECOND_FACTOR
        """
        email = self.users.normalize_email(email)

        if await self.lockout.is_locked(db, email):
            logger.warning("Login rejected: identity locked", extra={"identity": email})
            await self.audit.log_login_failed(email, "account_locked", ip_address=ip_address, user_agent=user_agent)
            raise AuthError(ErrorKind.ACCOUNT_LOCKED, "Too many failed attempts. Try again later.")

        user = await self.users.get_by_email(db, email)

        if user is None:
            # Equalize timing with a real verification
            self.codec.dummy_verify()
            await self.lockout.record_failure(db, email)
            await self.audit.log_login_failed(email, "unknown_user", ip_address=ip_address, user_agent=user_agent)
            raise AuthError(ErrorKind.INVALID_CREDENTIALS, "Invalid email or password")

        if not self.codec.verify_password(password, user.password_hash):
            await self.lockout.record_failure(db, email, user_id=user.id)
            await self.audit.log_login_failed(
                email, "invalid_password", user_id=user.id, ip_address=ip_address, user_agent=user_agent
            )
            raise AuthError(ErrorKind.INVALID_CREDENTIALS, "Invalid email or password")

        if not user.is_active:
            await self.audit.log_login_failed(
                email, "inactive_user", user_id=user.id, ip_address=ip_address, user_agent=user_agent
            )
            raise AuthError(ErrorKind.INVALID_CREDENTIALS, "Invalid email or password")

        if await self.two_factor.is_enabled(db, user.id):
            if not second_factor_code:
                raise AuthError(ErrorKind.SECOND_FACTOR_REQUIRED, "Second factor code required")

            if not await self.two_factor.verify_second_factor(db, user.id, second_factor_code):
                await self.lockout.record_failure(db, email, user_id=user.id)
                await self.audit.log_login_failed(
                    email, "invalid_second_factor", user_id=user.id, ip_address=ip_address, user_agent=user_agent
                )
                raise AuthError(ErrorKind.INVALID_SECOND_FACTOR, "Invalid second factor code")

        await self.lockout.record_success(db, email)
        await self.users.record_login(db, user, ip_address)

        issued = await self.tokens.issue(db, user.id, self.default_scopes, client_id=client_id)

        await self.audit.log_login_success(user.id, client_id, ip_address=ip_address, user_agent=user_agent)

        return self._login_response(issued, UserResponse.model_validate(user))

    @staticmethod
    def _login_response(issued: IssuedTokens, user: UserResponse) -> LoginResponse:
        return LoginResponse(
            access_token=issued.access_token,
            refresh_token=issued.refresh_token,
            expires_in=issued.expires_in,
            scope=issued.scope,
            user=user,
        )

    async def refresh(self, db: AsyncSession, refresh_token: str) -> IssuedTokens:
        """
        Rotate a refresh token

        Raises:
            AuthError: INVALID_TOKEN, REVOKED, EXPIRED
        """
        issued = await self.tokens.rotate(db, refresh_token)
        await self.audit.record("token_refresh", "token", user_id=issued.access_token_payload.sub)
        return issued

    async def logout(self, db: AsyncSession, refresh_token: str) -> None:
        """Revoke one session; unknown tokens are ignored"""
        if await self.tokens.revoke_refresh_token(db, refresh_token):
            await self.audit.record("logout", "auth")

    async def logout_all(self, db: AsyncSession, user_id: str) -> int:
        """
        Revoke every session of a user

        Returns:
            Number of refresh tokens revoked
        """
        count = await self.tokens.revoke_all_for_user(db, user_id)
        await self.audit.record("logout_all", "auth", user_id=user_id, details={"sessions": count})
        return count

    async def change_password(
        self,
        db: AsyncSession,
        user_id: str,
        old_password: str,
        new_password: str,
    ) -> None:
        """
        Replace the password and end every session

        Raises:
            AuthError: NOT_FOUND, INVALID_CREDENTIALS, WEAK_CREDENTIAL
        """
        user = await self.users.get_by_id(db, user_id)
        if user is None:
            raise AuthError(ErrorKind.NOT_FOUND, "User not found")

        if not self.codec.verify_password(old_password, user.password_hash):
            raise AuthError(ErrorKind.INVALID_CREDENTIALS, "Current password is incorrect")

        is_valid, error = validate_password(new_password)
        if not is_valid:
            raise AuthError(ErrorKind.WEAK_CREDENTIAL, error)

        await self.users.set_password(db, user, new_password)
        await self.tokens.revoke_all_for_user(db, user_id)

        await self.audit.record("password_changed", "user", user_id=user_id)
