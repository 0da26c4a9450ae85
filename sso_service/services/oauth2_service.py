"""OAuth2 authorization-code grant: authorize, token, introspect, revoke"""

from datetime import timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sso_service.core.config import logger
from sso_service.core.errors import AuthError, ErrorKind
from sso_service.models.authorization_code import AuthorizationCode
from sso_service.models.oauth_client import OAuthClient
from sso_service.schemas.oauth import (
    TOKEN_ENDPOINT_GRANTS,
    AuthorizeResult,
    GrantType,
    IntrospectionResponse,
    TokenResponse,
)
from sso_service.schemas.token import IssuedTokens
from sso_service.services.audit_service import AuditService
from sso_service.services.notification_service import NotificationSink, safe_notify
from sso_service.services.oauth_client_service import OAuthClientService
from sso_service.services.token_service import TokenService
from sso_service.utils.crypto import SecretCodec, hash_token
from sso_service.utils.timeutils import utcnow

# Refresh failures surface as invalid_grant on the token endpoint
_REFRESH_FAILURES = frozenset({ErrorKind.INVALID_TOKEN, ErrorKind.REVOKED, ErrorKind.EXPIRED})


class OAuth2Service:
    """
    Delegated access for registered clients

    Authorization codes are ``issued`` by :meth:`authorize` and end either
    ``consumed`` (by :meth:`exchange`) or ``expired``. Consumption is a
    conditional update on ``used_at IS NULL``, so of any number of
    concurrent exchanges of one code exactly one succeeds.
    """

    def __init__(
        self,
        clients: OAuthClientService,
        tokens: TokenService,
        codec: SecretCodec,
        audit: AuditService,
        notifier: NotificationSink | None = None,
        code_lifetime: int = 600,
    ):
        self.clients = clients
        self.tokens = tokens
        self.codec = codec
        self.audit = audit
        self.notifier = notifier
        self.code_lifetime = code_lifetime

    # Client registration

    async def create_client(
        self,
        db: AsyncSession,
        owner_id: str,
        name: str,
        redirect_uris: list[str],
        grant_types: list[str],
        scopes: list[str],
        description: str | None = None,
    ) -> tuple[OAuthClient, str]:
        """
        Register a client; the plaintext secret is returned only here

        Raises:
            AuthError: INVALID_GRANT_TYPE, INVALID_SCOPE, INVALID_REDIRECT
        """
        client, client_secret = await self.clients.create_client(
            db,
            owner_id=owner_id,
            name=name,
            redirect_uris=redirect_uris,
            grant_types=grant_types,
            scopes=scopes,
            description=description,
        )

        await self.audit.record(
            "client_created",
            "oauth2_client",
            user_id=owner_id,
            client_id=client.client_id,
            details={"name": name},
        )
        await safe_notify(
            self.notifier,
            owner_id,
            "oauth2_client_created",
            f"OAuth2 client '{name}' was registered.",
            {"client_id": client.client_id},
        )

        return client, client_secret

    async def list_clients(self, db: AsyncSession, owner_id: str) -> list[OAuthClient]:
        return await self.clients.list_clients(db, owner_id)

    async def deactivate_client(self, db: AsyncSession, owner_id: str, client_id: str) -> OAuthClient:
        client = await self.clients.deactivate_client(db, owner_id, client_id)
        await self.audit.record("client_deactivated", "oauth2_client", user_id=owner_id, client_id=client_id)
        return client

    # Authorization endpoint

    async def authorize(
        self,
        db: AsyncSession,
        client_id: str,
        redirect_uri: str,
        scope: str | None,
        user_id: str,
        state: str | None = None,
    ) -> AuthorizeResult:
        """
        Issue an authorization code for an authenticated user

        Args:
            db: Database session
            client_id: Requesting client
            redirect_uri: Must equal one registered URI exactly
            scope: Space-separated scopes; empty means the client's full set
            user_id: Authenticated user granting access
            state: Opaque client state echoed back

        Returns:
            AuthorizeResult carrying the plaintext code

        Raises:
            AuthError: INVALID_CLIENT, INVALID_REDIRECT, INVALID_SCOPE, INVALID_GRANT
        """
        client = await self.clients.get_active(db, client_id)

        if redirect_uri not in (client.redirect_uris or []):
            logger.warning(
                "Authorize rejected: redirect URI not registered",
                extra={"client_id": client_id},
            )
            raise AuthError(ErrorKind.INVALID_REDIRECT, "Redirect URI is not registered for this client")

        requested = scope.split() if scope else []
        if not requested:
            requested = list(client.scopes or [])
        for s in requested:
            if s not in (client.scopes or []):
                raise AuthError(ErrorKind.INVALID_SCOPE, f"Scope not allowed for this client: {s}")
        granted = list(dict.fromkeys(requested))

        if not self.clients.validate_grant_type(client, GrantType.AUTHORIZATION_CODE.value):
            raise AuthError(ErrorKind.INVALID_GRANT, "Client is not allowed to use the authorization code grant")

        code = self.codec.generate_authorization_code()
        db.add(
            AuthorizationCode(
                code_hash=hash_token(code),
                client_id=client.client_id,
                user_id=user_id,
                redirect_uri=redirect_uri,
                scope=" ".join(granted),
                expires_at=utcnow() + timedelta(seconds=self.code_lifetime),
            )
        )
        await db.commit()

        logger.info(
            "Authorization code issued",
            extra={"client_id": client_id, "user_id": user_id, "scope": " ".join(granted)},
        )
        await self.audit.record(
            "authorization_code_issued",
            "oauth2",
            user_id=user_id,
            client_id=client_id,
            details={"scope": " ".join(granted)},
        )

        return AuthorizeResult(
            code=code,
            redirect_uri=redirect_uri,
            state=state,
            expires_in=self.code_lifetime,
        )

    # Token endpoint

    async def exchange(
        self,
        db: AsyncSession,
        grant_type: str,
        client_id: str,
        client_secret: str | None,
        code: str | None = None,
        redirect_uri: str | None = None,
        refresh_token: str | None = None,
    ) -> TokenResponse:
        """
        Token endpoint

        Args:
            db: Database session
            grant_type: authorization_code or refresh_token
            client_id: Client ID
            client_secret: Client secret
            code: Authorization code (authorization_code grant)
            redirect_uri: Redirect URI used at authorize time (authorization_code grant)
            refresh_token: Refresh token (refresh_token grant)

        Returns:
            OAuth2 token response

        Raises:
            AuthError: UNSUPPORTED_GRANT_TYPE, INVALID_CLIENT, INVALID_GRANT, REDIRECT_MISMATCH
        """
        if grant_type not in TOKEN_ENDPOINT_GRANTS:
            raise AuthError(ErrorKind.UNSUPPORTED_GRANT_TYPE, f"Unsupported grant type: {grant_type}")

        client = await self.clients.authenticate(db, client_id, client_secret)

        if not self.clients.validate_grant_type(client, grant_type):
            raise AuthError(ErrorKind.INVALID_GRANT, "Grant type not allowed for this client")

        if grant_type == GrantType.AUTHORIZATION_CODE.value:
            issued = await self._exchange_code(db, client, code, redirect_uri)
            action = "authorization_code_exchanged"
        else:
            issued = await self._exchange_refresh_token(db, client, refresh_token)
            action = "token_refresh"

        await self.audit.record(
            action,
            "oauth2",
            user_id=issued.access_token_payload.sub,
            client_id=client.client_id,
        )

        return TokenResponse(
            access_token=issued.access_token,
            refresh_token=issued.refresh_token,
            expires_in=issued.expires_in,
            scope=issued.scope,
        )

    async def _exchange_code(
        self,
        db: AsyncSession,
        client: OAuthClient,
        code: str | None,
        redirect_uri: str | None,
    ) -> IssuedTokens:
        if not code:
            raise AuthError(ErrorKind.INVALID_GRANT, "Missing authorization code")

        result = await db.execute(
            select(AuthorizationCode)
            .where(AuthorizationCode.code_hash == hash_token(code))
            .execution_options(populate_existing=True)
        )
        record = result.scalar_one_or_none()

        if record is None:
            raise AuthError(ErrorKind.INVALID_GRANT, "Unknown authorization code")
        if record.used_at is not None:
            logger.warning(
                "Authorization code replay",
                extra={"client_id": client.client_id, "user_id": record.user_id},
            )
            raise AuthError(ErrorKind.INVALID_GRANT, "Authorization code has already been used")
        if record.is_expired:
            raise AuthError(ErrorKind.INVALID_GRANT, "Authorization code has expired")
        if record.client_id != client.client_id:
            raise AuthError(ErrorKind.INVALID_GRANT, "Authorization code was issued to another client")
        if redirect_uri != record.redirect_uri:
            raise AuthError(ErrorKind.REDIRECT_MISMATCH, "Redirect URI does not match the authorization request")

        consumed = await db.execute(
            update(AuthorizationCode)
            .where(AuthorizationCode.id == record.id, AuthorizationCode.used_at.is_(None))
            .values(used_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if consumed.rowcount != 1:
            # Lost a concurrent exchange of the same code
            await db.rollback()
            raise AuthError(ErrorKind.INVALID_GRANT, "Authorization code has already been used")

        issued = await self.tokens.issue(
            db,
            user_id=record.user_id,
            scopes=record.scopes,
            client_id=client.client_id,
            commit=False,
        )
        await db.commit()
        return issued

    async def _exchange_refresh_token(
        self,
        db: AsyncSession,
        client: OAuthClient,
        refresh_token: str | None,
    ) -> IssuedTokens:
        if not refresh_token:
            raise AuthError(ErrorKind.INVALID_GRANT, "Missing refresh token")

        try:
            return await self.tokens.rotate(db, refresh_token, client_id=client.client_id)
        except AuthError as e:
            if e.kind in _REFRESH_FAILURES:
                logger.info(
                    f"Refresh grant rejected: {e.kind.value}",
                    extra={"client_id": client.client_id},
                )
                raise AuthError(ErrorKind.INVALID_GRANT, e.message)
            raise

    # Introspection and revocation

    async def introspect(self, db: AsyncSession, token: str) -> IntrospectionResponse:
        """
        Describe an access token; anything that does not validate is inactive

        The precise failure kind is logged, never returned.
        """
        try:
            payload = await self.tokens.validate(db, token)
        except AuthError as e:
            logger.info(f"Introspection: inactive token ({e.kind.value})")
            return IntrospectionResponse(active=False)

        return IntrospectionResponse(
            active=True,
            client_id=payload.client_id,
            user_id=payload.sub,
            scopes=payload.scopes,
            exp=payload.exp,
        )

    async def revoke(self, db: AsyncSession, token: str) -> None:
        """Revoke an access or refresh token; unknown tokens succeed silently"""
        if await self.tokens.revoke_access_token(db, token):
            await self.audit.record("token_revoke", "oauth2", details={"token_type": "access_token"})
            return

        if await self.tokens.revoke_refresh_token(db, token):
            await self.audit.record("token_revoke", "oauth2", details={"token_type": "refresh_token"})
