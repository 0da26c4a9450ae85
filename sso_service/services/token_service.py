"""Token service for JWT operations"""

import uuid
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import ValidationError
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sso_service.core.config import logger
from sso_service.core.errors import AuthError, ErrorKind
from sso_service.core.security import RSAKeyManager
from sso_service.models.access_token import AccessToken
from sso_service.models.refresh_token import RefreshToken
from sso_service.schemas.token import AccessTokenPayload, IssuedTokens
from sso_service.services.audit_service import AuditService
from sso_service.services.refresh_token_service import RefreshTokenService
from sso_service.utils.crypto import SecretCodec
from sso_service.utils.timeutils import utcnow


class TokenService:
    """Mints, rotates, revokes and validates access/refresh token pairs"""

    algorithm = "RS256"

    def __init__(
        self,
        key_manager: RSAKeyManager,
        codec: SecretCodec,
        refresh_tokens: RefreshTokenService,
        issuer: str,
        audience: str,
        access_token_lifetime: int = 3600,
        refresh_token_lifetime: int = 604800,
        audit: AuditService | None = None,
    ):
        self.key_manager = key_manager
        self.codec = codec
        self.refresh_tokens = refresh_tokens
        self.issuer = issuer
        self.audience = audience
        self.access_token_lifetime = access_token_lifetime
        self.refresh_token_lifetime = refresh_token_lifetime
        self.audit = audit

    def create_access_token(
        self,
        user_id: str,
        scopes: list[str],
        client_id: str | None = None,
    ) -> tuple[str, AccessTokenPayload]:
        """
        Create a signed access token

        Args:
            user_id: User ID (subject)
            scopes: Granted scopes
            client_id: OAuth client ID, omitted from the claims when None

        Returns:
            Tuple of (token string, payload)
        """
        now = int(utcnow().timestamp())

        payload = AccessTokenPayload(
            iss=self.issuer,
            sub=user_id,
            aud=self.audience,
            exp=now + self.access_token_lifetime,
            iat=now,
            nbf=now,
            jti=str(uuid.uuid4()),
            scopes=list(scopes),
            client_id=client_id,
        )

        token = jwt.encode(
            payload.model_dump(exclude_none=True),
            self.key_manager.get_private_key_pem(),
            algorithm=self.algorithm,
            headers={"kid": self.key_manager.kid},
        )

        return token, payload

    async def issue(
        self,
        db: AsyncSession,
        user_id: str,
        scopes: list[str],
        client_id: str | None = None,
        parent: RefreshToken | None = None,
        commit: bool = True,
    ) -> IssuedTokens:
        """
        Issue an access/refresh pair and persist both as linked records

        Args:
            db: Database session
            user_id: User ID (subject)
            scopes: Granted scopes
            client_id: OAuth client ID
            parent: Refresh token being rotated, if any
            commit: Commit the unit of work; False when the caller owns it

        Returns:
            IssuedTokens with both tokens and expiry metadata
        """
        access_token, payload = self.create_access_token(user_id, scopes, client_id)

        refresh_value = self.codec.generate_refresh_token()
        refresh_record = self.refresh_tokens.add(
            db,
            value=refresh_value,
            user_id=user_id,
            scopes=scopes,
            expires_at=utcnow() + timedelta(seconds=self.refresh_token_lifetime),
            client_id=client_id,
            parent_id=parent.id if parent is not None else None,
        )
        await db.flush()

        db.add(
            AccessToken(
                jti=payload.jti,
                user_id=user_id,
                client_id=client_id,
                refresh_token_id=refresh_record.id,
                scope=" ".join(scopes),
                expires_at=datetime.fromtimestamp(payload.exp, tz=timezone.utc),
            )
        )
        if parent is not None:
            await self.refresh_tokens.link_successor(db, parent.id, refresh_record.id)

        if commit:
            await db.commit()
        else:
            await db.flush()

        logger.info(
            "Token pair issued",
            extra={
                "user_id": user_id,
                "client_id": client_id,
                "jti": payload.jti,
                "rotated": parent is not None,
            },
        )

        return IssuedTokens(
            access_token=access_token,
            refresh_token=refresh_value,
            expires_in=self.access_token_lifetime,
            refresh_expires_in=self.refresh_token_lifetime,
            scopes=list(scopes),
            access_token_payload=payload,
        )

    async def rotate(
        self,
        db: AsyncSession,
        refresh_token: str,
        client_id: str | None = None,
    ) -> IssuedTokens:
        """
        Exchange a refresh token for a new pair (strict rotation)

        The presented value is retired and a new one returned with the same
        scopes. Presenting a value that was already rotated is treated as
        theft: every live token of the same user and client is revoked.

        Args:
            db: Database session
            refresh_token: Opaque refresh token
            client_id: If given, the token must have been issued to this client

        Returns:
            New IssuedTokens

        Raises:
            AuthError: INVALID_TOKEN, REVOKED or EXPIRED
        """
        token = await self.refresh_tokens.get_by_value(db, refresh_token)

        if token is None:
            raise AuthError(ErrorKind.INVALID_TOKEN, "Refresh token not found")

        if client_id is not None and token.client_id != client_id:
            logger.warning(
                "Refresh token presented by another client",
                extra={"token_client_id": token.client_id, "client_id": client_id},
            )
            raise AuthError(ErrorKind.INVALID_TOKEN, "Refresh token was issued to another client")

        if token.revoked:
            if token.replaced_by_id is not None:
                # SECURITY: Refresh token reuse detected!
                logger.warning(
                    f"SECURITY: Refresh token reuse detected! user_id={token.user_id}",
                    extra={"user_id": token.user_id, "client_id": token.client_id},
                )
                revoked_ids = await self.refresh_tokens.revoke_token_chain(db, token)
                await self._revoke_access_tokens_for(db, revoked_ids)
                await db.commit()
                if self.audit is not None:
                    await self.audit.log_security_incident(
                        "refresh_token_reuse",
                        user_id=token.user_id,
                        client_id=token.client_id,
                        details={"revoked_tokens": len(revoked_ids)},
                    )
                raise AuthError(ErrorKind.REVOKED, "Refresh token has been revoked (reuse detected)")
            raise AuthError(ErrorKind.REVOKED, "Refresh token has been revoked")

        if token.is_expired:
            raise AuthError(ErrorKind.EXPIRED, "Refresh token has expired")

        if not await self.refresh_tokens.mark_rotated(db, token.id):
            # Lost a concurrent rotation of the same value
            await db.rollback()
            raise AuthError(ErrorKind.REVOKED, "Refresh token has been revoked")

        issued = await self.issue(
            db,
            user_id=token.user_id,
            scopes=token.scopes,
            client_id=token.client_id,
            parent=token,
            commit=False,
        )
        await db.commit()
        return issued

    def decode_token(self, token: str, verify_exp: bool = True) -> dict:
        """
        Decode and verify a JWT access token

        Raises:
            AuthError: EXPIRED or INVALID_TOKEN
        """
        try:
            return jwt.decode(
                token,
                self.key_manager.get_public_key_pem(),
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_exp": verify_exp},
            )
        except ExpiredSignatureError:
            raise AuthError(ErrorKind.EXPIRED, "Access token has expired")
        except JWTError as e:
            logger.debug(f"Token decode failed: {e}")
            raise AuthError(ErrorKind.INVALID_TOKEN, "Invalid access token")

    async def validate(
        self,
        db: AsyncSession,
        access_token: str,
    ) -> AccessTokenPayload:
        """
        Validate an access token

        Args:
            db: Database session
            access_token: JWT token string

        Returns:
            AccessTokenPayload

        Raises:
            AuthError: INVALID_TOKEN, EXPIRED or REVOKED
        """
        claims = self.decode_token(access_token)

        try:
            payload = AccessTokenPayload(**claims)
        except ValidationError:
            raise AuthError(ErrorKind.INVALID_TOKEN, "Malformed access token claims")

        record = await self._get_access_record(db, payload.jti)
        if record is None:
            raise AuthError(ErrorKind.INVALID_TOKEN, "Unknown access token")

        if record.revoked_at is not None:
            raise AuthError(ErrorKind.REVOKED, "Access token has been revoked")

        return payload

    async def _get_access_record(self, db: AsyncSession, jti: str) -> AccessToken | None:
        result = await db.execute(
            select(AccessToken)
            .where(AccessToken.jti == jti)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def revoke(self, db: AsyncSession, token_id: str) -> bool:
        """
        Revoke an access-token record by ID (idempotent)

        Returns:
            True if the record exists
        """
        result = await db.execute(
            select(AccessToken)
            .where(AccessToken.id == token_id)
            .execution_options(populate_existing=True)
        )
        record = result.scalar_one_or_none()
        if record is None:
            return False

        if record.revoked_at is None:
            record.revoked_at = utcnow()
            await db.commit()
            logger.info("Access token revoked", extra={"user_id": record.user_id, "jti": record.jti})

        return True

    async def revoke_access_token(self, db: AsyncSession, access_token: str) -> bool:
        """
        Revoke an access token by value; expired tokens are accepted

        Returns:
            True if the value is a genuine access token of this service
        """
        try:
            claims = self.decode_token(access_token, verify_exp=False)
        except AuthError:
            return False

        record = await self._get_access_record(db, str(claims.get("jti", "")))
        if record is None:
            return False

        return await self.revoke(db, record.id)

    async def revoke_refresh_token(self, db: AsyncSession, refresh_token: str) -> bool:
        """
        Revoke a refresh token and the access tokens issued with it

        Returns:
            True if the value is a known refresh token
        """
        token = await self.refresh_tokens.get_by_value(db, refresh_token)
        if token is None:
            return False

        await self.refresh_tokens.revoke(db, token)
        await self._revoke_access_tokens_for(db, [token.id])
        await db.commit()

        logger.info("Refresh token revoked", extra={"user_id": token.user_id})
        return True

    async def revoke_all_for_user(self, db: AsyncSession, user_id: str) -> int:
        """
        Revoke every refresh and access token of a user

        Returns:
            Number of refresh tokens revoked
        """
        revoked_ids = await self.refresh_tokens.revoke_all_for_user(db, user_id)
        await db.execute(
            update(AccessToken)
            .where(AccessToken.user_id == user_id, AccessToken.revoked_at.is_(None))
            .values(revoked_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        logger.info(
            f"Revoked all sessions ({len(revoked_ids)} refresh tokens)",
            extra={"user_id": user_id},
        )
        return len(revoked_ids)

    async def _revoke_access_tokens_for(self, db: AsyncSession, refresh_token_ids: list[str]) -> None:
        if not refresh_token_ids:
            return
        await db.execute(
            update(AccessToken)
            .where(
                AccessToken.refresh_token_id.in_(refresh_token_ids),
                AccessToken.revoked_at.is_(None),
            )
            .values(revoked_at=utcnow())
            .execution_options(synchronize_session=False)
        )

    async def cleanup_expired(self, db: AsyncSession, days_to_keep: int = 7) -> int:
        """
        Delete token records that expired more than ``days_to_keep`` days ago

        Returns:
            Number of deleted records
        """
        cutoff_date = utcnow() - timedelta(days=days_to_keep)
        result = await db.execute(
            delete(AccessToken)
            .where(AccessToken.expires_at < cutoff_date)
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        access_count = result.rowcount or 0
        refresh_count = await self.refresh_tokens.cleanup_expired_tokens(db, days_to_keep)
        return access_count + refresh_count
