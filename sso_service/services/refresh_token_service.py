"""Refresh Token service for token rotation"""

from datetime import datetime, timedelta

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sso_service.core.config import logger
from sso_service.models.refresh_token import RefreshToken
from sso_service.utils.crypto import hash_token
from sso_service.utils.timeutils import utcnow


class RefreshTokenService:
    """Persistence of opaque refresh tokens and their rotation chain"""

    def add(
        self,
        db: AsyncSession,
        value: str,
        user_id: str,
        scopes: list[str],
        expires_at: datetime,
        client_id: str | None = None,
        parent_id: str | None = None,
    ) -> RefreshToken:
        """
        Stage a refresh token record in the session (caller commits)

        Args:
            db: Database session
            value: Opaque token value (only its digest is stored)
            user_id: Owner
            scopes: Granted scopes
            expires_at: Absolute expiry
            client_id: OAuth client ID, None for first-party logins
            parent_id: Token this one was rotated from

        Returns:
            Pending RefreshToken record
        """
        refresh_token = RefreshToken(
            token_hash=hash_token(value),
            user_id=user_id,
            client_id=client_id,
            scope=" ".join(scopes),
            expires_at=expires_at,
            parent_id=parent_id,
        )
        db.add(refresh_token)
        return refresh_token

    async def get_by_value(
        self,
        db: AsyncSession,
        value: str,
    ) -> RefreshToken | None:
        """
        Get refresh token by its opaque value

        Args:
            db: Database session
            value: Opaque token value

        Returns:
            RefreshToken or None if not found
        """
        result = await db.execute(
            select(RefreshToken)
            .where(RefreshToken.token_hash == hash_token(value))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def mark_rotated(
        self,
        db: AsyncSession,
        token_id: str,
    ) -> bool:
        """
        Atomically retire a live token for rotation

        Conditional on ``revoked = false``; of two concurrent rotations of
        the same token exactly one sees a row updated.

        Returns:
            True if this call retired the token
        """
        result = await db.execute(
            update(RefreshToken)
            .where(RefreshToken.id == token_id, RefreshToken.revoked.is_(False))
            .values(revoked=True, revoked_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def link_successor(
        self,
        db: AsyncSession,
        token_id: str,
        successor_id: str,
    ) -> None:
        """Record which token replaced a rotated one"""
        await db.execute(
            update(RefreshToken)
            .where(RefreshToken.id == token_id)
            .values(replaced_by_id=successor_id)
            .execution_options(synchronize_session=False)
        )

    async def revoke(
        self,
        db: AsyncSession,
        token: RefreshToken,
    ) -> bool:
        """
        Revoke a refresh token (caller commits)

        Returns:
            True if the token was live, False if it was already revoked
        """
        result = await db.execute(
            update(RefreshToken)
            .where(RefreshToken.id == token.id, RefreshToken.revoked.is_(False))
            .values(revoked=True, revoked_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def revoke_all_for_user(
        self,
        db: AsyncSession,
        user_id: str,
    ) -> list[str]:
        """
        Revoke every live refresh token of a user (caller commits)

        Returns:
            IDs of the tokens revoked
        """
        result = await db.execute(
            select(RefreshToken.id).where(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked.is_(False),
            )
        )
        token_ids = list(result.scalars().all())
        if token_ids:
            await db.execute(
                update(RefreshToken)
                .where(RefreshToken.id.in_(token_ids))
                .values(revoked=True, revoked_at=utcnow())
                .execution_options(synchronize_session=False)
            )
        return token_ids

    async def revoke_token_chain(
        self,
        db: AsyncSession,
        token: RefreshToken,
    ) -> list[str]:
        """
        Revoke entire token family (caller commits)

        The family is every live token of the same user and client.

        Args:
            db: Database session
            token: RefreshToken that was reused

        Returns:
            IDs of the tokens revoked
        """
        conditions = [
            RefreshToken.user_id == token.user_id,
            RefreshToken.revoked.is_(False),
        ]
        if token.client_id is None:
            conditions.append(RefreshToken.client_id.is_(None))
        else:
            conditions.append(RefreshToken.client_id == token.client_id)

        result = await db.execute(select(RefreshToken.id).where(*conditions))
        token_ids = list(result.scalars().all())
        if token_ids:
            await db.execute(
                update(RefreshToken)
                .where(RefreshToken.id.in_(token_ids))
                .values(revoked=True, revoked_at=utcnow())
                .execution_options(synchronize_session=False)
            )

        logger.warning(
            f"SECURITY: Revoked {len(token_ids)} tokens in chain for user {token.user_id}",
            extra={"user_id": token.user_id, "client_id": token.client_id},
        )
        return token_ids

    async def cleanup_expired_tokens(
        self,
        db: AsyncSession,
        days_to_keep: int = 7,
    ) -> int:
        """
        Delete expired refresh tokens older than specified days

        Args:
            db: Database session
            days_to_keep: Number of days to keep expired tokens

        Returns:
            Number of deleted tokens
        """
        cutoff_date = utcnow() - timedelta(days=days_to_keep)

        result = await db.execute(
            delete(RefreshToken)
            .where(RefreshToken.expires_at < cutoff_date)
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        count = result.rowcount or 0
        if count > 0:
            logger.info(f"Cleaned up {count} expired refresh tokens")

        return count
