"""OAuth Client service"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sso_service.core.config import logger
from sso_service.core.errors import AuthError, ErrorKind
from sso_service.models.oauth_client import OAuthClient
from sso_service.schemas.oauth import SUPPORTED_SCOPES, GrantType
from sso_service.utils.crypto import SecretCodec
from sso_service.utils.validators import validate_redirect_uri

SUPPORTED_GRANT_TYPES = frozenset(g.value for g in GrantType)


class OAuthClientService:
    """Service for OAuth client management"""

    def __init__(self, codec: SecretCodec):
        self.codec = codec

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
        Register a new OAuth client

        Args:
            db: Database session
            owner_id: User registering the client
            name: Display name
            redirect_uris: Exact redirect URIs the client may use
            grant_types: Grant types the client may use
            scopes: Scopes the client may request
            description: Optional description

        Returns:
            Tuple of (created client, plaintext client secret)

        Raises:
            AuthError: INVALID_GRANT_TYPE, INVALID_SCOPE or INVALID_REDIRECT
        """
        for grant_type in grant_types:
            if grant_type not in SUPPORTED_GRANT_TYPES:
                raise AuthError(ErrorKind.INVALID_GRANT_TYPE, f"Unsupported grant type: {grant_type}")

        for scope in scopes:
            if scope not in SUPPORTED_SCOPES:
                raise AuthError(ErrorKind.INVALID_SCOPE, f"Unsupported scope: {scope}")

        if not redirect_uris:
            raise AuthError(ErrorKind.INVALID_REDIRECT, "At least one redirect URI is required")

        for uri in redirect_uris:
            is_valid, error = validate_redirect_uri(uri)
            if not is_valid:
                raise AuthError(ErrorKind.INVALID_REDIRECT, error)

        client_secret = self.codec.generate_client_secret()

        client = OAuthClient(
            client_id=self.codec.generate_client_id(),
            client_secret_hash=self.codec.hash_secret(client_secret),
            name=name,
            description=description,
            owner_id=owner_id,
            # Order-preserving de-duplication
            redirect_uris=list(dict.fromkeys(redirect_uris)),
            grant_types=list(dict.fromkeys(grant_types)),
            scopes=list(dict.fromkeys(scopes)),
            is_active=True,
        )

        db.add(client)
        await db.commit()
        await db.refresh(client)

        logger.info(
            f"OAuth client created: {client.client_id}",
            extra={"client_id": client.client_id, "owner_id": owner_id},
        )

        return client, client_secret

    async def get_by_client_id(
        self,
        db: AsyncSession,
        client_id: str,
    ) -> OAuthClient | None:
        """
        Get OAuth client by client_id

        Args:
            db: Database session
            client_id: Client ID

        Returns:
            OAuth client or None if not found
        """
        result = await db.execute(
            select(OAuthClient).where(OAuthClient.client_id == client_id)
        )
        return result.scalar_one_or_none()

    async def get_active(self, db: AsyncSession, client_id: str) -> OAuthClient:
        """
        Get an active client

        Raises:
            AuthError: INVALID_CLIENT if unknown or deactivated
        """
        client = await self.get_by_client_id(db, client_id)
        if client is None or not client.is_active:
            logger.warning(f"Client lookup failed: unknown or inactive ({client_id})")
            raise AuthError(ErrorKind.INVALID_CLIENT, "Unknown or inactive client")
        return client

    async def authenticate(
        self,
        db: AsyncSession,
        client_id: str,
        client_secret: str | None,
    ) -> OAuthClient:
        """
        Validate OAuth client credentials

        Args:
            db: Database session
            client_id: Client ID
            client_secret: Client secret

        Returns:
            Authenticated OAuth client

        Raises:
            AuthError: INVALID_CLIENT
        """
        client = await self.get_by_client_id(db, client_id) if client_id else None

        if client is None or not client.is_active:
            self.codec.dummy_verify()
            logger.warning(f"Client authentication failed: unknown or inactive ({client_id})")
            raise AuthError(ErrorKind.INVALID_CLIENT, "Client authentication failed")

        if not client_secret or not self.codec.verify_secret(client_secret, client.client_secret_hash):
            logger.warning(f"Client authentication failed: invalid secret ({client_id})")
            raise AuthError(ErrorKind.INVALID_CLIENT, "Client authentication failed")

        return client

    def validate_grant_type(
        self,
        client: OAuthClient,
        grant_type: str,
    ) -> bool:
        """
        Validate if grant type is allowed for client

        Args:
            client: OAuth client
            grant_type: Grant type to validate

        Returns:
            True if allowed, False otherwise
        """
        is_allowed = grant_type in (client.grant_types or [])
        if not is_allowed:
            logger.warning(f"Grant type not allowed: {grant_type} for client {client.client_id}")
        return is_allowed

    async def list_clients(self, db: AsyncSession, owner_id: str) -> list[OAuthClient]:
        """Clients registered by a user, newest first"""
        result = await db.execute(
            select(OAuthClient)
            .where(OAuthClient.owner_id == owner_id)
            .order_by(OAuthClient.created_at.desc())
        )
        return list(result.scalars().all())

    async def deactivate_client(
        self,
        db: AsyncSession,
        owner_id: str,
        client_id: str,
    ) -> OAuthClient:
        """
        Deactivate a client (clients are never hard-deleted)

        Raises:
            AuthError: NOT_FOUND if the client does not exist or is not owned by the user
        """
        client = await self.get_by_client_id(db, client_id)
        if client is None or client.owner_id != owner_id:
            raise AuthError(ErrorKind.NOT_FOUND, "Client not found")

        if client.is_active:
            client.is_active = False
            await db.commit()
            await db.refresh(client)
            logger.info(f"OAuth client deactivated: {client_id}")

        return client
