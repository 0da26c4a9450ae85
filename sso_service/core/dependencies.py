"""FastAPI dependencies"""

from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from sso_service.core.container import ServiceContainer
from sso_service.core.errors import AuthError, ErrorKind
from sso_service.schemas.token import AccessTokenPayload
from sso_service.utils.crypto import constant_time_compare


def get_container(request: Request) -> ServiceContainer:
    """Get the service container of the running application"""
    return request.app.state.container


ContainerDep = Annotated[ServiceContainer, Depends(get_container)]


async def get_db(container: ContainerDep) -> AsyncIterator[AsyncSession]:
    """Dependency for getting async database session"""
    async for session in container.database.session():
        yield session


# Database session dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]


def extract_bearer_token(request: Request, allow_cookie: bool = False) -> str | None:
    """Bearer token from the Authorization header, or the access_token cookie"""
    authorization = request.headers.get("Authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    if allow_cookie:
        return request.cookies.get("access_token") or None
    return None


async def get_current_token(
    request: Request,
    db: DBSession,
    container: ContainerDep,
) -> AccessTokenPayload:
    """
    Validate the caller's access token

    Raises:
        AuthError: INVALID_TOKEN, EXPIRED or REVOKED
    """
    token = extract_bearer_token(request)
    if token is None:
        raise AuthError(ErrorKind.INVALID_TOKEN, "Missing bearer token")
    return await container.tokens.validate(db, token)


CurrentToken = Annotated[AccessTokenPayload, Depends(get_current_token)]


async def require_internal_auth(
    container: ContainerDep,
    x_internal_auth: Annotated[str | None, Header()] = None,
) -> None:
    """Guard for administrative endpoints (X-Internal-Auth header)"""
    expected = container.settings.internal_api_key
    if not expected or not x_internal_auth or not constant_time_compare(x_internal_auth, expected):
        raise AuthError(ErrorKind.INVALID_CREDENTIALS, "Invalid internal credentials")
