"""OAuth2 endpoints"""

import base64
import binascii
from urllib.parse import quote, urlencode

from fastapi import APIRouter, Form, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from sso_service.core.config import logger
from sso_service.core.dependencies import ContainerDep, CurrentToken, DBSession, extract_bearer_token
from sso_service.core.errors import AuthError, ErrorKind
from sso_service.schemas.oauth import (
    OAuthClientCreate,
    OAuthClientCreated,
    OAuthClientResponse,
    TokenResponse,
)

router = APIRouter()

NO_STORE = {"Cache-Control": "no-store", "Pragma": "no-cache"}


def _with_query(uri: str, params: dict[str, str | None]) -> str:
    """Append query parameters to a redirect URI"""
    query = urlencode({k: v for k, v in params.items() if v is not None})
    separator = "&" if "?" in uri else "?"
    return f"{uri}{separator}{query}"


def _error_redirect(redirect_uri: str, error: str, description: str, state: str | None) -> RedirectResponse:
    """Report an authorization error to the client's (verified) redirect URI"""
    return RedirectResponse(
        _with_query(redirect_uri, {"error": error, "error_description": description, "state": state}),
        status_code=status.HTTP_302_FOUND,
    )


def _client_credentials(
    request: Request,
    client_id: str | None,
    client_secret: str | None,
) -> tuple[str, str | None]:
    """
    Client credentials from the form body, or from HTTP Basic auth

    Raises:
        AuthError: INVALID_CLIENT when neither carries a client id
    """
    if client_id:
        return client_id, client_secret

    scheme, _, encoded = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "basic" and encoded:
        try:
            decoded = base64.b64decode(encoded.strip()).decode()
        except (binascii.Error, UnicodeDecodeError):
            raise AuthError(ErrorKind.INVALID_CLIENT, "Malformed client credentials")
        basic_id, _, basic_secret = decoded.partition(":")
        if basic_id:
            return basic_id, basic_secret

    raise AuthError(ErrorKind.INVALID_CLIENT, "Client authentication required")


@router.get("/authorize")
async def authorize(
    request: Request,
    db: DBSession,
    container: ContainerDep,
    client_id: str,
    redirect_uri: str,
    response_type: str = "code",
    scope: str | None = None,
    state: str | None = None,
):
    """
    OAuth2 Authorization Endpoint

    The user must be authenticated with a bearer token or the
    ``access_token`` cookie; otherwise they are sent to the login page with
    a ``return_to`` pointing back here.

    Unknown clients and unregistered redirect URIs are answered with a JSON
    error and never redirected. Every later error is reported to the
    client's redirect URI as ``?error=...&state=...``.
    """
    client = await container.clients.get_active(db, client_id)
    if redirect_uri not in (client.redirect_uris or []):
        raise AuthError(ErrorKind.INVALID_REDIRECT, "Redirect URI is not registered for this client")

    token = extract_bearer_token(request, allow_cookie=True)
    try:
        if token is None:
            raise AuthError(ErrorKind.INVALID_TOKEN, "Not authenticated")
        payload = await container.tokens.validate(db, token)
    except AuthError as e:
        logger.info(f"Authorize: user not authenticated ({e.kind.value}), redirecting to login")
        login_url = container.settings.login_url
        separator = "&" if "?" in login_url else "?"
        return RedirectResponse(
            f"{login_url}{separator}return_to={quote(str(request.url), safe='')}",
            status_code=status.HTTP_302_FOUND,
        )

    if response_type != "code":
        return _error_redirect(redirect_uri, "unsupported_response_type", "Only response_type=code is supported", state)

    try:
        result = await container.oauth2.authorize(
            db,
            client_id=client_id,
            redirect_uri=redirect_uri,
            scope=scope,
            user_id=payload.sub,
            state=state,
        )
    except AuthError as e:
        if e.kind == ErrorKind.INVALID_SCOPE:
            return _error_redirect(redirect_uri, "invalid_scope", e.message, state)
        if e.kind == ErrorKind.INVALID_GRANT:
            return _error_redirect(redirect_uri, "unauthorized_client", e.message, state)
        raise

    return RedirectResponse(
        _with_query(result.redirect_uri, {"code": result.code, "state": result.state}),
        status_code=status.HTTP_302_FOUND,
    )


@router.post("/token", response_model=TokenResponse)
async def token_endpoint(
    request: Request,
    db: DBSession,
    container: ContainerDep,
    grant_type: str = Form(...),
    client_id: str | None = Form(None),
    client_secret: str | None = Form(None),
    code: str | None = Form(None),
    redirect_uri: str | None = Form(None),
    refresh_token: str | None = Form(None),
):
    """
    OAuth2 Token Endpoint

    Supports:
    - Authorization Code Grant: code + redirect_uri -> access_token + refresh_token
    - Refresh Token Grant: refresh_token -> new access_token + new refresh_token

    Client credentials come from the form body or HTTP Basic auth.
    """
    client_id, client_secret = _client_credentials(request, client_id, client_secret)

    logger.info(
        f"Token endpoint called: grant_type={grant_type}, client_id={client_id}",
        extra={"grant_type": grant_type, "client_id": client_id},
    )

    response = await container.oauth2.exchange(
        db,
        grant_type=grant_type,
        client_id=client_id,
        client_secret=client_secret,
        code=code,
        redirect_uri=redirect_uri,
        refresh_token=refresh_token,
    )
    return JSONResponse(content=response.model_dump(), headers=NO_STORE)


@router.post("/introspect")
async def introspect(
    request: Request,
    db: DBSession,
    container: ContainerDep,
    token: str = Form(...),
    client_id: str | None = Form(None),
    client_secret: str | None = Form(None),
):
    """Token introspection for authenticated clients"""
    client_id, client_secret = _client_credentials(request, client_id, client_secret)
    await container.clients.authenticate(db, client_id, client_secret)

    result = await container.oauth2.introspect(db, token)
    return JSONResponse(content=result.to_response(), headers=NO_STORE)


@router.post("/revoke")
async def revoke(
    request: Request,
    db: DBSession,
    container: ContainerDep,
    token: str = Form(...),
    token_type_hint: str | None = Form(None),
    client_id: str | None = Form(None),
    client_secret: str | None = Form(None),
):
    """
    Token revocation

    Always answers 200 for authenticated clients, whether or not the token
    existed.
    """
    client_id, client_secret = _client_credentials(request, client_id, client_secret)
    await container.clients.authenticate(db, client_id, client_secret)

    await container.oauth2.revoke(db, token)
    return JSONResponse(content={}, headers=NO_STORE)


@router.post("/clients", response_model=OAuthClientCreated, status_code=status.HTTP_201_CREATED)
async def create_client(body: OAuthClientCreate, token: CurrentToken, db: DBSession, container: ContainerDep):
    """Register a client; the secret is only ever shown in this response"""
    client, client_secret = await container.oauth2.create_client(
        db,
        owner_id=token.sub,
        name=body.name,
        redirect_uris=body.redirect_uris,
        grant_types=body.grant_types,
        scopes=body.scopes,
        description=body.description,
    )
    return OAuthClientCreated(
        **OAuthClientResponse.model_validate(client).model_dump(),
        client_secret=client_secret,
    )


@router.get("/clients", response_model=list[OAuthClientResponse])
async def list_clients(token: CurrentToken, db: DBSession, container: ContainerDep):
    return await container.oauth2.list_clients(db, token.sub)


@router.post("/clients/{client_id}/deactivate", response_model=OAuthClientResponse)
async def deactivate_client(client_id: str, token: CurrentToken, db: DBSession, container: ContainerDep):
    return await container.oauth2.deactivate_client(db, token.sub, client_id)
