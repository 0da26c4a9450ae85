"""Authentication endpoints"""

from fastapi import APIRouter, Request, status

from sso_service.core.config import logger
from sso_service.core.dependencies import ContainerDep, CurrentToken, DBSession
from sso_service.middleware.logging import get_client_ip
from sso_service.schemas.oauth import TokenResponse
from sso_service.schemas.user import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    RegisterRequest,
    TokenValidationResponse,
    UserResponse,
)

router = APIRouter()


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, db: DBSession, container: ContainerDep):
    """Create a user account"""
    return await container.auth.register(
        db,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest, request: Request, db: DBSession, container: ContainerDep):
    """
    Password login

    With two-factor authentication enabled the request must also carry
    ``second_factor_code`` (a TOTP code or an unused backup code); without it
    the response is ``401 second_factor_required``.
    """
    logger.info("Login attempt", extra={"client_id": body.client_id, "ip_address": get_client_ip(request)})

    return await container.auth.login(
        db,
        email=body.email,
        password=body.password,
        client_id=body.client_id,
        second_factor_code=body.second_factor_code,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, db: DBSession, container: ContainerDep):
    """Exchange a refresh token for a new pair; the presented token stops working"""
    issued = await container.auth.refresh(db, body.refresh_token)
    return TokenResponse(
        access_token=issued.access_token,
        refresh_token=issued.refresh_token,
        expires_in=issued.expires_in,
        scope=issued.scope,
    )


@router.post("/logout")
async def logout(body: RefreshRequest, db: DBSession, container: ContainerDep):
    await container.auth.logout(db, body.refresh_token)
    return {"message": "Logged out"}


@router.post("/logout-all")
async def logout_all(token: CurrentToken, db: DBSession, container: ContainerDep):
    """Revoke every session of the caller"""
    count = await container.auth.logout_all(db, token.sub)
    return {"message": "All sessions revoked", "sessions_revoked": count}


@router.get("/validate", response_model=TokenValidationResponse)
async def validate(token: CurrentToken):
    """Describe the caller's own access token"""
    return TokenValidationResponse(
        user_id=token.sub,
        client_id=token.client_id,
        scopes=token.scopes,
        exp=token.exp,
        iat=token.iat,
    )


@router.post("/change-password")
async def change_password(
    body: ChangePasswordRequest,
    token: CurrentToken,
    db: DBSession,
    container: ContainerDep,
):
    """Replace the password; every session ends and the user must log in again"""
    await container.auth.change_password(db, token.sub, body.old_password, body.new_password)
    return {"message": "Password changed, please log in again"}
