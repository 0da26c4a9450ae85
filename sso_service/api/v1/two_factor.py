"""Two-factor authentication endpoints"""

from fastapi import APIRouter
from fastapi.responses import Response

from sso_service.core.dependencies import ContainerDep, CurrentToken, DBSession
from sso_service.schemas.two_factor import (
    BackupCodesResponse,
    TwoFactorCodeRequest,
    TwoFactorSetupResponse,
    TwoFactorStatusResponse,
    TwoFactorVerifyResponse,
)

router = APIRouter()


@router.post("/setup", response_model=TwoFactorSetupResponse)
async def setup(token: CurrentToken, db: DBSession, container: ContainerDep):
    """
    Start TOTP enrollment

    Returns the shared secret, an ``otpauth://`` provisioning URI and the
    backup codes. The backup codes are shown only here; the secret can be
    fetched again as a QR image from ``/qr``.
    """
    return await container.two_factor.begin_setup(db, token.sub)


@router.get("/qr", response_class=Response)
async def qr_code(token: CurrentToken, db: DBSession, container: ContainerDep):
    """PNG QR code of the provisioning URI for the configured secret"""
    png = await container.two_factor.qr_code_png(db, token.sub)
    # The image embeds the shared secret
    return Response(content=png, media_type="image/png", headers={"Cache-Control": "no-store"})


@router.post("/enable")
async def enable(body: TwoFactorCodeRequest, token: CurrentToken, db: DBSession, container: ContainerDep):
    """Confirm enrollment with a code from the authenticator app"""
    await container.two_factor.confirm_setup(db, token.sub, body.code)
    return {"message": "Two-factor authentication enabled"}


@router.post("/disable")
async def disable(body: TwoFactorCodeRequest, token: CurrentToken, db: DBSession, container: ContainerDep):
    await container.two_factor.disable(db, token.sub, body.code)
    return {"message": "Two-factor authentication disabled"}


@router.post("/verify", response_model=TwoFactorVerifyResponse)
async def verify(body: TwoFactorCodeRequest, token: CurrentToken, db: DBSession, container: ContainerDep):
    """Check a TOTP code without changing any state"""
    return TwoFactorVerifyResponse(valid=await container.two_factor.verify(db, token.sub, body.code))


@router.get("/status", response_model=TwoFactorStatusResponse)
async def get_status(token: CurrentToken, db: DBSession, container: ContainerDep):
    return await container.two_factor.get_status(db, token.sub)


@router.post("/backup-codes/regenerate", response_model=BackupCodesResponse)
async def regenerate_backup_codes(
    body: TwoFactorCodeRequest,
    token: CurrentToken,
    db: DBSession,
    container: ContainerDep,
):
    """Replace all backup codes; requires a current TOTP code"""
    codes = await container.two_factor.regenerate_backup_codes(db, token.sub, body.code)
    return BackupCodesResponse(backup_codes=codes)
