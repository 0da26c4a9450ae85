"""JWKS endpoints"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from sso_service.core.dependencies import ContainerDep

router = APIRouter()


@router.get("/jwks.json")
async def get_jwks(container: ContainerDep):
    """
    Get JWKS (JSON Web Key Set)

    Returns the public key resource servers use to verify access tokens.
    This endpoint should be cached by clients.
    """
    return JSONResponse(
        content=container.jwks.get_jwks(),
        headers={"Cache-Control": "public, max-age=3600"},
    )
