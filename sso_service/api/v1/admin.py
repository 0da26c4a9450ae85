"""Administrative endpoints (internal callers only)"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from sso_service.core.dependencies import ContainerDep, DBSession, require_internal_auth

router = APIRouter(dependencies=[Depends(require_internal_auth)])


class UnlockRequest(BaseModel):
    email: str = Field(..., min_length=1, max_length=255)


@router.post("/unlock")
async def unlock(body: UnlockRequest, db: DBSession, container: ContainerDep):
    """Clear the lockout of an identity"""
    await container.lockout.unlock(db, body.email)
    await container.audit.record("account_unlocked", "auth", details={"identity": body.email.strip().lower()})
    return {"message": "Account unlocked"}
