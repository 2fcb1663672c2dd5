"""
Public tournament routes.

Listing, the public standings view, and self-service apply/withdraw.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from ladder.config import settings
from ladder.config.feature_flags import FeatureFlags
from ladder.database import get_db
from ladder.errors import ErrorCode, error_payload
from ladder.schemas.ladder import RegistrationCreate, WithdrawRequest
from ladder.services import registration_service, tournament_service

router = APIRouter(prefix="/api", tags=["Public"])

limiter = Limiter(key_func=get_remote_address, enabled=FeatureFlags.rate_limit())


def _require_public_registration() -> None:
    if not FeatureFlags.public_registration():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=error_payload("Forbidden", "Public registration is disabled", ErrorCode.FORBIDDEN)
        )


@router.get("/tournaments")
async def list_tournaments(db: AsyncSession = Depends(get_db)):
    return {"success": True, "tournaments": await tournament_service.list_tournaments(db)}


@router.get("/tournaments/{tournament_id}/public")
async def public_view(
    tournament_id: int,
    stage_number: Optional[int] = None,
    db: AsyncSession = Depends(get_db)
):
    """Standings plus one stage (latest unless ?stage_number=N)."""
    view = await tournament_service.get_public_view(db, tournament_id, stage_number)
    return {"success": True, **view}


@router.post("/tournaments/{tournament_id}/apply", status_code=201)
@limiter.limit(settings.APPLY_RATE_LIMIT)
async def apply(
    request: Request,  # Required by slowapi
    tournament_id: int,
    data: RegistrationCreate,
    db: AsyncSession = Depends(get_db)
):
    _require_public_registration()
    payload = data.model_dump()
    # Self-service applicants cannot rate themselves
    payload["strength"] = None
    result = await registration_service.create_registration(db, tournament_id, payload)
    return {"success": True, **result}


@router.post("/tournaments/{tournament_id}/withdraw")
async def withdraw(
    tournament_id: int,
    data: WithdrawRequest,
    db: AsyncSession = Depends(get_db)
):
    _require_public_registration()
    result = await registration_service.withdraw(db, tournament_id, data.confirmation_code)
    return {"success": True, **result}
