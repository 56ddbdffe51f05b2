# localdeals/routers/redemptions_router.py
from typing import Literal

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from localdeals.core.db import get_db
from localdeals.core.exceptions import NotFoundError
from localdeals.schemas.redemption_schemas import (
    RedemptionClaim,
    RedemptionLookup,
    RedemptionConsume,
    RedemptionResponse,
    RedemptionListResponse,
)
from localdeals.services import redemption_service, store_service
from localdeals.utils.get_user import get_current_user

router = APIRouter(prefix="/redemptions", tags=["Redemptions"])


# POST /redemptions
@router.post("", response_model=RedemptionResponse, status_code=status.HTTP_201_CREATED)
async def claim_route(data: RedemptionClaim, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    redemption = await redemption_service.issue(db, data.deal_id, _user)
    return {"message": "Deal claimed", "data": redemption}


# GET /redemptions/mine
@router.get("/mine", response_model=RedemptionListResponse)
async def my_redemptions_route(
    status: Literal["active", "used", "expired", "cancelled", "all"] = "active",
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    total, redemptions = await redemption_service.list_customer_redemptions(
        db, _user.id, None if status == "all" else status
    )
    return {"message": f"{total} redemptions fetched", "total": total, "data": redemptions}


# POST /redemptions/validate
@router.post("/validate", response_model=RedemptionResponse)
async def validate_route(data: RedemptionLookup, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    """Check a code at the till without using it up."""
    store = await store_service.get_owned_store(db, data.store_id, _user)
    redemption = await redemption_service.validate(db, data.code, store.id)
    if not redemption:
        raise NotFoundError("Invalid or expired redemption code")
    return {"message": "Redemption code is valid", "data": redemption}


# POST /redemptions/consume
@router.post("/consume", response_model=RedemptionResponse)
async def consume_route(data: RedemptionConsume, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    redemption = await redemption_service.consume(
        db,
        data.code,
        data.store_id,
        _user,
        location=data.location.model_dump() if data.location else None,
        method=data.method,
    )
    return {"message": "Redemption successful", "data": redemption}


# POST /redemptions/{redemption_id}/cancel
@router.post("/{redemption_id}/cancel", response_model=RedemptionResponse)
async def cancel_route(redemption_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    redemption = await redemption_service.cancel(db, redemption_id, _user)
    return {"message": "Redemption cancelled", "data": redemption}
