# localdeals/routers/deals_router.py
from typing import Literal, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from localdeals.core.db import get_db
from localdeals.models.deal_models import DealType
from localdeals.models.user_models import UserRole
from localdeals.schemas.analytics_schemas import DealAnalyticsOut
from localdeals.schemas.deal_schemas import (
    DealCreate,
    DealListResponse,
    DealMessageResponse,
    DealQrResponse,
    CategoryCountResponse,
    FeatureToggle,
    Category,
)
from localdeals.services import analytics_service, deal_service, store_service
from localdeals.utils.check_roles import require_role
from localdeals.utils.datetime_utils import utcnow
from localdeals.utils.get_user import get_current_user

router = APIRouter(prefix="/deals", tags=["Deals"])


# GET /deals
@router.get("", response_model=DealListResponse)
async def list_deals_route(
    status: Literal["active", "upcoming", "expired", "pending", "all"] = "active",
    category: Optional[Category] = None,
    store_id: Optional[int] = None,
    type: Optional[DealType] = None,
    featured: Optional[bool] = None,
    sort: Literal["ending", "newest", "oldest", "popular", "discount"] = "ending",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """
    Browse deals. The default listing only shows live deals: active,
    approved and inside their schedule window.
    """
    now = utcnow()
    total, deals = await deal_service.list_deals(
        db,
        status=None if status == "all" else status,
        category=category,
        store_id=store_id,
        deal_type=type.value if type else None,
        featured=featured,
        sort=sort,
        page=page,
        limit=limit,
        now=now,
    )
    return {
        "message": f"{len(deals)} deals fetched",
        "total": total,
        "page": page,
        "limit": limit,
        "data": [deal_service.to_deal_out(d, now) for d in deals],
    }


# GET /deals/pending
@router.get("/pending", response_model=DealListResponse)
@require_role([UserRole.ADMIN])
async def list_pending_route(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    total, deals = await deal_service.list_pending_deals(db, page=page, limit=limit)
    return {
        "message": f"{total} deals awaiting approval",
        "total": total,
        "page": page,
        "limit": limit,
        "data": [deal_service.to_deal_out(d) for d in deals],
    }


# GET /deals/featured/list
@router.get("/featured/list", response_model=DealListResponse)
async def featured_deals_route(limit: int = Query(10, ge=1, le=50), db: AsyncSession = Depends(get_db)):
    now = utcnow()
    deals = await deal_service.list_featured_deals(db, limit=limit, now=now)
    return {
        "message": f"{len(deals)} featured deals",
        "total": len(deals),
        "page": 1,
        "limit": limit,
        "data": [deal_service.to_deal_out(d, now) for d in deals],
    }


# GET /deals/categories/counts
@router.get("/categories/counts", response_model=CategoryCountResponse)
async def category_counts_route(db: AsyncSession = Depends(get_db)):
    categories = await deal_service.count_live_categories(db)
    return {"message": f"{len(categories)} categories with live deals", "data": categories}


# GET /deals/{deal_id}
@router.get("/{deal_id}", response_model=DealMessageResponse)
async def get_deal_route(deal_id: int, db: AsyncSession = Depends(get_db)):
    deal = await deal_service.track_engagement(db, deal_id, "view")
    return {"message": "Deal fetched", "data": deal_service.to_deal_out(deal)}


# POST /deals
@router.post("", response_model=DealMessageResponse, status_code=status.HTTP_201_CREATED)
@require_role([UserRole.STORE_OWNER, UserRole.ADMIN])
async def create_deal_route(data: DealCreate, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    deal = await deal_service.create_deal(db, data.store_id, data, _user)
    return {"message": "Deal created successfully", "data": deal_service.to_deal_out(deal)}


# PUT /deals/{deal_id}
@router.put("/{deal_id}", response_model=DealMessageResponse)
async def update_deal_route(
    deal_id: int,
    patch: dict = Body(...),
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    deal = await deal_service.update_deal(db, deal_id, patch, _user)
    return {"message": "Deal updated successfully", "data": deal_service.to_deal_out(deal)}


# DELETE /deals/{deal_id}
@router.delete("/{deal_id}", response_model=DealMessageResponse)
async def delete_deal_route(deal_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    deal = await deal_service.deactivate_deal(db, deal_id, _user)
    return {"message": "Deal deactivated", "data": deal_service.to_deal_out(deal)}


# ---------------------------
# ENGAGEMENT
# ---------------------------
@router.post("/{deal_id}/click", response_model=DealMessageResponse)
async def click_deal_route(deal_id: int, db: AsyncSession = Depends(get_db)):
    deal = await deal_service.track_engagement(db, deal_id, "click")
    return {"message": "Click recorded", "data": deal_service.to_deal_out(deal)}


@router.post("/{deal_id}/save", response_model=DealMessageResponse)
async def save_deal_route(deal_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    deal, created = await deal_service.save_deal(db, deal_id, _user)
    message = "Deal saved successfully" if created else "Deal already saved"
    return {"message": message, "data": deal_service.to_deal_out(deal)}


@router.delete("/{deal_id}/save", response_model=DealMessageResponse)
async def unsave_deal_route(deal_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    deal = await deal_service.unsave_deal(db, deal_id, _user)
    return {"message": "Deal removed from saved", "data": deal_service.to_deal_out(deal)}


@router.post("/{deal_id}/share", response_model=DealMessageResponse)
async def share_deal_route(deal_id: int, db: AsyncSession = Depends(get_db)):
    deal = await deal_service.track_engagement(db, deal_id, "share")
    return {"message": "Share recorded", "data": deal_service.to_deal_out(deal)}


# ---------------------------
# ADMIN
# ---------------------------
@router.patch("/{deal_id}/approve", response_model=DealMessageResponse)
@require_role([UserRole.ADMIN])
async def approve_deal_route(deal_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    deal = await deal_service.approve_deal(db, deal_id, _user)
    return {"message": "Deal approved", "data": deal_service.to_deal_out(deal)}


@router.patch("/{deal_id}/feature", response_model=DealMessageResponse)
@require_role([UserRole.ADMIN])
async def feature_deal_route(
    deal_id: int,
    data: FeatureToggle,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    deal = await deal_service.set_featured(db, deal_id, data.featured, _user)
    return {"message": "Deal featured" if deal.is_featured else "Deal unfeatured", "data": deal_service.to_deal_out(deal)}


# GET /deals/{deal_id}/qrcode
@router.get("/{deal_id}/qrcode", response_model=DealQrResponse)
async def deal_qrcode_route(deal_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    qr = await deal_service.get_deal_qr(db, deal_id, _user)
    return {"message": "QR code generated", "data": qr}


# GET /deals/{deal_id}/analytics
@router.get("/{deal_id}/analytics", response_model=DealAnalyticsOut)
async def deal_analytics_route(
    deal_id: int,
    days: int = Query(7, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    deal = await deal_service.load_deal(db, deal_id)
    await store_service.get_owned_store(db, deal.store_id, _user)
    await analytics_service.ensure_analytics_access(db, deal.store_id, _user)
    return await analytics_service.get_deal_analytics(db, deal, days)
