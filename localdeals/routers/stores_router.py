# localdeals/routers/stores_router.py
from typing import Literal, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from localdeals.core.db import get_db
from localdeals.core.exceptions import NotFoundError
from localdeals.models.user_models import UserRole
from localdeals.schemas.analytics_schemas import StoreAnalyticsOut
from localdeals.schemas.deal_schemas import DealListResponse, Category
from localdeals.schemas.store_schemas import StoreCreate, StoreResponse, StoreListResponse
from localdeals.schemas.subscription_schemas import SubscriptionCreate, SubscriptionResponse
from localdeals.services import analytics_service, deal_service, store_service, subscription_service
from localdeals.utils.check_roles import require_role
from localdeals.utils.datetime_utils import utcnow
from localdeals.utils.get_user import get_current_user

router = APIRouter(prefix="/stores", tags=["Stores"])


# POST /stores
@router.post("", response_model=StoreResponse, status_code=status.HTTP_201_CREATED)
@require_role([UserRole.STORE_OWNER, UserRole.ADMIN])
async def create_store_route(data: StoreCreate, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    store = await store_service.create_store(db, data, _user)
    return {"message": "Store created successfully", "data": store}


# GET /stores
@router.get("", response_model=StoreListResponse)
async def list_stores_route(
    category: Optional[Category] = None,
    city: Optional[str] = None,
    search: Optional[str] = None,
    sort: Literal["name", "newest", "rating", "popular"] = "rating",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    total, stores = await store_service.list_stores(
        db, category=category, city=city, search=search, sort=sort, page=page, limit=limit
    )
    return {"message": f"{len(stores)} stores fetched", "total": total, "page": page, "limit": limit, "data": stores}


# GET /stores/pending
@router.get("/pending", response_model=StoreListResponse)
@require_role([UserRole.ADMIN])
async def list_unverified_route(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    total, stores = await store_service.list_unverified_stores(db, page=page, limit=limit)
    return {"message": f"{total} stores awaiting verification", "total": total, "page": page, "limit": limit, "data": stores}


# GET /stores/{store_id}
@router.get("/{store_id}", response_model=StoreResponse)
async def get_store_route(store_id: int, db: AsyncSession = Depends(get_db)):
    store = await store_service.find_store(db, store_id)
    if not store:
        raise NotFoundError("Store not found")
    return {"message": "Store fetched", "data": store}


# DELETE /stores/{store_id}
@router.delete("/{store_id}", response_model=StoreResponse)
async def deactivate_store_route(store_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    store = await store_service.deactivate_store(db, store_id, _user)
    return {"message": "Store deactivated", "data": store}


# PUT /stores/{store_id}
@router.put("/{store_id}", response_model=StoreResponse)
async def update_store_route(
    store_id: int,
    patch: dict = Body(...),
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    store = await store_service.update_store(db, store_id, patch, _user)
    return {"message": "Store updated successfully", "data": store}


# PATCH /stores/{store_id}/verify
@router.patch("/{store_id}/verify", response_model=StoreResponse)
@require_role([UserRole.ADMIN])
async def verify_store_route(store_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    store = await store_service.verify_store(db, store_id, _user)
    return {"message": "Store verified successfully", "data": store}


# GET /stores/{store_id}/deals
@router.get("/{store_id}/deals", response_model=DealListResponse)
async def store_deals_route(
    store_id: int,
    status: Literal["active", "all"] = "active",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    if not await store_service.find_store(db, store_id):
        raise NotFoundError("Store not found")
    now = utcnow()
    total, deals = await deal_service.list_deals(
        db,
        status=None if status == "all" else status,
        store_id=store_id,
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


# ---------------------------
# SUBSCRIPTION
# ---------------------------
@router.post("/{store_id}/subscription", response_model=SubscriptionResponse, status_code=status.HTTP_201_CREATED)
async def create_subscription_route(
    store_id: int,
    data: SubscriptionCreate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    store = await store_service.get_owned_store(db, store_id, _user)
    subscription = await subscription_service.create_subscription(db, store.id, data)
    return {"message": f"{subscription.plan.title()} plan activated", "data": subscription}


@router.get("/{store_id}/subscription", response_model=SubscriptionResponse)
async def get_subscription_route(store_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    store = await store_service.get_owned_store(db, store_id, _user)
    subscription = await subscription_service.get_active_subscription(db, store.id)
    if not subscription:
        raise NotFoundError("No active subscription for this store")
    return {"message": "Subscription fetched", "data": subscription}


# GET /stores/{store_id}/analytics
@router.get("/{store_id}/analytics", response_model=StoreAnalyticsOut)
async def store_analytics_route(
    store_id: int,
    days: int = Query(7, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    store = await store_service.get_owned_store(db, store_id, _user)
    await analytics_service.ensure_analytics_access(db, store.id, _user)
    return await analytics_service.get_store_analytics(db, store.id, days)
