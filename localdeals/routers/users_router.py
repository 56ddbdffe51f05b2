# localdeals/routers/users_router.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from localdeals.core.db import get_db
from localdeals.schemas.deal_schemas import DealListResponse
from localdeals.schemas.store_schemas import StoreListResponse, StoreResponse
from localdeals.services import deal_service, store_service
from localdeals.utils.datetime_utils import utcnow
from localdeals.utils.get_user import get_current_user

router = APIRouter(prefix="/users", tags=["Users"])


# ---------------------------
# SAVED DEALS
# ---------------------------
@router.get("/saved-deals", response_model=DealListResponse)
async def saved_deals_route(db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    """Only deals that are still live are returned."""
    now = utcnow()
    deals = await deal_service.list_saved_deals(db, _user.id, now)
    return {
        "message": f"{len(deals)} saved deals",
        "total": len(deals),
        "page": 1,
        "limit": len(deals),
        "data": [deal_service.to_deal_out(d, now) for d in deals],
    }


# ---------------------------
# FAVORITE STORES
# ---------------------------
@router.get("/favorite-stores", response_model=StoreListResponse)
async def favorite_stores_route(db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    stores = await store_service.list_favorite_stores(db, _user.id)
    return {"message": f"{len(stores)} favorite stores", "total": len(stores), "page": 1, "limit": len(stores), "data": stores}


@router.post("/favorite-stores/{store_id}", response_model=StoreResponse)
async def add_favorite_store_route(store_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    store = await store_service.add_favorite_store(db, store_id, _user)
    return {"message": "Store added to favorites", "data": store}


@router.delete("/favorite-stores/{store_id}", response_model=StoreResponse)
async def remove_favorite_store_route(store_id: int, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    await store_service.remove_favorite_store(db, store_id, _user)
    return {"message": "Store removed from favorites"}
