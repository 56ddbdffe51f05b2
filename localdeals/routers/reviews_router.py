# localdeals/routers/reviews_router.py
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from localdeals.core.db import get_db
from localdeals.core.exceptions import NotFoundError
from localdeals.models.user_models import UserRole
from localdeals.schemas.review_schemas import (
    ReviewCreate,
    ReviewModerate,
    ReviewReply,
    ReviewResponse,
    ReviewListResponse,
    StoreRating,
)
from localdeals.services import review_service, store_service
from localdeals.utils.check_roles import require_role
from localdeals.utils.get_user import get_current_user

router = APIRouter(prefix="/reviews", tags=["Reviews"])


# POST /reviews
@router.post("", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def create_review_route(data: ReviewCreate, db: AsyncSession = Depends(get_db), _user=Depends(get_current_user)):
    review = await review_service.create_review(db, data, _user)
    return {"message": "Review submitted for moderation", "data": review}


# GET /reviews/pending
@router.get("/pending", response_model=ReviewListResponse)
@require_role([UserRole.ADMIN])
async def pending_reviews_route(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    total, reviews = await review_service.list_pending_reviews(db, page=page, limit=limit)
    return {"message": f"{total} reviews awaiting moderation", "total": total, "page": page, "limit": limit, "data": reviews}


# GET /reviews/store/{store_id}
@router.get("/store/{store_id}", response_model=ReviewListResponse)
async def store_reviews_route(
    store_id: int,
    rating: Optional[int] = Query(None, ge=1, le=5),
    sort: Literal["newest", "oldest", "highest", "lowest"] = "newest",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    if not await store_service.find_store(db, store_id):
        raise NotFoundError("Store not found")
    total, reviews = await review_service.list_store_reviews(
        db, store_id, rating=rating, sort=sort, page=page, limit=limit
    )
    return {"message": f"{len(reviews)} reviews fetched", "total": total, "page": page, "limit": limit, "data": reviews}


# GET /reviews/store/{store_id}/rating
@router.get("/store/{store_id}/rating", response_model=StoreRating)
async def store_rating_route(store_id: int, db: AsyncSession = Depends(get_db)):
    if not await store_service.find_store(db, store_id):
        raise NotFoundError("Store not found")
    return await review_service.get_store_rating(db, store_id)


# PUT /reviews/{review_id}/moderate
@router.put("/{review_id}/moderate", response_model=ReviewResponse)
@require_role([UserRole.ADMIN])
async def moderate_review_route(
    review_id: int,
    data: ReviewModerate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    review = await review_service.moderate_review(db, review_id, data.status, data.reason, _user)
    return {"message": f"Review {data.status} successfully", "data": review}


# POST /reviews/{review_id}/response
@router.post("/{review_id}/response", response_model=ReviewResponse)
async def respond_review_route(
    review_id: int,
    data: ReviewReply,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
):
    review = await review_service.respond_to_review(db, review_id, data.text, _user)
    return {"message": "Response posted", "data": review}
