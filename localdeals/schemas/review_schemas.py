from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from decimal import Decimal
from datetime import datetime

from localdeals.models.review_models import ModerationStatus


class ReviewCreate(BaseModel):
    store_id: int
    deal_id: Optional[int] = None
    rating: int = Field(..., ge=1, le=5)
    title: str = Field(..., min_length=1, max_length=100)
    comment: str = Field(..., min_length=1, max_length=1000)
    images: List[str] = []


class ReviewModerate(BaseModel):
    # a decision, never back to pending
    status: Literal["approved", "rejected"]
    reason: Optional[str] = Field(default=None, max_length=500)


class ReviewReply(BaseModel):
    text: str = Field(..., min_length=1, max_length=1000)


class ReviewOut(BaseModel):
    id: int
    store_id: int
    customer_id: int
    deal_id: Optional[int] = None
    rating: int
    title: str
    comment: str
    images: Optional[List[str]] = None
    response_text: Optional[str] = None
    responded_at: Optional[datetime] = None
    moderation_status: ModerationStatus
    moderated_at: Optional[datetime] = None
    moderation_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReviewResponse(BaseModel):
    message: str
    data: Optional[ReviewOut] = None


class ReviewListResponse(BaseModel):
    message: str
    total: int
    page: int
    limit: int
    data: List[ReviewOut]


class StoreRating(BaseModel):
    store_id: int
    average: Decimal
    count: int
    # star -> number of approved reviews
    distribution: dict[int, int]
