from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from decimal import Decimal
from datetime import datetime

from localdeals.models.store_models import STORE_CATEGORIES


class StoreImages(BaseModel):
    logo: Optional[str] = None
    cover: Optional[str] = None
    gallery: List[str] = []


class StoreCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    category: Literal[STORE_CATEGORIES]
    contact: Optional[dict] = None
    address: Optional[dict] = None
    hours: Optional[dict] = None
    features: Optional[List[str]] = None
    images: Optional[StoreImages] = None


class StoreUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, min_length=1, max_length=500)
    category: Optional[Literal[STORE_CATEGORIES]] = None
    contact: Optional[dict] = None
    address: Optional[dict] = None
    hours: Optional[dict] = None
    features: Optional[List[str]] = None
    images: Optional[StoreImages] = None


class StoreOut(BaseModel):
    id: int
    owner_id: int
    name: str
    description: str
    category: str
    contact: Optional[dict] = None
    address: Optional[dict] = None
    hours: Optional[dict] = None
    features: Optional[List[str]] = None
    images: Optional[dict] = None
    is_active: bool
    is_verified: bool
    total_deals: int
    rating_average: Decimal = Decimal("0")
    rating_count: int = 0
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StoreResponse(BaseModel):
    message: str
    data: Optional[StoreOut] = None


class StoreListResponse(BaseModel):
    message: str
    total: int
    page: int
    limit: int
    data: List[StoreOut]
