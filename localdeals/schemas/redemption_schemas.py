from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from decimal import Decimal

from localdeals.models.redemption_models import RedemptionStatus
from localdeals.schemas.deal_schemas import UtcDatetime


class UsageLocation(BaseModel):
    ip: Optional[str] = None
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lng: Optional[float] = Field(default=None, ge=-180, le=180)


class RedemptionClaim(BaseModel):
    deal_id: int


class RedemptionLookup(BaseModel):
    code: str = Field(..., min_length=1, max_length=32)
    store_id: int


class RedemptionConsume(RedemptionLookup):
    method: Literal["qr", "code", "manual"] = "code"
    location: Optional[UsageLocation] = None


class RedemptionOut(BaseModel):
    id: int
    code: str
    deal_id: int
    store_id: int
    customer_id: int
    status: RedemptionStatus
    expires_at: UtcDatetime

    used_at: Optional[UtcDatetime] = None
    used_by: Optional[int] = None
    usage_location: Optional[dict] = None
    validation_method: Optional[str] = None
    cancelled_at: Optional[UtcDatetime] = None

    original_price: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None
    final_price: Optional[Decimal] = None
    savings: Optional[Decimal] = None
    created_at: Optional[UtcDatetime] = None

    class Config:
        from_attributes = True


class RedemptionResponse(BaseModel):
    message: str
    data: Optional[RedemptionOut] = None


class RedemptionListResponse(BaseModel):
    message: str
    total: int
    data: List[RedemptionOut]
