# localdeals/schemas/analytics_schemas.py
from pydantic import BaseModel
from typing import List, Optional, Literal

from localdeals.models.analytics_models import ENTITY_TYPES, EVENT_TYPES


class AnalyticsEventIn(BaseModel):
    entity_type: Literal[ENTITY_TYPES]
    entity_id: int
    event_type: Literal[EVENT_TYPES]
    metadata: Optional[dict] = None


class EventBreakdown(BaseModel):
    event_type: str
    count: int
    unique_users: int


class ConversionFunnel(BaseModel):
    views: int
    clicks: int
    saves: int
    redemptions: int
    ctr: float
    save_rate: float
    conversion_rate: float


class DealAnalyticsOut(BaseModel):
    deal_id: int
    period_days: int
    events: List[EventBreakdown]
    funnel: ConversionFunnel


class StoreAnalyticsOut(BaseModel):
    store_id: int
    period_days: int
    events: List[EventBreakdown]


class PopularDeal(BaseModel):
    deal_id: int
    title: str
    views: int
    clicks: int
    redemptions: int
