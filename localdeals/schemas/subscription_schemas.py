from pydantic import BaseModel
from typing import Optional, Literal
from decimal import Decimal
from datetime import datetime

from localdeals.models.subscription_models import SUBSCRIPTION_STATUSES

PlanName = Literal["starter", "professional", "enterprise"]


class SubscriptionCreate(BaseModel):
    plan: PlanName = "starter"
    billing_cycle: Literal["monthly", "yearly"] = "monthly"


class SubscriptionOut(BaseModel):
    id: int
    store_id: int
    plan: str
    status: Literal[SUBSCRIPTION_STATUSES]
    billing_cycle: str
    billing_amount: Decimal
    currency: str
    next_billing_date: Optional[datetime] = None

    max_deals: int
    max_images: int
    analytics_access: bool
    priority_support: bool
    custom_branding: bool

    deals_created: int
    deals_active: int
    images_uploaded: int
    usage_updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SubscriptionResponse(BaseModel):
    message: str
    data: Optional[SubscriptionOut] = None
