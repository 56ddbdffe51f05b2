# localdeals/schemas/deal_schemas.py
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Literal, Union

from pydantic import BaseModel, Field, AfterValidator, TypeAdapter
from typing_extensions import Annotated

from localdeals.models.deal_models import DealType, DealStatus
from localdeals.models.store_models import STORE_CATEGORIES
from localdeals.utils.datetime_utils import as_utc

NonNegativeDecimal = Annotated[Decimal, Field(ge=0, max_digits=14, decimal_places=2)]
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]
Category = Literal[STORE_CATEGORIES]


# --------------------------
# Discount variants
# --------------------------
class PercentageDiscount(BaseModel):
    kind: Literal["percentage"] = "percentage"
    percentage: Annotated[Decimal, Field(gt=0, le=100)]


class FixedAmountDiscount(BaseModel):
    kind: Literal["fixed"] = "fixed"
    fixed_amount: NonNegativeDecimal


class BogoDiscount(BaseModel):
    kind: Literal["bogo"] = "bogo"
    buy_quantity: int = Field(..., ge=1)
    get_quantity: int = Field(..., ge=1)


Discount = Annotated[
    Union[PercentageDiscount, FixedAmountDiscount, BogoDiscount],
    Field(discriminator="kind"),
]
discount_adapter = TypeAdapter(Discount)


# --------------------------
# Nested groups
# --------------------------
class PricingIn(BaseModel):
    original_price: NonNegativeDecimal
    # derived for percentage and fixed discounts
    sale_price: Optional[NonNegativeDecimal] = None
    currency: str = Field(default="USD", min_length=3, max_length=3)


class ImagesIn(BaseModel):
    main: str
    gallery: List[str] = []


class ScheduleIn(BaseModel):
    start_date: UtcDatetime
    end_date: UtcDatetime
    timezone: str = "America/New_York"


class InventoryIn(BaseModel):
    total_quantity: Optional[int] = Field(default=None, ge=0)


class RestrictionsIn(BaseModel):
    min_purchase: NonNegativeDecimal = Decimal("0")
    max_per_customer: Optional[int] = Field(default=None, ge=1)
    customer_type: Literal["all", "new", "returning"] = "all"
    excluded_categories: List[str] = []


class DealCreate(BaseModel):
    store_id: int
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    category: Category
    type: DealType
    discount: Optional[Discount] = None
    pricing: PricingIn
    images: ImagesIn
    schedule: ScheduleIn
    inventory: InventoryIn = InventoryIn()
    restrictions: RestrictionsIn = RestrictionsIn()
    tags: List[str] = []
    terms: Optional[str] = None


class DealUpdate(BaseModel):
    """Partial update; only the fields owners are allowed to touch."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, min_length=1, max_length=500)
    category: Optional[Category] = None
    type: Optional[DealType] = None
    discount: Optional[Discount] = None
    pricing: Optional[PricingIn] = None
    images: Optional[ImagesIn] = None
    schedule: Optional[ScheduleIn] = None
    inventory: Optional[InventoryIn] = None
    restrictions: Optional[RestrictionsIn] = None
    tags: Optional[List[str]] = None
    terms: Optional[str] = None


# --------------------------
# Responses
# --------------------------
class TimeRemaining(BaseModel):
    days: int
    hours: int
    minutes: int
    seconds: int


class DealOut(BaseModel):
    id: int
    store_id: int
    title: str
    description: str
    category: str
    type: DealType
    discount: Optional[Discount] = None

    original_price: Decimal
    sale_price: Decimal
    currency: str

    image_main: str
    image_gallery: Optional[List[str]] = None

    start_date: UtcDatetime
    end_date: UtcDatetime
    timezone: str

    total_quantity: Optional[int] = None
    available_quantity: Optional[int] = None
    sold_quantity: int

    restrictions: Optional[dict] = None

    is_active: bool
    is_featured: bool
    is_approved: bool
    approved_by: Optional[int] = None
    approved_at: Optional[UtcDatetime] = None

    views: int
    clicks: int
    saves: int
    shares: int
    redemptions: int
    estimated_revenue: Decimal

    qr_code_data: Optional[str] = None
    tags: Optional[List[str]] = None
    terms: Optional[str] = None
    created_at: Optional[UtcDatetime] = None

    # computed on read, never stored
    status: Optional[DealStatus] = None
    discount_percentage: Optional[int] = None
    time_remaining: Optional[TimeRemaining] = None

    class Config:
        from_attributes = True


class DealListResponse(BaseModel):
    message: str
    total: int
    page: int
    limit: int
    data: List[DealOut]


class DealMessageResponse(BaseModel):
    message: str
    data: Optional[DealOut] = None


class DealQrOut(BaseModel):
    deal_id: int
    data: str
    redeem_url: str
    # data URL of an SVG rendering
    image: str


class DealQrResponse(BaseModel):
    message: str
    data: DealQrOut


class CategoryCount(BaseModel):
    category: str
    count: int


class CategoryCountResponse(BaseModel):
    message: str
    data: List[CategoryCount]


class FeatureToggle(BaseModel):
    featured: bool = True
