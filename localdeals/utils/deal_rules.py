# localdeals/utils/deal_rules.py
"""
Pure deal rules: status derivation, price derivation, countdown and
redemption expiry. Nothing in here touches the database, so the service
layer calls these before every write and the tests call them directly.
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from localdeals.core.exceptions import ValidationError
from localdeals.models.deal_models import DealStatus, DealType
from localdeals.schemas.deal_schemas import (
    PercentageDiscount,
    FixedAmountDiscount,
    BogoDiscount,
    discount_adapter,
)
from localdeals.utils.datetime_utils import as_utc
from localdeals.utils.decimal_utils import to_decimal, round_half_up

# deal type -> discount variant it must carry (None: any variant or none)
REQUIRED_DISCOUNT = {
    DealType.PERCENTAGE: PercentageDiscount,
    DealType.FIXED: FixedAmountDiscount,
    DealType.BOGO: BogoDiscount,
    DealType.FLASH: None,
    DealType.CLEARANCE: None,
}


def compute_status(deal, now: datetime) -> DealStatus:
    now = as_utc(now)
    if now < as_utc(deal.start_date):
        return DealStatus.UPCOMING
    if now > as_utc(deal.end_date):
        return DealStatus.EXPIRED
    if not deal.is_active:
        return DealStatus.INACTIVE
    if not deal.is_approved:
        return DealStatus.PENDING
    return DealStatus.ACTIVE


def compute_discount_percentage(deal) -> int:
    original = to_decimal(deal.original_price)
    if original <= 0:
        return 0
    sale = to_decimal(deal.sale_price)
    return round_half_up((original - sale) / original * 100)


def compute_time_remaining(deal, now: datetime) -> Optional[dict]:
    remaining = as_utc(deal.end_date) - as_utc(now)
    if remaining <= timedelta(0):
        return None
    total = int(remaining.total_seconds())
    return {
        "days": total // 86400,
        "hours": (total % 86400) // 3600,
        "minutes": (total % 3600) // 60,
        "seconds": total % 60,
    }


def parse_discount(raw):
    if raw is None or isinstance(raw, (PercentageDiscount, FixedAmountDiscount, BogoDiscount)):
        return raw
    return discount_adapter.validate_python(raw)


def check_discount_matches_type(deal_type, discount) -> None:
    required = REQUIRED_DISCOUNT[DealType(deal_type)]
    if required is not None and not isinstance(discount, required):
        raise ValidationError(f"A {DealType(deal_type).value} deal requires a {required.model_fields['kind'].default} discount")


def derive_sale_price(original_price, discount, sale_price=None) -> Decimal:
    """
    Sale price for a discount variant. Percentage and fixed discounts
    derive it from the original price; other deals keep the supplied one.
    """
    original = to_decimal(original_price)
    if isinstance(discount, PercentageDiscount):
        return to_decimal(original * (1 - discount.percentage / Decimal(100)))
    if isinstance(discount, FixedAmountDiscount):
        return max(to_decimal(original - discount.fixed_amount), Decimal("0.00"))
    if sale_price is None:
        raise ValidationError("sale_price is required for this discount type")
    return to_decimal(sale_price)


def check_schedule(start_date: datetime, end_date: datetime) -> None:
    if as_utc(end_date) <= as_utc(start_date):
        raise ValidationError("End date must be after start date")


def resolve_redemption_expiry(deal, now: datetime, fallback_days: int, expires_at: Optional[datetime] = None) -> datetime:
    if expires_at is not None:
        return as_utc(expires_at)
    if deal is not None and deal.end_date is not None:
        return as_utc(deal.end_date)
    return as_utc(now) + timedelta(days=fallback_days)


def build_qr_payload(deal_id: int, now: datetime) -> str:
    return f"deal:{deal_id}:{int(as_utc(now).timestamp() * 1000)}"
