from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from localdeals.core.exceptions import ValidationError
from localdeals.models.deal_models import DealStatus, DealType
from localdeals.schemas.deal_schemas import PercentageDiscount, FixedAmountDiscount, BogoDiscount
from localdeals.utils.deal_rules import (
    compute_status,
    compute_discount_percentage,
    compute_time_remaining,
    parse_discount,
    check_discount_matches_type,
    check_schedule,
    derive_sale_price,
    resolve_redemption_expiry,
    build_qr_payload,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_deal(**overrides):
    fields = {
        "start_date": NOW - timedelta(days=1),
        "end_date": NOW + timedelta(days=1),
        "is_active": True,
        "is_approved": True,
        "original_price": Decimal("100.00"),
        "sale_price": Decimal("75.00"),
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


# --------------------------
# status
# --------------------------
def test_past_end_date_is_expired_whatever_the_flags():
    deal = make_deal(end_date=NOW - timedelta(seconds=1), is_active=False, is_approved=False)
    assert compute_status(deal, NOW) == DealStatus.EXPIRED


@pytest.mark.parametrize("overrides, expected", [
    ({"start_date": NOW + timedelta(hours=1), "is_active": False}, DealStatus.UPCOMING),
    ({"is_active": False, "is_approved": False}, DealStatus.INACTIVE),
    ({"is_approved": False}, DealStatus.PENDING),
    ({}, DealStatus.ACTIVE),
])
def test_status_precedence(overrides, expected):
    assert compute_status(make_deal(**overrides), NOW) == expected


def test_status_accepts_naive_utc_from_sqlite():
    deal = make_deal(end_date=(NOW - timedelta(minutes=5)).replace(tzinfo=None))
    assert compute_status(deal, NOW) == DealStatus.EXPIRED


# --------------------------
# discount percentage
# --------------------------
def test_discount_percentage():
    assert compute_discount_percentage(make_deal()) == 25


def test_discount_percentage_of_free_item_is_zero():
    deal = make_deal(original_price=Decimal("0"), sale_price=Decimal("0"))
    assert compute_discount_percentage(deal) == 0


def test_discount_percentage_rounds_half_up():
    deal = make_deal(original_price=Decimal("8.00"), sale_price=Decimal("7.00"))
    assert compute_discount_percentage(deal) == 13


# --------------------------
# sale price
# --------------------------
def test_percentage_discount_derives_sale_price():
    assert derive_sale_price(Decimal("70"), PercentageDiscount(percentage=Decimal("30"))) == Decimal("49.00")


def test_percentage_discount_ignores_supplied_sale_price():
    price = derive_sale_price(Decimal("70"), PercentageDiscount(percentage=Decimal("30")), Decimal("60"))
    assert price == Decimal("49.00")


def test_fixed_discount_never_goes_negative():
    assert derive_sale_price(Decimal("10"), FixedAmountDiscount(fixed_amount=Decimal("15"))) == Decimal("0.00")
    assert derive_sale_price(Decimal("10"), FixedAmountDiscount(fixed_amount=Decimal("2.50"))) == Decimal("7.50")


def test_bogo_needs_explicit_sale_price():
    bogo = BogoDiscount(buy_quantity=1, get_quantity=1)
    with pytest.raises(ValidationError):
        derive_sale_price(Decimal("20"), bogo)
    assert derive_sale_price(Decimal("20"), bogo, Decimal("10")) == Decimal("10.00")


def test_parse_discount_reads_stored_json():
    parsed = parse_discount({"kind": "fixed", "fixed_amount": "5.00"})
    assert isinstance(parsed, FixedAmountDiscount)
    assert parse_discount(None) is None


def test_discount_variant_must_match_deal_type():
    with pytest.raises(ValidationError):
        check_discount_matches_type(DealType.PERCENTAGE, FixedAmountDiscount(fixed_amount=Decimal("5")))
    with pytest.raises(ValidationError):
        check_discount_matches_type("bogo", None)
    check_discount_matches_type(DealType.FLASH, None)
    check_discount_matches_type("fixed", FixedAmountDiscount(fixed_amount=Decimal("5")))


# --------------------------
# schedule and countdown
# --------------------------
def test_schedule_requires_end_after_start():
    with pytest.raises(ValidationError):
        check_schedule(NOW, NOW)
    check_schedule(NOW, NOW + timedelta(seconds=1))


def test_time_remaining_breakdown():
    deal = make_deal(end_date=NOW + timedelta(days=2, hours=3, minutes=4, seconds=5))
    assert compute_time_remaining(deal, NOW) == {"days": 2, "hours": 3, "minutes": 4, "seconds": 5}


def test_time_remaining_is_none_once_over():
    assert compute_time_remaining(make_deal(end_date=NOW), NOW) is None


# --------------------------
# redemption expiry
# --------------------------
def test_redemption_expiry_defaults_to_deal_end():
    deal = make_deal()
    assert resolve_redemption_expiry(deal, NOW, 30) == deal.end_date


def test_redemption_expiry_explicit_value_wins():
    explicit = NOW + timedelta(hours=2)
    assert resolve_redemption_expiry(make_deal(), NOW, 30, explicit) == explicit


def test_redemption_expiry_falls_back_without_deal_end():
    assert resolve_redemption_expiry(make_deal(end_date=None), NOW, 30) == NOW + timedelta(days=30)


def test_qr_payload_format():
    assert build_qr_payload(7, NOW) == f"deal:7:{int(NOW.timestamp() * 1000)}"
