import pytest

from localdeals.core.exceptions import InvalidStateError, ValidationError
from localdeals.schemas.subscription_schemas import SubscriptionCreate
from localdeals.services import subscription_service


async def test_plan_limits_are_copied_onto_the_subscription(subscription):
    assert subscription.plan == "starter"
    assert subscription.status == "active"
    assert subscription.max_deals == 5
    assert subscription.max_images == 10
    assert subscription.analytics_access is False


async def test_yearly_billing_charges_twelve_months(db, make_store, owner):
    store = await make_store(owner, name="Yearly")
    sub = await subscription_service.create_subscription(
        db, store.id, SubscriptionCreate(plan="professional", billing_cycle="yearly")
    )
    assert sub.billing_amount == 240
    assert sub.analytics_access is True


async def test_second_active_subscription_is_rejected(db, store, subscription):
    with pytest.raises(InvalidStateError):
        await subscription_service.create_subscription(db, store.id, SubscriptionCreate(plan="enterprise"))


async def test_increment_then_decrement_restores_active_count(db, subscription):
    await subscription_service.increment_usage(db, subscription, "deal")
    await subscription_service.decrement_usage(db, subscription, "deal")
    await db.commit()

    assert subscription.deals_active == 0
    assert subscription.deals_created == 1


async def test_decrement_floors_at_zero(db, subscription):
    await subscription_service.increment_usage(db, subscription, "deal")
    await subscription_service.decrement_usage(db, subscription, "deal", 3)
    await db.commit()

    assert subscription.deals_active == 0
    assert subscription.deals_created == 1


async def test_increment_within_limit_stops_at_plan_maximum(db, subscription):
    for _ in range(subscription.max_deals):
        assert await subscription_service.increment_usage(db, subscription, "deal", within_limit=True)

    assert not await subscription_service.increment_usage(db, subscription, "deal", within_limit=True)
    await db.commit()
    assert subscription.deals_active == subscription.max_deals
    assert not subscription_service.can_create_deal(subscription)


async def test_image_usage_leaves_deal_counters_alone(db, subscription):
    await subscription_service.increment_usage(db, subscription, "image", 4)
    await db.commit()
    assert subscription.images_uploaded == 4
    assert subscription.deals_active == 0


async def test_unknown_usage_kind(db, subscription):
    with pytest.raises(ValidationError):
        await subscription_service.increment_usage(db, subscription, "video")


def test_no_subscription_cannot_create_deals():
    assert subscription_service.can_create_deal(None) is False


def test_unknown_plan():
    with pytest.raises(ValidationError):
        subscription_service.plan_features("platinum")
