# localdeals/services/subscription_service.py
import logging
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import select, update, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from localdeals.core.exceptions import ValidationError, InvalidStateError
from localdeals.models.subscription_models import Subscription
from localdeals.schemas.subscription_schemas import SubscriptionCreate
from localdeals.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

PLAN_FEATURES = {
    "starter": {
        "max_deals": 5,
        "max_images": 10,
        "analytics_access": False,
        "priority_support": False,
        "custom_branding": False,
        "monthly_amount": Decimal("0.00"),
    },
    "professional": {
        "max_deals": 20,
        "max_images": 50,
        "analytics_access": True,
        "priority_support": True,
        "custom_branding": False,
        "monthly_amount": Decimal("20.00"),
    },
    "enterprise": {
        "max_deals": 100,
        "max_images": 200,
        "analytics_access": True,
        "priority_support": True,
        "custom_branding": True,
        "monthly_amount": Decimal("99.00"),
    },
}

USAGE_KINDS = {"deal", "image"}


def plan_features(plan: str) -> dict:
    try:
        return PLAN_FEATURES[plan]
    except KeyError:
        raise ValidationError(f"Unknown plan '{plan}'")


def can_create_deal(subscription: Subscription | None) -> bool:
    if subscription is None:
        return False
    return subscription.status == "active" and subscription.deals_active < subscription.max_deals


async def get_active_subscription(db: AsyncSession, store_id: int) -> Subscription | None:
    result = await db.execute(
        select(Subscription).where(Subscription.store_id == store_id, Subscription.status == "active")
    )
    return result.scalar_one_or_none()


# -----------------------
# USAGE COUNTERS
# -----------------------
async def increment_usage(
    db: AsyncSession,
    subscription: Subscription,
    kind: str,
    amount: int = 1,
    *,
    within_limit: bool = False,
) -> bool:
    """
    Add `amount` to the usage counters as a single SQL delta.

    With `within_limit`, a deal increment only applies while the active count
    stays within max_deals on the still-active subscription; the return value
    says whether the row was updated. The caller owns the commit.
    """
    if kind not in USAGE_KINDS:
        raise ValidationError(f"Unknown usage kind '{kind}'")

    values = {"usage_updated_at": utcnow()}
    stmt = update(Subscription).where(Subscription.id == subscription.id)

    if kind == "deal":
        values["deals_created"] = Subscription.deals_created + amount
        values["deals_active"] = Subscription.deals_active + amount
        if within_limit:
            stmt = stmt.where(
                Subscription.status == "active",
                Subscription.deals_active + amount <= Subscription.max_deals,
            )
    else:
        values["images_uploaded"] = Subscription.images_uploaded + amount

    result = await db.execute(stmt.values(**values).execution_options(synchronize_session=False))
    applied = result.rowcount == 1
    if applied:
        await db.refresh(subscription)
    return applied


async def decrement_usage(db: AsyncSession, subscription: Subscription, kind: str, amount: int = 1) -> None:
    """Release deal slots; deals_active never drops below zero and deals_created never moves."""
    if kind not in USAGE_KINDS:
        raise ValidationError(f"Unknown usage kind '{kind}'")

    values = {"usage_updated_at": utcnow()}
    if kind == "deal":
        values["deals_active"] = case(
            (Subscription.deals_active > amount, Subscription.deals_active - amount),
            else_=0,
        )

    await db.execute(
        update(Subscription)
        .where(Subscription.id == subscription.id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.refresh(subscription)


# -----------------------
# CREATE
# -----------------------
async def create_subscription(db: AsyncSession, store_id: int, payload: SubscriptionCreate) -> Subscription:
    if await get_active_subscription(db, store_id):
        raise InvalidStateError("Store already has an active subscription")

    features = plan_features(payload.plan)
    amount = features["monthly_amount"]
    cycle_days = 30
    if payload.billing_cycle == "yearly":
        amount = amount * 12
        cycle_days = 365

    now = utcnow()
    subscription = Subscription(
        store_id=store_id,
        plan=payload.plan,
        status="active",
        billing_cycle=payload.billing_cycle,
        billing_amount=amount,
        next_billing_date=now + timedelta(days=cycle_days),
        max_deals=features["max_deals"],
        max_images=features["max_images"],
        analytics_access=features["analytics_access"],
        priority_support=features["priority_support"],
        custom_branding=features["custom_branding"],
        deals_created=0,
        deals_active=0,
        images_uploaded=0,
        usage_updated_at=now,
    )
    db.add(subscription)
    try:
        await db.commit()
    except IntegrityError:
        # lost a race against another activation for the same store
        await db.rollback()
        raise InvalidStateError("Store already has an active subscription")

    await db.refresh(subscription)
    logger.info("Activated %s subscription %s for store %s", subscription.plan, subscription.id, store_id)
    return subscription
