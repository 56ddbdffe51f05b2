# localdeals/services/analytics_service.py
import logging
from datetime import timedelta

from sqlalchemy import select, func, or_, and_, case
from sqlalchemy.ext.asyncio import AsyncSession

from localdeals.core import db as db_module
from localdeals.core.exceptions import AuthorizationError
from localdeals.models.analytics_models import AnalyticsEvent
from localdeals.models.deal_models import Deal
from localdeals.models.user_models import User
from localdeals.services import subscription_service
from localdeals.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


async def record_event(
    entity_type: str,
    entity_id: int,
    event_type: str,
    user_id: int | None = None,
    metadata: dict | None = None,
) -> bool:
    """
    Append an analytics event in its own session.

    Best effort: callers invoke this after their own commit, and a failure
    here is logged and reported as False, never raised.
    """
    metadata = metadata or {}
    deal_id = entity_id if entity_type == "deal" else metadata.get("deal_id")
    store_id = entity_id if entity_type == "store" else metadata.get("store_id")
    try:
        async with db_module.AsyncSessionLocal() as session:
            session.add(AnalyticsEvent(
                entity_type=entity_type,
                entity_id=entity_id,
                event_type=event_type,
                user_id=user_id,
                deal_id=deal_id,
                store_id=store_id,
                event_metadata=metadata,
                created_at=utcnow(),
            ))
            await session.commit()
        return True
    except Exception as e:
        logger.warning("Failed to record %s event for %s %s: %s", event_type, entity_type, entity_id, e)
        return False


async def _event_breakdown(db: AsyncSession, condition, days: int) -> list[dict]:
    since = utcnow() - timedelta(days=days)
    result = await db.execute(
        select(
            AnalyticsEvent.event_type,
            func.count(AnalyticsEvent.id),
            func.count(func.distinct(AnalyticsEvent.user_id)),
        )
        .where(condition, AnalyticsEvent.created_at >= since)
        .group_by(AnalyticsEvent.event_type)
        .order_by(AnalyticsEvent.event_type)
    )
    return [
        {"event_type": event_type, "count": count, "unique_users": unique_users}
        for event_type, count, unique_users in result.all()
    ]


def _rate(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole > 0 else 0.0


async def get_deal_analytics(db: AsyncSession, deal: Deal, days: int = 7) -> dict:
    condition = or_(
        and_(AnalyticsEvent.entity_type == "deal", AnalyticsEvent.entity_id == deal.id),
        AnalyticsEvent.deal_id == deal.id,
    )
    events = await _event_breakdown(db, condition, days)
    return {
        "deal_id": deal.id,
        "period_days": days,
        "events": events,
        "funnel": {
            "views": deal.views,
            "clicks": deal.clicks,
            "saves": deal.saves,
            "redemptions": deal.redemptions,
            "ctr": _rate(deal.clicks, deal.views),
            "save_rate": _rate(deal.saves, deal.views),
            "conversion_rate": _rate(deal.redemptions, deal.views),
        },
    }


async def get_store_analytics(db: AsyncSession, store_id: int, days: int = 7) -> dict:
    condition = or_(
        and_(AnalyticsEvent.entity_type == "store", AnalyticsEvent.entity_id == store_id),
        AnalyticsEvent.store_id == store_id,
    )
    return {
        "store_id": store_id,
        "period_days": days,
        "events": await _event_breakdown(db, condition, days),
    }


def _count_of(event_type: str):
    return func.coalesce(func.sum(case((AnalyticsEvent.event_type == event_type, 1), else_=0)), 0)


async def get_popular_deals(db: AsyncSession, days: int = 7, limit: int = 10) -> list[dict]:
    """Deals ranked by views inside the period, redemptions breaking ties."""
    since = utcnow() - timedelta(days=days)
    views = _count_of("view")
    redemptions = _count_of("redemption")
    result = await db.execute(
        select(Deal.id, Deal.title, views, _count_of("click"), redemptions)
        .select_from(AnalyticsEvent)
        .join(Deal, Deal.id == AnalyticsEvent.deal_id)
        .where(AnalyticsEvent.created_at >= since)
        .group_by(Deal.id, Deal.title)
        .order_by(views.desc(), redemptions.desc(), Deal.id)
        .limit(limit)
    )
    return [
        {"deal_id": deal_id, "title": title, "views": v, "clicks": c, "redemptions": r}
        for deal_id, title, v, c, r in result.all()
    ]


async def ensure_analytics_access(db: AsyncSession, store_id: int, principal: User) -> None:
    """Analytics are a paid feature; admins always see them."""
    if principal.is_admin:
        return
    subscription = await subscription_service.get_active_subscription(db, store_id)
    if not subscription or not subscription.analytics_access:
        raise AuthorizationError("Analytics are not included in the current subscription plan")
