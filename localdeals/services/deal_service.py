# localdeals/services/deal_service.py
import logging
from datetime import datetime

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select, update, delete, func, case, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from localdeals.core.exceptions import (
    NotFoundError,
    AuthorizationError,
    ValidationError,
    QuotaExceededError,
    InvalidStateError,
)
from localdeals.models.deal_models import Deal, DealType
from localdeals.models.saved_models import SavedDeal
from localdeals.models.store_models import Store
from localdeals.models.user_models import User
from localdeals.schemas.deal_schemas import DealCreate, DealUpdate, DealOut, TimeRemaining
from localdeals.services import store_service, subscription_service, analytics_service
from localdeals.utils.datetime_utils import utcnow
from localdeals.utils.qr_utils import qr_data_url, redeem_url
from localdeals.utils.deal_rules import (
    compute_status,
    compute_discount_percentage,
    compute_time_remaining,
    parse_discount,
    check_discount_matches_type,
    check_schedule,
    derive_sale_price,
    build_qr_payload,
)

logger = logging.getLogger(__name__)

ALLOWED_UPDATES = {
    "title", "description", "category", "type", "discount", "pricing",
    "images", "schedule", "inventory", "restrictions", "tags", "terms",
}
NULLABLE_UPDATES = {"discount", "tags", "terms"}

ENGAGEMENT_COUNTERS = {
    "view": "views",
    "click": "clicks",
    "share": "shares",
}

SORT_OPTIONS = {"ending", "newest", "oldest", "popular", "discount"}


def to_deal_out(deal: Deal, now: datetime | None = None) -> DealOut:
    now = now or utcnow()
    remaining = compute_time_remaining(deal, now)
    out = DealOut.model_validate(deal, from_attributes=True)
    return out.model_copy(update={
        "status": compute_status(deal, now),
        "discount_percentage": compute_discount_percentage(deal),
        "time_remaining": TimeRemaining(**remaining) if remaining else None,
    })


async def get_deal(db: AsyncSession, deal_id: int) -> Deal | None:
    result = await db.execute(select(Deal).where(Deal.id == deal_id).execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def load_deal(db: AsyncSession, deal_id: int) -> Deal:
    deal = await get_deal(db, deal_id)
    if not deal:
        raise NotFoundError("Deal not found")
    return deal


# --------------------------
# CREATE DEAL
# --------------------------
async def create_deal(db: AsyncSession, store_id: int, payload: DealCreate, principal: User) -> Deal:
    store = await store_service.find_store(db, store_id)
    if not store:
        raise NotFoundError("Store not found")
    if not principal.is_admin and store.owner_id != principal.id:
        raise AuthorizationError("Not authorized to create deals for this store")
    if not store.is_active:
        raise InvalidStateError("Store is inactive")

    check_schedule(payload.schedule.start_date, payload.schedule.end_date)
    check_discount_matches_type(payload.type, payload.discount)
    sale_price = derive_sale_price(payload.pricing.original_price, payload.discount, payload.pricing.sale_price)

    subscription = await subscription_service.get_active_subscription(db, store.id)
    if subscription is None:
        raise QuotaExceededError("No active subscription for this store")
    if not subscription_service.can_create_deal(subscription):
        raise QuotaExceededError("Deal limit reached for current subscription plan")

    now = utcnow()
    total = payload.inventory.total_quantity
    deal = Deal(
        store_id=store.id,
        title=payload.title,
        description=payload.description,
        category=payload.category,
        type=payload.type.value,
        discount=payload.discount.model_dump(mode="json") if payload.discount else None,
        original_price=payload.pricing.original_price,
        sale_price=sale_price,
        currency=payload.pricing.currency,
        image_main=payload.images.main,
        image_gallery=payload.images.gallery,
        start_date=payload.schedule.start_date,
        end_date=payload.schedule.end_date,
        timezone=payload.schedule.timezone,
        total_quantity=total,
        available_quantity=total,
        sold_quantity=0,
        restrictions=payload.restrictions.model_dump(mode="json"),
        is_active=True,
        is_featured=False,
        is_approved=False,
        views=0, clicks=0, saves=0, shares=0, redemptions=0,
        tags=payload.tags,
        terms=payload.terms,
    )

    try:
        db.add(deal)
        await db.flush()
        deal.qr_code_data = build_qr_payload(deal.id, now)
        deal.qr_generated_at = now

        # quota check and usage bump are one conditional update
        reserved = await subscription_service.increment_usage(db, subscription, "deal", within_limit=True)
        if not reserved:
            raise QuotaExceededError("Deal limit reached for current subscription plan")

        await db.execute(
            update(Store)
            .where(Store.id == store.id)
            .values(total_deals=Store.total_deals + 1)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(deal)
    logger.info("Deal %s created for store %s by user %s", deal.id, store.id, principal.id)
    return deal


# --------------------------
# UPDATE DEAL
# --------------------------
def _apply_inventory(deal: Deal, total_quantity: int | None) -> None:
    if total_quantity is None:
        deal.total_quantity = None
        deal.available_quantity = None
        return
    if total_quantity < deal.sold_quantity:
        raise ValidationError(f"Total quantity cannot be below the {deal.sold_quantity} units already claimed")
    deal.total_quantity = total_quantity
    deal.available_quantity = total_quantity - deal.sold_quantity


async def update_deal(db: AsyncSession, deal_id: int, patch: dict, principal: User) -> Deal:
    deal = await load_deal(db, deal_id)
    await store_service.get_owned_store(db, deal.store_id, principal)

    invalid = set(patch) - ALLOWED_UPDATES
    if invalid:
        raise ValidationError(f"Invalid updates: {', '.join(sorted(invalid))}")

    try:
        changes = DealUpdate.model_validate(patch)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid updates: {e.errors(include_url=False)}")

    for field in changes.model_fields_set:
        if getattr(changes, field) is None and field not in NULLABLE_UPDATES:
            raise ValidationError(f"Field '{field}' cannot be null")

    try:
        fields = changes.model_fields_set
        supplied_sale_price = deal.sale_price

        for field in ("title", "description", "category", "tags", "terms"):
            if field in fields:
                setattr(deal, field, getattr(changes, field))
        if "type" in fields:
            deal.type = changes.type.value
        if "discount" in fields:
            deal.discount = changes.discount.model_dump(mode="json") if changes.discount else None
        if "pricing" in fields:
            deal.original_price = changes.pricing.original_price
            deal.currency = changes.pricing.currency
            supplied_sale_price = changes.pricing.sale_price
        if "images" in fields:
            deal.image_main = changes.images.main
            deal.image_gallery = changes.images.gallery
        if "schedule" in fields:
            check_schedule(changes.schedule.start_date, changes.schedule.end_date)
            deal.start_date = changes.schedule.start_date
            deal.end_date = changes.schedule.end_date
            deal.timezone = changes.schedule.timezone
        if "inventory" in fields:
            _apply_inventory(deal, changes.inventory.total_quantity)
        if "restrictions" in fields:
            deal.restrictions = changes.restrictions.model_dump(mode="json")

        discount = parse_discount(deal.discount)
        check_discount_matches_type(deal.type, discount)
        deal.sale_price = derive_sale_price(deal.original_price, discount, supplied_sale_price)

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(deal)
    logger.info("Deal %s updated by user %s (%s)", deal.id, principal.id, ", ".join(sorted(changes.model_fields_set)))
    return deal


# --------------------------
# SOFT DELETE
# --------------------------
async def deactivate_deal(db: AsyncSession, deal_id: int, principal: User) -> Deal:
    deal = await load_deal(db, deal_id)
    await store_service.get_owned_store(db, deal.store_id, principal)

    try:
        result = await db.execute(
            update(Deal)
            .where(Deal.id == deal.id, Deal.is_active == True)  # noqa: E712
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        # an already inactive deal has no slot left to release
        if result.rowcount == 1:
            subscription = await subscription_service.get_active_subscription(db, deal.store_id)
            if subscription:
                await subscription_service.decrement_usage(db, subscription, "deal")
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(deal)
    logger.info("Deal %s deactivated by user %s", deal.id, principal.id)
    return deal


# --------------------------
# APPROVE
# --------------------------
async def approve_deal(db: AsyncSession, deal_id: int, approver: User) -> Deal:
    if not approver.is_admin:
        raise AuthorizationError("Only admins can approve deals")

    deal = await load_deal(db, deal_id)
    if deal.is_approved:
        return deal

    try:
        await db.execute(
            update(Deal)
            .where(Deal.id == deal.id, Deal.is_approved == False)  # noqa: E712
            .values(is_approved=True, approved_by=approver.id, approved_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(deal)
    logger.info("Deal %s approved by user %s", deal.id, deal.approved_by)
    return deal


# --------------------------
# READ
# --------------------------
def _status_filters(status: str | None, now: datetime) -> list:
    if status == "active":
        return [
            Deal.is_active == True,  # noqa: E712
            Deal.is_approved == True,  # noqa: E712
            Deal.start_date <= now,
            Deal.end_date >= now,
        ]
    if status == "upcoming":
        return [Deal.start_date > now]
    if status == "expired":
        return [Deal.end_date < now]
    if status == "pending":
        return [Deal.is_approved == False]  # noqa: E712
    return []


def _sort_clause(sort: str):
    if sort == "newest":
        return Deal.created_at.desc()
    if sort == "oldest":
        return Deal.created_at.asc()
    if sort == "popular":
        return Deal.views.desc()
    if sort == "discount":
        return case(
            (Deal.original_price > 0, (Deal.original_price - Deal.sale_price) / Deal.original_price),
            else_=0,
        ).desc()
    return Deal.end_date.asc()


async def list_deals(
    db: AsyncSession,
    status: str | None = "active",
    category: str | None = None,
    store_id: int | None = None,
    deal_type: str | None = None,
    featured: bool | None = None,
    sort: str = "ending",
    page: int = 1,
    limit: int = 10,
    now: datetime | None = None,
) -> tuple[int, list[Deal]]:
    now = now or utcnow()
    if sort not in SORT_OPTIONS:
        sort = "ending"

    filters = _status_filters(status, now)
    if category:
        filters.append(Deal.category == category)
    if store_id:
        filters.append(Deal.store_id == store_id)
    if deal_type:
        filters.append(Deal.type == DealType(deal_type).value)
    if featured:
        filters.append(Deal.is_featured == True)  # noqa: E712

    count_stmt = select(func.count(Deal.id))
    stmt = select(Deal)
    if filters:
        count_stmt = count_stmt.where(and_(*filters))
        stmt = stmt.where(and_(*filters))

    total = (await db.execute(count_stmt)).scalar() or 0
    stmt = stmt.order_by(_sort_clause(sort), Deal.id).offset((page - 1) * limit).limit(limit)
    result = await db.execute(stmt)
    return total, result.scalars().all()


async def list_pending_deals(db: AsyncSession, page: int = 1, limit: int = 20) -> tuple[int, list[Deal]]:
    return await list_deals(db, status="pending", sort="newest", page=page, limit=limit)


# --------------------------
# ENGAGEMENT
# --------------------------
async def track_engagement(db: AsyncSession, deal_id: int, event_type: str, user_id: int | None = None) -> Deal:
    if event_type not in ENGAGEMENT_COUNTERS:
        raise ValidationError(f"Unknown engagement event '{event_type}'")

    deal = await load_deal(db, deal_id)
    column = getattr(Deal, ENGAGEMENT_COUNTERS[event_type])

    try:
        await db.execute(
            update(Deal)
            .where(Deal.id == deal.id)
            .values({column: column + 1})
            .execution_options(synchronize_session=False)
        )
        if event_type == "view":
            store_values = {Store.total_views: Store.total_views + 1}
        elif event_type == "click":
            store_values = {Store.total_clicks: Store.total_clicks + 1}
        else:
            store_values = None
        if store_values:
            await db.execute(
                update(Store)
                .where(Store.id == deal.store_id)
                .values(store_values)
                .execution_options(synchronize_session=False)
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(deal)
    await analytics_service.record_event(
        "deal", deal.id, event_type, user_id,
        {"deal_id": deal.id, "store_id": deal.store_id, "category": deal.category},
    )
    return deal


# --------------------------
# SAVED DEALS
# --------------------------
async def _find_saved(db: AsyncSession, user_id: int, deal_id: int) -> SavedDeal | None:
    result = await db.execute(
        select(SavedDeal).where(SavedDeal.user_id == user_id, SavedDeal.deal_id == deal_id)
    )
    return result.scalar_one_or_none()


async def save_deal(db: AsyncSession, deal_id: int, user: User) -> tuple[Deal, bool]:
    """
    Bookmark a deal for the user. Only the first save counts towards the
    deal's `saves`; the bool says whether this call created the bookmark.
    """
    user_id = user.id
    deal = await load_deal(db, deal_id)
    if await _find_saved(db, user_id, deal.id):
        return deal, False

    try:
        db.add(SavedDeal(user_id=user_id, deal_id=deal.id))
        await db.flush()
        await db.execute(
            update(Deal)
            .where(Deal.id == deal.id)
            .values(saves=Deal.saves + 1)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        # a concurrent save of the same deal won the unique constraint
        if not await _find_saved(db, user_id, deal_id):
            raise
        return await load_deal(db, deal_id), False
    except Exception:
        await db.rollback()
        raise

    await db.refresh(deal)
    logger.info("User %s saved deal %s", user_id, deal.id)
    await analytics_service.record_event(
        "deal", deal.id, "save", user_id,
        {"deal_id": deal.id, "store_id": deal.store_id, "category": deal.category},
    )
    return deal, True


async def unsave_deal(db: AsyncSession, deal_id: int, user: User) -> Deal:
    """Drop the bookmark; `saves` follows the number of users holding one."""
    user_id = user.id
    deal = await load_deal(db, deal_id)

    try:
        result = await db.execute(
            delete(SavedDeal).where(SavedDeal.user_id == user_id, SavedDeal.deal_id == deal.id)
        )
        if result.rowcount == 1:
            await db.execute(
                update(Deal)
                .where(Deal.id == deal.id)
                .values(saves=case((Deal.saves > 0, Deal.saves - 1), else_=0))
                .execution_options(synchronize_session=False)
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(deal)
    return deal


async def list_saved_deals(db: AsyncSession, user_id: int, now: datetime | None = None) -> list[Deal]:
    """Saved deals that are still live, most recently saved first."""
    now = now or utcnow()
    result = await db.execute(
        select(Deal)
        .join(SavedDeal, SavedDeal.deal_id == Deal.id)
        .where(SavedDeal.user_id == user_id, *_status_filters("active", now))
        .order_by(SavedDeal.created_at.desc(), SavedDeal.id.desc())
    )
    return result.scalars().all()


# --------------------------
# FEATURED / CATEGORIES
# --------------------------
async def set_featured(db: AsyncSession, deal_id: int, featured: bool, principal: User) -> Deal:
    if not principal.is_admin:
        raise AuthorizationError("Only admins can feature deals")

    deal = await load_deal(db, deal_id)
    try:
        deal.is_featured = featured
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(deal)
    logger.info("Deal %s featured=%s by user %s", deal.id, featured, principal.id)
    return deal


async def list_featured_deals(db: AsyncSession, limit: int = 10, now: datetime | None = None) -> list[Deal]:
    _, deals = await list_deals(db, status="active", featured=True, sort="ending", limit=limit, now=now)
    return deals


async def count_live_categories(db: AsyncSession, now: datetime | None = None) -> list[dict]:
    now = now or utcnow()
    count = func.count(Deal.id)
    result = await db.execute(
        select(Deal.category, count)
        .where(*_status_filters("active", now))
        .group_by(Deal.category)
        .order_by(count.desc(), Deal.category)
    )
    return [{"category": category, "count": total} for category, total in result.all()]


# --------------------------
# QR CODE
# --------------------------
async def get_deal_qr(db: AsyncSession, deal_id: int, principal: User) -> dict:
    deal = await load_deal(db, deal_id)
    await store_service.get_owned_store(db, deal.store_id, principal)

    if not deal.qr_code_data:
        now = utcnow()
        try:
            deal.qr_code_data = build_qr_payload(deal.id, now)
            deal.qr_generated_at = now
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        await db.refresh(deal)

    url = redeem_url(deal.qr_code_data)
    return {
        "deal_id": deal.id,
        "data": deal.qr_code_data,
        "redeem_url": url,
        "image": qr_data_url(url),
    }
