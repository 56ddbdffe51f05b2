# localdeals/services/review_service.py
"""
Store reviews.

Customers write one review per store. A review stays invisible until an
admin approves it, and the store's rating only ever reflects approved
reviews: it is recomputed inside the same transaction as each moderation
decision.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from localdeals.core.exceptions import NotFoundError, AuthorizationError, ValidationError, InvalidStateError
from localdeals.models.review_models import Review, ModerationStatus
from localdeals.models.store_models import Store
from localdeals.models.user_models import User
from localdeals.schemas.review_schemas import ReviewCreate
from localdeals.services import deal_service, store_service
from localdeals.utils.datetime_utils import utcnow
from localdeals.utils.decimal_utils import to_decimal

logger = logging.getLogger(__name__)

SORT_OPTIONS = {"newest", "oldest", "highest", "lowest"}


async def get_review(db: AsyncSession, review_id: int) -> Review:
    result = await db.execute(
        select(Review).where(Review.id == review_id).execution_options(populate_existing=True)
    )
    review = result.scalar_one_or_none()
    if not review:
        raise NotFoundError("Review not found")
    return review


async def _find_customer_review(db: AsyncSession, store_id: int, customer_id: int) -> Review | None:
    result = await db.execute(
        select(Review).where(Review.store_id == store_id, Review.customer_id == customer_id)
    )
    return result.scalar_one_or_none()


# --------------------------
# CREATE
# --------------------------
async def create_review(db: AsyncSession, payload: ReviewCreate, principal: User) -> Review:
    customer_id = principal.id
    store = await store_service.find_store(db, payload.store_id)
    if not store or not store.is_active:
        raise NotFoundError("Store not found")
    if store.owner_id == customer_id:
        raise AuthorizationError("Store owners cannot review their own store")

    if payload.deal_id is not None:
        deal = await deal_service.load_deal(db, payload.deal_id)
        if deal.store_id != store.id:
            raise ValidationError("Deal does not belong to this store")

    if await _find_customer_review(db, store.id, customer_id):
        raise InvalidStateError("You have already reviewed this store")

    review = Review(
        store_id=store.id,
        customer_id=customer_id,
        deal_id=payload.deal_id,
        rating=payload.rating,
        title=payload.title,
        comment=payload.comment,
        images=payload.images,
        moderation_status=ModerationStatus.PENDING.value,
    )
    try:
        db.add(review)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        if await _find_customer_review(db, payload.store_id, customer_id):
            raise InvalidStateError("You have already reviewed this store")
        raise
    except Exception:
        await db.rollback()
        raise

    await db.refresh(review)
    logger.info("User %s reviewed store %s (review %s pending)", customer_id, review.store_id, review.id)
    return review


# --------------------------
# READ
# --------------------------
def _sort_clause(sort: str):
    if sort == "oldest":
        return Review.created_at.asc()
    if sort == "highest":
        return Review.rating.desc()
    if sort == "lowest":
        return Review.rating.asc()
    return Review.created_at.desc()


async def list_store_reviews(
    db: AsyncSession,
    store_id: int,
    rating: int | None = None,
    sort: str = "newest",
    page: int = 1,
    limit: int = 10,
) -> tuple[int, list[Review]]:
    if sort not in SORT_OPTIONS:
        sort = "newest"

    filters = [Review.store_id == store_id, Review.moderation_status == ModerationStatus.APPROVED.value]
    if rating:
        filters.append(Review.rating == rating)

    total = (await db.execute(select(func.count(Review.id)).where(*filters))).scalar() or 0
    result = await db.execute(
        select(Review)
        .where(*filters)
        .order_by(_sort_clause(sort), Review.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return total, result.scalars().all()


async def list_pending_reviews(db: AsyncSession, page: int = 1, limit: int = 20) -> tuple[int, list[Review]]:
    condition = Review.moderation_status == ModerationStatus.PENDING.value
    total = (await db.execute(select(func.count(Review.id)).where(condition))).scalar() or 0
    result = await db.execute(
        select(Review)
        .where(condition)
        .order_by(Review.created_at.desc(), Review.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return total, result.scalars().all()


async def get_store_rating(db: AsyncSession, store_id: int) -> dict:
    result = await db.execute(
        select(Review.rating, func.count(Review.id))
        .where(Review.store_id == store_id, Review.moderation_status == ModerationStatus.APPROVED.value)
        .group_by(Review.rating)
    )
    distribution = {star: 0 for star in range(5, 0, -1)}
    for star, count in result.all():
        distribution[star] = count

    count = sum(distribution.values())
    total = sum(star * n for star, n in distribution.items())
    average = (Decimal(total) / count).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP) if count else Decimal("0.0")
    return {"store_id": store_id, "average": average, "count": count, "distribution": distribution}


# --------------------------
# MODERATE (admin)
# --------------------------
async def _refresh_store_rating(db: AsyncSession, store_id: int) -> None:
    average, count = (await db.execute(
        select(func.avg(Review.rating), func.count(Review.id))
        .where(Review.store_id == store_id, Review.moderation_status == ModerationStatus.APPROVED.value)
    )).one()
    await db.execute(
        update(Store)
        .where(Store.id == store_id)
        .values(
            rating_average=to_decimal(average or 0).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP),
            rating_count=count,
        )
        .execution_options(synchronize_session=False)
    )


async def moderate_review(
    db: AsyncSession, review_id: int, status: str, reason: str | None, moderator: User
) -> Review:
    if not moderator.is_admin:
        raise AuthorizationError("Only admins can moderate reviews")
    if status not in (ModerationStatus.APPROVED.value, ModerationStatus.REJECTED.value):
        raise ValidationError("Moderation must approve or reject")
    decision = ModerationStatus(status)

    review = await get_review(db, review_id)
    try:
        review.moderation_status = decision.value
        review.moderated_by = moderator.id
        review.moderated_at = utcnow()
        review.moderation_reason = reason
        await db.flush()
        await _refresh_store_rating(db, review.store_id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(review)
    logger.info("Review %s %s by user %s", review.id, decision.value, moderator.id)
    return review


# --------------------------
# OWNER REPLY
# --------------------------
async def respond_to_review(db: AsyncSession, review_id: int, text: str, principal: User) -> Review:
    review = await get_review(db, review_id)
    await store_service.get_owned_store(db, review.store_id, principal)
    if review.moderation_status != ModerationStatus.APPROVED.value:
        raise InvalidStateError("Only approved reviews can be answered")

    try:
        review.response_text = text
        review.responded_by = principal.id
        review.responded_at = utcnow()
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(review)
    return review
