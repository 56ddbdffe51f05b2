# localdeals/services/redemption_service.py
"""
Redemption ledger.

A redemption moves out of `active` exactly once, to `used`, `expired` or
`cancelled`. Every move is a conditional UPDATE on the status column, so
concurrent callers race on the database row and only one of them wins.
Expiry is lazy: nothing sweeps old codes, they flip to `expired` the first
time someone tries to consume them.
"""
import logging
import secrets
import string
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update, func, or_, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from localdeals.core.config import REDEMPTION_CODE_LENGTH, REDEMPTION_FALLBACK_DAYS
from localdeals.core.exceptions import (
    NotFoundError,
    AuthorizationError,
    QuotaExceededError,
    InvalidStateError,
    ExpiredError,
)
from localdeals.models.deal_models import Deal, DealStatus
from localdeals.models.redemption_models import Redemption, RedemptionStatus
from localdeals.models.user_models import User
from localdeals.services import deal_service, store_service, analytics_service
from localdeals.utils.datetime_utils import utcnow, as_utc
from localdeals.utils.deal_rules import compute_status, resolve_redemption_expiry
from localdeals.utils.decimal_utils import to_decimal

logger = logging.getLogger(__name__)

# no 0/O or 1/I, codes get read aloud at the till
CODE_ALPHABET = "".join(c for c in string.ascii_uppercase + string.digits if c not in "01IO")
CODE_PREFIX = "LD-"
CODE_ATTEMPTS = 5


def generate_code(length: int = REDEMPTION_CODE_LENGTH) -> str:
    return CODE_PREFIX + "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


async def transition_from_active(db: AsyncSession, redemption: Redemption, new_status: RedemptionStatus, **values) -> bool:
    """
    Compare-and-swap out of `active`. Returns False when another request
    already moved the row; the caller owns the commit.
    """
    result = await db.execute(
        update(Redemption)
        .where(Redemption.id == redemption.id, Redemption.status == RedemptionStatus.ACTIVE)
        .values(status=new_status, updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    await db.refresh(redemption)
    return True


async def get_redemption(db: AsyncSession, redemption_id: int) -> Redemption | None:
    result = await db.execute(select(Redemption).where(Redemption.id == redemption_id))
    return result.scalar_one_or_none()


# --------------------------
# ISSUE
# --------------------------
async def _count_held(db: AsyncSession, deal_id: int, customer_id: int) -> int:
    result = await db.execute(
        select(func.count(Redemption.id)).where(
            Redemption.deal_id == deal_id,
            Redemption.customer_id == customer_id,
            Redemption.status.in_([RedemptionStatus.ACTIVE, RedemptionStatus.USED]),
        )
    )
    return result.scalar() or 0


async def _issue_once(db: AsyncSession, deal_id: int, customer_id: int, expires_at: datetime | None) -> Redemption:
    now = utcnow()
    deal = await deal_service.load_deal(db, deal_id)

    status = compute_status(deal, now)
    if status == DealStatus.EXPIRED:
        raise ExpiredError("Deal has expired")
    if status != DealStatus.ACTIVE:
        raise InvalidStateError(f"Deal is {status.value} and cannot be claimed")

    original = to_decimal(deal.original_price)
    final = to_decimal(deal.sale_price)
    savings = max(original - final, Decimal("0.00"))

    try:
        # reserving the unit writes the deal row first, which serializes
        # concurrent claims on this deal until commit
        result = await db.execute(
            update(Deal)
            .where(
                Deal.id == deal.id,
                or_(Deal.total_quantity.is_(None), Deal.available_quantity > 0),
            )
            .values(
                available_quantity=Deal.available_quantity - 1,
                sold_quantity=Deal.sold_quantity + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidStateError("Deal is sold out")

        max_per_customer = (deal.restrictions or {}).get("max_per_customer")
        if max_per_customer and await _count_held(db, deal.id, customer_id) >= max_per_customer:
            raise QuotaExceededError("Redemption limit reached for this deal")

        redemption = Redemption(
            code=generate_code(),
            deal_id=deal.id,
            store_id=deal.store_id,
            customer_id=customer_id,
            status=RedemptionStatus.ACTIVE,
            expires_at=resolve_redemption_expiry(deal, now, REDEMPTION_FALLBACK_DAYS, expires_at),
            original_price=original,
            discount_amount=savings,
            final_price=final,
            savings=savings,
        )
        db.add(redemption)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(redemption)
    return redemption


def _is_code_collision(error: IntegrityError) -> bool:
    # sqlite names the column, postgres the unique index
    message = str(error.orig)
    return "redemptions.code" in message or "ix_redemptions_code" in message


async def issue(db: AsyncSession, deal_id: int, customer: User, expires_at: datetime | None = None) -> Redemption:
    # a rollback expires every loaded instance, keep the plain id
    customer_id = customer.id
    for _ in range(CODE_ATTEMPTS):
        try:
            redemption = await _issue_once(db, deal_id, customer_id, expires_at)
        except IntegrityError as e:
            if not _is_code_collision(e):
                raise
            logger.warning("Redemption code collision on deal %s, retrying", deal_id)
            continue
        logger.info("Issued redemption %s on deal %s to user %s", redemption.id, deal_id, customer_id)
        return redemption

    raise RuntimeError("Could not generate a unique redemption code after retries")


# --------------------------
# CONSUME
# --------------------------
async def consume(
    db: AsyncSession,
    code: str,
    store_id: int,
    consumer: User,
    location: dict | None = None,
    method: str = "code",
) -> Redemption:
    store = await store_service.get_owned_store(db, store_id, consumer)

    result = await db.execute(
        select(Redemption)
        .where(Redemption.code == code, Redemption.store_id == store.id)
        .execution_options(populate_existing=True)
    )
    redemption = result.scalar_one_or_none()
    if not redemption:
        raise NotFoundError("Redemption code not found for this store")
    if redemption.status != RedemptionStatus.ACTIVE:
        raise InvalidStateError(f"Redemption is {redemption.status.value}")

    now = utcnow()
    if now > as_utc(redemption.expires_at):
        try:
            expired = await transition_from_active(db, redemption, RedemptionStatus.EXPIRED)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        if expired:
            logger.info("Redemption %s expired on use", redemption.id)
        raise ExpiredError("Redemption has expired")

    try:
        won = await transition_from_active(
            db,
            redemption,
            RedemptionStatus.USED,
            used_at=now,
            used_by=consumer.id,
            usage_location=location,
            validation_method=method,
        )
        if not won:
            raise InvalidStateError("Redemption is no longer active")

        await db.execute(
            update(Deal)
            .where(Deal.id == redemption.deal_id)
            .values(
                redemptions=Deal.redemptions + 1,
                estimated_revenue=Deal.estimated_revenue + to_decimal(redemption.final_price),
            )
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Redemption %s used at store %s by user %s", redemption.id, store.id, consumer.id)
    await analytics_service.record_event(
        "deal", redemption.deal_id, "redemption", redemption.customer_id,
        {
            "deal_id": redemption.deal_id,
            "store_id": redemption.store_id,
            "redemption_id": redemption.id,
            "value": str(to_decimal(redemption.final_price)),
        },
    )
    return redemption


# --------------------------
# VALIDATE (read-only)
# --------------------------
async def validate(db: AsyncSession, code: str, store_id: int) -> Redemption | None:
    result = await db.execute(
        select(Redemption).where(
            Redemption.code == code,
            Redemption.store_id == store_id,
            Redemption.status == RedemptionStatus.ACTIVE,
            Redemption.expires_at > utcnow(),
        )
    )
    return result.scalar_one_or_none()


# --------------------------
# CANCEL
# --------------------------
async def cancel(db: AsyncSession, redemption_id: int, principal: User) -> Redemption:
    redemption = await get_redemption(db, redemption_id)
    if not redemption:
        raise NotFoundError("Redemption not found")
    if not principal.is_admin and redemption.customer_id != principal.id:
        raise AuthorizationError("Not authorized to cancel this redemption")
    if redemption.status != RedemptionStatus.ACTIVE:
        raise InvalidStateError(f"Redemption is {redemption.status.value}")

    try:
        won = await transition_from_active(db, redemption, RedemptionStatus.CANCELLED, cancelled_at=utcnow())
        if not won:
            raise InvalidStateError("Redemption is no longer active")

        # hand the reserved unit back; available stays NULL on unlimited deals
        await db.execute(
            update(Deal)
            .where(Deal.id == redemption.deal_id, Deal.sold_quantity > 0)
            .values(
                available_quantity=Deal.available_quantity + 1,
                sold_quantity=Deal.sold_quantity - 1,
            )
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Redemption %s cancelled by user %s", redemption.id, principal.id)
    return redemption


# --------------------------
# LIST
# --------------------------
def _customer_status_filters(status: str | None, now: datetime) -> list:
    if status == "active":
        return [Redemption.status == RedemptionStatus.ACTIVE, Redemption.expires_at > now]
    if status == "used":
        return [Redemption.status == RedemptionStatus.USED]
    if status == "expired":
        # includes codes that lapsed but were never looked at again
        return [or_(
            Redemption.status == RedemptionStatus.EXPIRED,
            and_(Redemption.status == RedemptionStatus.ACTIVE, Redemption.expires_at <= now),
        )]
    if status == "cancelled":
        return [Redemption.status == RedemptionStatus.CANCELLED]
    return []


async def list_customer_redemptions(
    db: AsyncSession, customer_id: int, status: str | None = "active"
) -> tuple[int, list[Redemption]]:
    filters = [Redemption.customer_id == customer_id, *_customer_status_filters(status, utcnow())]

    total = (await db.execute(select(func.count(Redemption.id)).where(*filters))).scalar() or 0
    result = await db.execute(
        select(Redemption).where(*filters).order_by(Redemption.created_at.desc(), Redemption.id.desc())
    )
    return total, result.scalars().all()
