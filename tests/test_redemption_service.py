import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from localdeals.core import db as db_module
from localdeals.core.exceptions import (
    NotFoundError,
    AuthorizationError,
    QuotaExceededError,
    InvalidStateError,
    ExpiredError,
)
from localdeals.models.analytics_models import AnalyticsEvent
from localdeals.models.redemption_models import RedemptionStatus
from localdeals.models.user_models import User, UserRole
from localdeals.services import deal_service, redemption_service
from localdeals.utils.datetime_utils import utcnow, as_utc


# --------------------------
# issue
# --------------------------
async def test_issue_snapshots_pricing_and_deal_end(db, live_deal, customer):
    redemption = await redemption_service.issue(db, live_deal.id, customer)

    assert redemption.status == RedemptionStatus.ACTIVE
    assert redemption.code.startswith(redemption_service.CODE_PREFIX)
    assert redemption.store_id == live_deal.store_id
    assert redemption.original_price == Decimal("70.00")
    assert redemption.final_price == Decimal("49.00")
    assert redemption.savings == Decimal("21.00")
    assert as_utc(redemption.expires_at) == as_utc(live_deal.end_date)


async def test_two_claims_get_distinct_codes(db, live_deal, customer, owner):
    first = await redemption_service.issue(db, live_deal.id, customer)
    second = await redemption_service.issue(db, live_deal.id, customer)
    assert first.code != second.code

    await redemption_service.consume(db, first.code, live_deal.store_id, owner)

    await db.refresh(second)
    assert second.status == RedemptionStatus.ACTIVE
    assert await redemption_service.validate(db, second.code, live_deal.store_id) is not None


async def test_pending_deal_cannot_be_claimed(db, store, owner, subscription, customer, deal_payload):
    deal = await deal_service.create_deal(db, store.id, deal_payload(store.id), owner)
    with pytest.raises(InvalidStateError):
        await redemption_service.issue(db, deal.id, customer)


async def test_expired_deal_cannot_be_claimed(db, store, owner, subscription, customer, make_live_deal):
    now = utcnow()
    deal = await make_live_deal(store, owner, schedule={
        "start_date": (now - timedelta(days=3)).isoformat(),
        "end_date": (now - timedelta(days=1)).isoformat(),
    })
    with pytest.raises(ExpiredError):
        await redemption_service.issue(db, deal.id, customer)


async def test_missing_deal(db, customer):
    with pytest.raises(NotFoundError):
        await redemption_service.issue(db, 999, customer)


async def test_bounded_inventory_sells_out(db, store, owner, subscription, customer, make_live_deal):
    deal = await make_live_deal(store, owner, inventory={"total_quantity": 1})
    deal_id, customer_id = deal.id, customer.id

    redemption = await redemption_service.issue(db, deal_id, customer)
    redemption_id = redemption.id
    with pytest.raises(InvalidStateError):
        await redemption_service.issue(db, deal_id, customer)

    # the failed claim rolled the session back
    await db.refresh(customer)

    # cancelling hands the unit back
    await redemption_service.cancel(db, redemption_id, customer)
    again = await redemption_service.issue(db, deal_id, customer)
    assert again.customer_id == customer_id


async def test_max_per_customer(db, store, owner, subscription, customer, make_live_deal):
    deal = await make_live_deal(store, owner, restrictions={"max_per_customer": 1})
    await redemption_service.issue(db, deal.id, customer)
    with pytest.raises(QuotaExceededError):
        await redemption_service.issue(db, deal.id, customer)


async def test_rejected_claim_hands_the_unit_back(db, store, owner, subscription, customer, make_live_deal):
    deal = await make_live_deal(store, owner, inventory={"total_quantity": 3}, restrictions={"max_per_customer": 1})
    await redemption_service.issue(db, deal.id, customer)
    with pytest.raises(QuotaExceededError):
        await redemption_service.issue(db, deal.id, customer)

    await db.refresh(deal)
    assert deal.sold_quantity == 1
    assert deal.available_quantity == 2


async def test_concurrent_claims_respect_max_per_customer(session_factory, db, store, owner, subscription, customer, make_live_deal):
    deal = await make_live_deal(store, owner, restrictions={"max_per_customer": 1})
    deal_id = deal.id

    async def attempt():
        async with session_factory() as session:
            try:
                await redemption_service.issue(session, deal_id, customer)
                return "issued"
            except QuotaExceededError:
                return "rejected"

    outcomes = await asyncio.gather(attempt(), attempt())
    assert sorted(outcomes) == ["issued", "rejected"]

    await db.refresh(deal)
    assert deal.sold_quantity == 1
    total, _ = await redemption_service.list_customer_redemptions(db, customer.id, None)
    assert total == 1


async def test_code_collision_is_retried(db, live_deal, customer, monkeypatch):
    deal_id = live_deal.id
    first = await redemption_service.issue(db, deal_id, customer)
    codes = iter([first.code, "LD-FRESHCODE1"])
    monkeypatch.setattr(redemption_service, "generate_code", lambda: next(codes))

    second = await redemption_service.issue(db, deal_id, customer)
    assert second.code == "LD-FRESHCODE1"

    await db.refresh(live_deal)
    assert live_deal.sold_quantity == 2


async def test_other_integrity_errors_are_not_retried(db, live_deal, monkeypatch):
    deal_id = live_deal.id
    generated = []
    real_generate = redemption_service.generate_code

    def counting_generate():
        generated.append(1)
        return real_generate()

    monkeypatch.setattr(redemption_service, "generate_code", counting_generate)
    # never persisted, so the insert trips the customer foreign key
    ghost = User(id=999999, email="ghost@example.com", password_hash="x", role=UserRole.CUSTOMER.value)

    with pytest.raises(IntegrityError):
        await redemption_service.issue(db, deal_id, ghost)
    assert len(generated) == 1

    await db.refresh(live_deal)
    assert live_deal.sold_quantity == 0


# --------------------------
# consume
# --------------------------
async def test_consume_records_usage_and_deal_totals(db, live_deal, customer, owner):
    redemption = await redemption_service.issue(db, live_deal.id, customer)

    used = await redemption_service.consume(
        db, redemption.code, live_deal.store_id, owner, location={"ip": "10.0.0.1"}, method="qr"
    )
    assert used.status == RedemptionStatus.USED
    assert used.used_by == owner.id
    assert used.used_at is not None
    assert used.validation_method == "qr"
    assert used.usage_location == {"ip": "10.0.0.1"}

    await db.refresh(live_deal)
    assert live_deal.redemptions == 1
    assert live_deal.estimated_revenue == Decimal("49.00")

    events = (await db.execute(select(AnalyticsEvent).where(AnalyticsEvent.event_type == "redemption"))).scalars().all()
    assert len(events) == 1
    assert events[0].user_id == customer.id
    assert events[0].store_id == live_deal.store_id


async def test_consume_twice_is_rejected(db, live_deal, customer, owner):
    redemption = await redemption_service.issue(db, live_deal.id, customer)
    await redemption_service.consume(db, redemption.code, live_deal.store_id, owner)
    with pytest.raises(InvalidStateError):
        await redemption_service.consume(db, redemption.code, live_deal.store_id, owner)


async def test_concurrent_consume_has_one_winner(session_factory, db, live_deal, customer, owner):
    redemption = await redemption_service.issue(db, live_deal.id, customer)
    code, store_id = redemption.code, live_deal.store_id

    async def attempt():
        async with session_factory() as session:
            try:
                await redemption_service.consume(session, code, store_id, owner)
                return "used"
            except InvalidStateError:
                return "rejected"

    outcomes = await asyncio.gather(attempt(), attempt())
    assert sorted(outcomes) == ["rejected", "used"]

    await db.refresh(live_deal)
    assert live_deal.redemptions == 1


async def test_status_swap_only_moves_active_rows(db, live_deal, customer):
    redemption = await redemption_service.issue(db, live_deal.id, customer)

    assert await redemption_service.transition_from_active(db, redemption, RedemptionStatus.USED)
    assert not await redemption_service.transition_from_active(db, redemption, RedemptionStatus.CANCELLED)
    await db.commit()
    assert redemption.status == RedemptionStatus.USED


async def test_consume_after_expiry(db, live_deal, customer, owner):
    past = utcnow() - timedelta(minutes=1)
    redemption = await redemption_service.issue(db, live_deal.id, customer, expires_at=past)
    code, store_id, redemption_id = redemption.code, live_deal.store_id, redemption.id

    with pytest.raises(ExpiredError):
        await redemption_service.consume(db, code, store_id, owner)

    stored = await redemption_service.get_redemption(db, redemption_id)
    assert stored.status == RedemptionStatus.EXPIRED
    assert await redemption_service.validate(db, code, store_id) is None

    with pytest.raises(InvalidStateError):
        await redemption_service.consume(db, code, store_id, owner)


async def test_consume_at_another_store_is_not_found(db, live_deal, customer, owner, make_store):
    redemption = await redemption_service.issue(db, live_deal.id, customer)
    second_store = await make_store(owner, name="Second Branch")
    with pytest.raises(NotFoundError):
        await redemption_service.consume(db, redemption.code, second_store.id, owner)


async def test_consume_by_stranger(db, live_deal, customer, other_owner):
    redemption = await redemption_service.issue(db, live_deal.id, customer)
    with pytest.raises(AuthorizationError):
        await redemption_service.consume(db, redemption.code, live_deal.store_id, other_owner)


async def test_analytics_failure_does_not_undo_consume(db, live_deal, customer, owner, monkeypatch):
    redemption = await redemption_service.issue(db, live_deal.id, customer)

    def broken_session():
        raise RuntimeError("analytics store down")

    monkeypatch.setattr(db_module, "AsyncSessionLocal", broken_session)
    used = await redemption_service.consume(db, redemption.code, live_deal.store_id, owner)
    assert used.status == RedemptionStatus.USED


# --------------------------
# validate / cancel / list
# --------------------------
async def test_validate_is_read_only(db, live_deal, customer):
    redemption = await redemption_service.issue(db, live_deal.id, customer)

    found = await redemption_service.validate(db, redemption.code, live_deal.store_id)
    assert found.id == redemption.id
    assert await redemption_service.validate(db, "LD-NOPE", live_deal.store_id) is None

    await db.refresh(redemption)
    assert redemption.status == RedemptionStatus.ACTIVE


async def test_cancel_by_someone_else(db, live_deal, customer, other_owner):
    redemption = await redemption_service.issue(db, live_deal.id, customer)
    with pytest.raises(AuthorizationError):
        await redemption_service.cancel(db, redemption.id, other_owner)


async def test_cancel_only_from_active(db, live_deal, customer, owner):
    redemption = await redemption_service.issue(db, live_deal.id, customer)
    await redemption_service.consume(db, redemption.code, live_deal.store_id, owner)
    with pytest.raises(InvalidStateError):
        await redemption_service.cancel(db, redemption.id, customer)


async def test_list_customer_redemptions_by_status(db, live_deal, customer, owner):
    used = await redemption_service.issue(db, live_deal.id, customer)
    await redemption_service.consume(db, used.code, live_deal.store_id, owner)
    active = await redemption_service.issue(db, live_deal.id, customer)
    lapsed = await redemption_service.issue(db, live_deal.id, customer, expires_at=utcnow() - timedelta(hours=1))

    total, rows = await redemption_service.list_customer_redemptions(db, customer.id)
    assert total == 1
    assert [r.id for r in rows] == [active.id]

    total, rows = await redemption_service.list_customer_redemptions(db, customer.id, "expired")
    assert [r.id for r in rows] == [lapsed.id]

    total, rows = await redemption_service.list_customer_redemptions(db, customer.id, "used")
    assert [r.id for r in rows] == [used.id]

    total, _ = await redemption_service.list_customer_redemptions(db, customer.id, None)
    assert total == 3


async def test_cancel_on_unlimited_deal_returns_the_claim(db, live_deal, customer):
    redemption = await redemption_service.issue(db, live_deal.id, customer)
    await db.refresh(live_deal)
    assert live_deal.sold_quantity == 1
    assert live_deal.available_quantity is None

    await redemption_service.cancel(db, redemption.id, customer)
    await db.refresh(live_deal)
    assert live_deal.sold_quantity == 0
    assert live_deal.available_quantity is None
