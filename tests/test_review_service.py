from decimal import Decimal

import pytest

from localdeals.core.exceptions import NotFoundError, AuthorizationError, ValidationError, InvalidStateError
from localdeals.models.review_models import ModerationStatus
from localdeals.models.user_models import User, UserRole
from localdeals.schemas.review_schemas import ReviewCreate
from localdeals.services import review_service


def review_payload(store_id: int, **overrides) -> ReviewCreate:
    data = {"store_id": store_id, "rating": 4, "title": "Good bakery", "comment": "Fresh bread every morning"}
    data.update(overrides)
    return ReviewCreate.model_validate(data)


async def _second_customer(db) -> User:
    user = User(
        email="second@example.com",
        password_hash="not-a-real-hash",
        role=UserRole.CUSTOMER.value,
        is_active=True,
        token_version=0,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


# --------------------------
# create
# --------------------------
async def test_review_waits_for_moderation(db, store, customer):
    review = await review_service.create_review(db, review_payload(store.id), customer)
    assert review.moderation_status == ModerationStatus.PENDING.value

    total, _ = await review_service.list_store_reviews(db, store.id)
    assert total == 0
    total, pending = await review_service.list_pending_reviews(db)
    assert [r.id for r in pending] == [review.id]


async def test_one_review_per_store(db, store, customer):
    await review_service.create_review(db, review_payload(store.id), customer)
    with pytest.raises(InvalidStateError):
        await review_service.create_review(db, review_payload(store.id, rating=1), customer)


async def test_owner_cannot_review_own_store(db, store, owner):
    with pytest.raises(AuthorizationError):
        await review_service.create_review(db, review_payload(store.id), owner)


async def test_review_of_missing_store(db, customer):
    with pytest.raises(NotFoundError):
        await review_service.create_review(db, review_payload(999), customer)


async def test_review_deal_must_belong_to_store(db, live_deal, owner, customer, make_store):
    elsewhere = await make_store(owner, name="Across the street")
    with pytest.raises(ValidationError):
        await review_service.create_review(db, review_payload(elsewhere.id, deal_id=live_deal.id), customer)


# --------------------------
# moderation and rating
# --------------------------
async def test_store_rating_follows_moderation(db, store, customer, admin):
    second = await _second_customer(db)
    five = await review_service.create_review(db, review_payload(store.id, rating=5), customer)
    two = await review_service.create_review(db, review_payload(store.id, rating=2), second)

    await review_service.moderate_review(db, five.id, "approved", None, admin)
    await review_service.moderate_review(db, two.id, "approved", None, admin)
    await db.refresh(store)
    assert store.rating_average == Decimal("3.5")
    assert store.rating_count == 2

    rating = await review_service.get_store_rating(db, store.id)
    assert rating["average"] == Decimal("3.5")
    assert rating["count"] == 2
    assert rating["distribution"] == {5: 1, 4: 0, 3: 0, 2: 1, 1: 0}

    total, rows = await review_service.list_store_reviews(db, store.id, sort="lowest")
    assert [r.id for r in rows] == [two.id, five.id]
    total, rows = await review_service.list_store_reviews(db, store.id, rating=5)
    assert [r.id for r in rows] == [five.id]

    rejected = await review_service.moderate_review(db, two.id, "rejected", "Off-topic", admin)
    assert rejected.moderation_reason == "Off-topic"
    await db.refresh(store)
    assert store.rating_average == Decimal("5.0")
    assert store.rating_count == 1


async def test_only_admins_moderate(db, store, customer, owner, admin):
    review = await review_service.create_review(db, review_payload(store.id), customer)
    with pytest.raises(AuthorizationError):
        await review_service.moderate_review(db, review.id, "approved", None, owner)
    with pytest.raises(ValidationError):
        await review_service.moderate_review(db, review.id, "pending", None, admin)


async def test_rating_without_reviews(db, store):
    rating = await review_service.get_store_rating(db, store.id)
    assert rating["average"] == Decimal("0.0")
    assert rating["count"] == 0


# --------------------------
# owner reply
# --------------------------
async def test_owner_answers_approved_reviews_only(db, store, customer, owner, other_owner, admin):
    review = await review_service.create_review(db, review_payload(store.id), customer)
    with pytest.raises(InvalidStateError):
        await review_service.respond_to_review(db, review.id, "Thank you!", owner)

    await review_service.moderate_review(db, review.id, "approved", None, admin)
    with pytest.raises(AuthorizationError):
        await review_service.respond_to_review(db, review.id, "Not my store", other_owner)

    answered = await review_service.respond_to_review(db, review.id, "Thank you!", owner)
    assert answered.response_text == "Thank you!"
    assert answered.responded_at is not None
