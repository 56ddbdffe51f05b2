import pytest

from localdeals.core.exceptions import NotFoundError, AuthorizationError, ValidationError
from localdeals.services import store_service


# --------------------------
# update
# --------------------------
async def test_update_store_applies_allowed_fields(db, store, owner):
    updated = await store_service.update_store(db, store.id, {
        "name": "Corner Shop & Deli",
        "address": {"street": "1 Main St", "city": "Springfield"},
        "features": ["parking", "wifi"],
        "images": {"logo": "https://img.example.com/logo.png"},
    }, owner)

    assert updated.name == "Corner Shop & Deli"
    assert updated.address["city"] == "Springfield"
    assert updated.features == ["parking", "wifi"]
    assert updated.images["logo"] == "https://img.example.com/logo.png"
    assert updated.description == "Neighbourhood store"


async def test_update_store_rejects_unknown_fields(db, store, owner):
    with pytest.raises(ValidationError):
        await store_service.update_store(db, store.id, {"is_verified": True}, owner)
    with pytest.raises(ValidationError):
        await store_service.update_store(db, store.id, {"name": None}, owner)
    with pytest.raises(ValidationError):
        await store_service.update_store(db, store.id, {"category": "spaceships"}, owner)


async def test_update_store_by_stranger(db, store, other_owner):
    with pytest.raises(AuthorizationError):
        await store_service.update_store(db, store.id, {"name": "Mine now"}, other_owner)


# --------------------------
# directory and verification
# --------------------------
async def test_directory_lists_verified_stores_only(db, store, owner, admin, make_store):
    second = await make_store(owner, name="Second Branch")

    total, _ = await store_service.list_stores(db)
    assert total == 0

    with pytest.raises(AuthorizationError):
        await store_service.verify_store(db, store.id, owner)

    verified = await store_service.verify_store(db, store.id, admin)
    assert verified.is_verified is True
    # verifying twice is harmless
    await store_service.verify_store(db, store.id, admin)

    total, stores = await store_service.list_stores(db)
    assert [s.id for s in stores] == [store.id]

    total, pending = await store_service.list_unverified_stores(db)
    assert [s.id for s in pending] == [second.id]


async def test_directory_filters(db, store, owner, admin):
    await store_service.update_store(db, store.id, {"address": {"city": "Springfield"}}, owner)
    await store_service.verify_store(db, store.id, admin)

    assert (await store_service.list_stores(db, city="spring"))[0] == 1
    assert (await store_service.list_stores(db, city="Shelbyville"))[0] == 0
    assert (await store_service.list_stores(db, search="corner"))[0] == 1
    assert (await store_service.list_stores(db, category="books"))[0] == 0


async def test_verify_missing_store(db, admin):
    with pytest.raises(NotFoundError):
        await store_service.verify_store(db, 999, admin)


# --------------------------
# favorites
# --------------------------
async def test_favorite_stores(db, store, customer):
    await store_service.add_favorite_store(db, store.id, customer)
    await store_service.add_favorite_store(db, store.id, customer)

    favorites = await store_service.list_favorite_stores(db, customer.id)
    assert [s.id for s in favorites] == [store.id]

    await store_service.remove_favorite_store(db, store.id, customer)
    assert await store_service.list_favorite_stores(db, customer.id) == []


async def test_cannot_favorite_missing_or_closed_store(db, store, owner, customer):
    with pytest.raises(NotFoundError):
        await store_service.add_favorite_store(db, 999, customer)

    await store_service.deactivate_store(db, store.id, owner)
    with pytest.raises(NotFoundError):
        await store_service.add_favorite_store(db, store.id, customer)
