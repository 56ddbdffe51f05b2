# localdeals/services/store_service.py
import logging

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from localdeals.core.exceptions import NotFoundError, AuthorizationError, ValidationError
from localdeals.models.deal_models import Deal
from localdeals.models.saved_models import FavoriteStore
from localdeals.models.store_models import Store
from localdeals.models.user_models import User, UserRole
from localdeals.schemas.store_schemas import StoreCreate, StoreUpdate
from localdeals.services import subscription_service

logger = logging.getLogger(__name__)

ALLOWED_UPDATES = {"name", "description", "category", "contact", "address", "hours", "features", "images"}
REQUIRED_FIELDS = {"name", "description", "category"}
SORT_OPTIONS = {"name", "newest", "rating", "popular"}


async def find_store(db: AsyncSession, store_id: int) -> Store | None:
    result = await db.execute(select(Store).where(Store.id == store_id))
    return result.scalar_one_or_none()


def ensure_store_access(store: Store, principal: User) -> None:
    if not principal.is_admin and store.owner_id != principal.id:
        raise AuthorizationError("Not authorized to access this store")


async def get_owned_store(db: AsyncSession, store_id: int, principal: User) -> Store:
    """Store lookup for owner-only actions; admins pass for every store."""
    store = await find_store(db, store_id)
    if not store:
        raise NotFoundError("Store not found")
    ensure_store_access(store, principal)
    return store


async def create_store(db: AsyncSession, payload: StoreCreate, principal: User) -> Store:
    if principal.role not in (UserRole.STORE_OWNER.value, UserRole.ADMIN.value):
        raise AuthorizationError("Only store owners can create stores")

    store = Store(
        owner_id=principal.id,
        name=payload.name,
        description=payload.description,
        category=payload.category,
        contact=payload.contact,
        address=payload.address,
        hours=payload.hours,
        features=payload.features,
        images=payload.images.model_dump() if payload.images else None,
        is_active=True,
        is_verified=False,
        total_deals=0,
    )
    db.add(store)
    await db.commit()
    await db.refresh(store)
    logger.info("User %s created store %s", principal.id, store.id)
    return store


async def deactivate_store(db: AsyncSession, store_id: int, principal: User) -> Store:
    """Soft-delete a store and every deal it runs; active deal slots are released."""
    store = await get_owned_store(db, store_id, principal)
    try:
        store.is_active = False
        result = await db.execute(
            update(Deal)
            .where(Deal.store_id == store.id, Deal.is_active == True)  # noqa: E712
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        released = result.rowcount or 0

        subscription = await subscription_service.get_active_subscription(db, store.id)
        if subscription and released:
            await subscription_service.decrement_usage(db, subscription, "deal", released)

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(store)
    logger.info("Store %s deactivated by user %s (%s deals released)", store.id, principal.id, released)
    return store


# --------------------------
# UPDATE
# --------------------------
async def update_store(db: AsyncSession, store_id: int, patch: dict, principal: User) -> Store:
    store = await get_owned_store(db, store_id, principal)

    invalid = set(patch) - ALLOWED_UPDATES
    if invalid:
        raise ValidationError(f"Invalid updates: {', '.join(sorted(invalid))}")

    try:
        changes = StoreUpdate.model_validate(patch)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid updates: {e.errors(include_url=False)}")

    for field in changes.model_fields_set & REQUIRED_FIELDS:
        if getattr(changes, field) is None:
            raise ValidationError(f"Field '{field}' cannot be null")

    try:
        for field in changes.model_fields_set:
            value = getattr(changes, field)
            if field == "images" and value is not None:
                value = value.model_dump()
            setattr(store, field, value)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(store)
    logger.info("Store %s updated by user %s (%s)", store.id, principal.id, ", ".join(sorted(changes.model_fields_set)))
    return store


# --------------------------
# LIST
# --------------------------
def _sort_clause(sort: str):
    if sort == "name":
        return Store.name.asc()
    if sort == "newest":
        return Store.created_at.desc()
    if sort == "popular":
        return Store.total_views.desc()
    return Store.rating_average.desc()


async def list_stores(
    db: AsyncSession,
    category: str | None = None,
    city: str | None = None,
    search: str | None = None,
    sort: str = "rating",
    page: int = 1,
    limit: int = 10,
) -> tuple[int, list[Store]]:
    """Public directory: only active, verified stores."""
    if sort not in SORT_OPTIONS:
        sort = "rating"

    filters = [Store.is_active == True, Store.is_verified == True]  # noqa: E712
    if category:
        filters.append(Store.category == category)
    if city:
        filters.append(Store.address["city"].as_string().ilike(f"%{city}%"))
    if search:
        filters.append(Store.name.ilike(f"%{search}%") | Store.description.ilike(f"%{search}%"))

    total = (await db.execute(select(func.count(Store.id)).where(*filters))).scalar() or 0
    result = await db.execute(
        select(Store)
        .where(*filters)
        .order_by(_sort_clause(sort), Store.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return total, result.scalars().all()


async def list_unverified_stores(db: AsyncSession, page: int = 1, limit: int = 20) -> tuple[int, list[Store]]:
    condition = Store.is_verified == False  # noqa: E712
    total = (await db.execute(select(func.count(Store.id)).where(condition))).scalar() or 0
    result = await db.execute(
        select(Store)
        .where(condition)
        .order_by(Store.created_at.desc(), Store.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return total, result.scalars().all()


# --------------------------
# VERIFY (admin)
# --------------------------
async def verify_store(db: AsyncSession, store_id: int, principal: User) -> Store:
    if not principal.is_admin:
        raise AuthorizationError("Only admins can verify stores")

    store = await find_store(db, store_id)
    if not store:
        raise NotFoundError("Store not found")
    if store.is_verified:
        return store

    try:
        store.is_verified = True
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(store)
    logger.info("Store %s verified by user %s", store.id, principal.id)
    return store


# --------------------------
# FAVORITES
# --------------------------
async def _find_favorite(db: AsyncSession, user_id: int, store_id: int) -> FavoriteStore | None:
    result = await db.execute(
        select(FavoriteStore).where(FavoriteStore.user_id == user_id, FavoriteStore.store_id == store_id)
    )
    return result.scalar_one_or_none()


async def add_favorite_store(db: AsyncSession, store_id: int, user: User) -> Store:
    user_id = user.id
    store = await find_store(db, store_id)
    if not store or not store.is_active:
        raise NotFoundError("Store not found")
    if await _find_favorite(db, user_id, store.id):
        return store

    try:
        db.add(FavoriteStore(user_id=user_id, store_id=store.id))
        await db.commit()
    except IntegrityError:
        await db.rollback()
        # only a concurrent add of the same favorite is harmless
        if not await _find_favorite(db, user_id, store_id):
            raise
    except Exception:
        await db.rollback()
        raise

    logger.info("User %s added store %s to favorites", user_id, store_id)
    return await find_store(db, store_id)


async def remove_favorite_store(db: AsyncSession, store_id: int, user: User) -> None:
    user_id = user.id
    try:
        await db.execute(
            delete(FavoriteStore).where(FavoriteStore.user_id == user_id, FavoriteStore.store_id == store_id)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise


async def list_favorite_stores(db: AsyncSession, user_id: int) -> list[Store]:
    result = await db.execute(
        select(Store)
        .join(FavoriteStore, FavoriteStore.store_id == Store.id)
        .where(FavoriteStore.user_id == user_id, Store.is_active == True)  # noqa: E712
        .order_by(FavoriteStore.created_at.desc(), FavoriteStore.id.desc())
    )
    return result.scalars().all()
