import os

os.environ.setdefault("DB_TYPE", "sqlite")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from localdeals.core import db as db_module  # noqa: E402
from localdeals.core.db import Base  # noqa: E402
from localdeals.models.store_models import Store  # noqa: E402
from localdeals.models.user_models import User, UserRole  # noqa: E402
from localdeals.schemas.deal_schemas import DealCreate  # noqa: E402
from localdeals.schemas.subscription_schemas import SubscriptionCreate  # noqa: E402
from localdeals.services import deal_service, subscription_service  # noqa: E402
from localdeals.utils.datetime_utils import utcnow  # noqa: E402


@pytest.fixture
async def engine(tmp_path):
    # file backed so that separate sessions really race on one database
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine, monkeypatch):
    factory = sessionmaker(bind=engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)
    # analytics opens its own sessions through the module attribute
    monkeypatch.setattr(db_module, "AsyncSessionLocal", factory)
    return factory


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


async def _make_user(db, email: str, role: UserRole) -> User:
    user = User(email=email, password_hash="not-a-real-hash", role=role.value, is_active=True, token_version=0)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest.fixture
async def owner(db):
    return await _make_user(db, "owner@example.com", UserRole.STORE_OWNER)


@pytest.fixture
async def other_owner(db):
    return await _make_user(db, "rival@example.com", UserRole.STORE_OWNER)


@pytest.fixture
async def customer(db):
    return await _make_user(db, "shopper@example.com", UserRole.CUSTOMER)


@pytest.fixture
async def admin(db):
    return await _make_user(db, "admin@example.com", UserRole.ADMIN)


@pytest.fixture
def make_store(db):
    async def factory(owner: User, name: str = "Corner Shop") -> Store:
        store = Store(
            owner_id=owner.id,
            name=name,
            description="Neighbourhood store",
            category="grocery",
            is_active=True,
            is_verified=False,
            total_deals=0,
        )
        db.add(store)
        await db.commit()
        await db.refresh(store)
        return store
    return factory


@pytest.fixture
async def store(make_store, owner):
    return await make_store(owner)


@pytest.fixture
async def subscription(db, store):
    return await subscription_service.create_subscription(db, store.id, SubscriptionCreate(plan="starter"))


@pytest.fixture
def deal_payload():
    def build(store_id: int, **overrides) -> DealCreate:
        now = utcnow()
        data = {
            "store_id": store_id,
            "title": "Thirty percent off produce",
            "description": "All fresh produce this week",
            "category": "grocery",
            "type": "percentage",
            "discount": {"kind": "percentage", "percentage": "30"},
            "pricing": {"original_price": "70.00"},
            "images": {"main": "https://img.example.com/produce.jpg"},
            "schedule": {
                "start_date": (now - timedelta(hours=1)).isoformat(),
                "end_date": (now + timedelta(days=7)).isoformat(),
            },
        }
        data.update(overrides)
        return DealCreate.model_validate(data)
    return build


@pytest.fixture
def make_live_deal(db, deal_payload, admin):
    """Created, approved and inside its schedule window."""
    async def factory(store: Store, principal: User, **overrides):
        deal = await deal_service.create_deal(db, store.id, deal_payload(store.id, **overrides), principal)
        return await deal_service.approve_deal(db, deal.id, admin)
    return factory


@pytest.fixture
async def live_deal(make_live_deal, store, owner, subscription):
    return await make_live_deal(store, owner)