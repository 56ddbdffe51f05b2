# localdeals/routers/__init__.py
from fastapi import APIRouter

from .auth_router import router as auth_router
from .stores_router import router as stores_router
from .deals_router import router as deals_router
from .redemptions_router import router as redemptions_router
from .analytics_router import router as analytics_router
from .reviews_router import router as reviews_router
from .users_router import router as users_router

router = APIRouter()

router.include_router(auth_router)
router.include_router(stores_router)
router.include_router(deals_router)
router.include_router(redemptions_router)
router.include_router(analytics_router)
router.include_router(reviews_router)
router.include_router(users_router)

__all__ = [
    "router",
    "auth_router",
    "stores_router",
    "deals_router",
    "redemptions_router",
    "analytics_router",
    "reviews_router",
    "users_router",
]
