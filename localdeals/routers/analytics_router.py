# localdeals/routers/analytics_router.py
from typing import List

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from localdeals.core.db import get_db
from localdeals.schemas.analytics_schemas import AnalyticsEventIn, PopularDeal
from localdeals.schemas.response_schemas import ResponseMessage
from localdeals.services import analytics_service

router = APIRouter(prefix="/analytics", tags=["Analytics"])


# POST /analytics/event
@router.post("/event", response_model=ResponseMessage[None], status_code=status.HTTP_202_ACCEPTED)
async def track_event_route(data: AnalyticsEventIn, request: Request):
    """
    Public ingestion for client-side events. Recording is best effort, so a
    dropped event still answers 202.
    """
    metadata = dict(data.metadata or {})
    if request.client:
        metadata.setdefault("ip", request.client.host)

    recorded = await analytics_service.record_event(
        data.entity_type, data.entity_id, data.event_type, None, metadata
    )
    return {"message": "Event recorded" if recorded else "Event dropped"}


# GET /analytics/popular-deals
@router.get("/popular-deals", response_model=ResponseMessage[List[PopularDeal]])
async def popular_deals_route(
    days: int = Query(7, ge=1, le=365),
    limit: int = Query(10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    deals = await analytics_service.get_popular_deals(db, days=days, limit=limit)
    return {"message": f"{len(deals)} popular deals", "data": deals}
