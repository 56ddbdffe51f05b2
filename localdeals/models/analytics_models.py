# localdeals/models/analytics_models.py
from sqlalchemy import Column, Integer, String, DateTime, JSON, Index
from sqlalchemy.sql import func

from localdeals.core.db import Base

ENTITY_TYPES = ("store", "deal", "user")
EVENT_TYPES = (
    "view", "click", "save", "share", "redemption", "signup", "login",
    "purchase", "review", "subscription_change",
)


class AnalyticsEvent(Base):
    __tablename__ = "analytics_events"
    __table_args__ = (
        Index("ix_analytics_entity_created", "entity_type", "entity_id", "created_at"),
        Index("ix_analytics_event_created", "event_type", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    entity_type = Column(String(10), nullable=False)
    entity_id = Column(Integer, nullable=False)
    event_type = Column(String(30), nullable=False)
    user_id = Column(Integer, nullable=True, index=True)

    # denormalized from metadata so store/deal reports stay plain SQL
    deal_id = Column(Integer, nullable=True, index=True)
    store_id = Column(Integer, nullable=True, index=True)

    event_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
