from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, JSON, Numeric
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from localdeals.core.db import Base

STORE_CATEGORIES = (
    "clothing", "electronics", "beauty", "convenience", "shoes", "grocery",
    "accessories", "books", "home", "sports", "other",
)


class Store(Base):
    __tablename__ = "stores"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(String(500), nullable=False)
    category = Column(String(20), nullable=False)
    contact = Column(JSON, nullable=True)
    address = Column(JSON, nullable=True)
    hours = Column(JSON, nullable=True)
    features = Column(JSON, nullable=True)
    images = Column(JSON, nullable=True)

    is_active = Column(Boolean, default=True)
    is_verified = Column(Boolean, default=False)

    # aggregate counters, only ever moved with SQL deltas
    total_deals = Column(Integer, nullable=False, default=0)
    total_views = Column(Integer, nullable=False, default=0)
    total_clicks = Column(Integer, nullable=False, default=0)

    # recomputed from approved reviews on every moderation decision
    rating_average = Column(Numeric(2, 1), nullable=False, default=0)
    rating_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    deals = relationship("Deal", back_populates="store", lazy="raise")
    subscriptions = relationship("Subscription", back_populates="store", lazy="raise")
