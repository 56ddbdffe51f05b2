from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, Numeric, Index, text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from localdeals.core.db import Base

SUBSCRIPTION_STATUSES = ("active", "inactive", "suspended", "cancelled", "pending")


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        # at most one active subscription per store
        Index(
            "uq_subscriptions_store_active",
            "store_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    plan = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="pending")

    billing_cycle = Column(String(10), nullable=False, default="monthly")
    billing_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    currency = Column(String(3), nullable=False, default="USD")
    next_billing_date = Column(DateTime(timezone=True), nullable=True)

    # plan features
    max_deals = Column(Integer, nullable=False, default=5)
    max_images = Column(Integer, nullable=False, default=10)
    analytics_access = Column(Boolean, default=False)
    priority_support = Column(Boolean, default=False)
    custom_branding = Column(Boolean, default=False)

    # usage counters
    deals_created = Column(Integer, nullable=False, default=0)
    deals_active = Column(Integer, nullable=False, default=0)
    images_uploaded = Column(Integer, nullable=False, default=0)
    usage_updated_at = Column(DateTime(timezone=True), server_default=func.now())

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    store = relationship("Store", back_populates="subscriptions", lazy="raise")
