import enum

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, JSON, Text, Index, UniqueConstraint
)
from sqlalchemy.sql import func

from localdeals.core.db import Base


class ModerationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Review(Base):
    __tablename__ = "reviews"
    __table_args__ = (
        # one review per customer per store
        UniqueConstraint("store_id", "customer_id", name="uq_reviews_store_customer"),
        Index("ix_reviews_store_moderation_created", "store_id", "moderation_status", "created_at"),
        Index("ix_reviews_customer_created", "customer_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False)
    customer_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    deal_id = Column(Integer, ForeignKey("deals.id", ondelete="SET NULL"), nullable=True)

    rating = Column(Integer, nullable=False)
    title = Column(String(100), nullable=False)
    comment = Column(String(1000), nullable=False)
    images = Column(JSON, nullable=True)

    # store owner's public reply
    response_text = Column(Text, nullable=True)
    responded_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    responded_at = Column(DateTime(timezone=True), nullable=True)

    moderation_status = Column(String(10), nullable=False, default=ModerationStatus.PENDING.value)
    moderated_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    moderated_at = Column(DateTime(timezone=True), nullable=True)
    moderation_reason = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
