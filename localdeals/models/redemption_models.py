import enum

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Numeric, JSON, Enum, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from localdeals.core.db import Base


class RedemptionStatus(str, enum.Enum):
    ACTIVE = "active"
    USED = "used"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class Redemption(Base):
    __tablename__ = "redemptions"
    __table_args__ = (
        Index("ix_redemptions_customer_status_expiry", "customer_id", "status", "expires_at"),
        Index("ix_redemptions_store_status_created", "store_id", "status", "created_at"),
        Index("ix_redemptions_deal_status", "deal_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(32), unique=True, nullable=False, index=True)

    deal_id = Column(Integer, ForeignKey("deals.id", ondelete="CASCADE"), nullable=False)
    store_id = Column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False)
    customer_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    status = Column(Enum(RedemptionStatus, name="redemption_status"), nullable=False, default=RedemptionStatus.ACTIVE)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    # usage record, written once by the active -> used transition
    used_at = Column(DateTime(timezone=True), nullable=True)
    used_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    usage_location = Column(JSON, nullable=True)
    validation_method = Column(String(10), nullable=True)

    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    # pricing snapshot taken at issue time
    original_price = Column(Numeric(14, 2), nullable=True)
    discount_amount = Column(Numeric(14, 2), nullable=True)
    final_price = Column(Numeric(14, 2), nullable=True)
    savings = Column(Numeric(14, 2), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now())

    deal = relationship("Deal", back_populates="redemption_records", lazy="raise")
