import enum
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, Numeric, JSON, Text, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from localdeals.core.db import Base


class DealType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    BOGO = "bogo"
    FLASH = "flash"
    CLEARANCE = "clearance"


class DealStatus(str, enum.Enum):
    UPCOMING = "upcoming"
    EXPIRED = "expired"
    INACTIVE = "inactive"
    PENDING = "pending"
    ACTIVE = "active"


class Deal(Base):
    __tablename__ = "deals"
    __table_args__ = (
        Index("ix_deals_store_schedule", "store_id", "start_date", "end_date"),
        Index("ix_deals_category_active_end", "category", "is_active", "end_date"),
        Index("ix_deals_featured_active", "is_featured", "is_active"),
    )

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)

    title = Column(String(100), nullable=False)
    description = Column(String(500), nullable=False)
    category = Column(String(20), nullable=False)
    type = Column(String(20), nullable=False)

    # tagged discount variant, see schemas.deal_schemas.Discount
    discount = Column(JSON, nullable=True)

    # pricing
    original_price = Column(Numeric(14, 2), nullable=False)
    sale_price = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")

    # images
    image_main = Column(String, nullable=False)
    image_gallery = Column(JSON, nullable=True)

    # schedule
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    timezone = Column(String(50), nullable=False, default="America/New_York")

    # inventory; total_quantity NULL means unlimited
    total_quantity = Column(Integer, nullable=True)
    available_quantity = Column(Integer, nullable=True)
    sold_quantity = Column(Integer, nullable=False, default=0)

    restrictions = Column(JSON, nullable=True)

    # visibility
    is_active = Column(Boolean, nullable=False, default=True)
    is_featured = Column(Boolean, nullable=False, default=False)
    is_approved = Column(Boolean, nullable=False, default=False)
    approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)

    # engagement counters
    views = Column(Integer, nullable=False, default=0)
    clicks = Column(Integer, nullable=False, default=0)
    saves = Column(Integer, nullable=False, default=0)
    shares = Column(Integer, nullable=False, default=0)
    redemptions = Column(Integer, nullable=False, default=0)
    estimated_revenue = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))

    qr_code_data = Column(String, nullable=True)
    qr_generated_at = Column(DateTime(timezone=True), nullable=True)

    tags = Column(JSON, nullable=True)
    terms = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now())

    store = relationship("Store", back_populates="deals", lazy="raise")
    redemption_records = relationship("Redemption", back_populates="deal", lazy="raise")
