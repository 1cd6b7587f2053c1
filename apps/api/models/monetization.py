"""Revenue-share settings and the DJ earnings ledger."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.sql import func

from database import Base


class MonetizationSettings(Base):
    """Per-DJ revenue share override."""

    __tablename__ = "monetization_settings"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    dj_id = Column(String, ForeignKey("users.id"), nullable=False, unique=True)
    revenue_share_pct = Column(Numeric(5, 2), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class EarningsEntry(Base):
    """One revenue split booked against a completed purchase."""

    __tablename__ = "earnings_ledger"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    dj_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    purchase_id = Column(String, ForeignKey("purchases.id"), nullable=False, unique=True)
    gross_minor = Column(Integer, nullable=False)
    dj_amount_minor = Column(Integer, nullable=False)
    platform_amount_minor = Column(Integer, nullable=False)
    dj_share_pct = Column(Numeric(5, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
