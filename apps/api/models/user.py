"""User model."""

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from database import Base
from models.enums import UserRole


class User(Base):
    """Platform account. DJs own content; fans buy and subscribe."""

    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=True)
    role = Column(String, nullable=False, default=UserRole.FAN.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    purchases = relationship("Purchase", back_populates="user", foreign_keys="Purchase.user_id")
    subscriptions = relationship(
        "DJSubscription", back_populates="user", foreign_keys="DJSubscription.user_id"
    )
    points_entries = relationship("PointsHistoryEntry", back_populates="user", cascade="all, delete-orphan")
    referral_code = relationship("ReferralCode", back_populates="user", uselist=False)
