"""Purchase model: one-time ownership of a track or album pack."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class Purchase(Base):
    """Immutable record created at checkout completion."""

    __tablename__ = "purchases"
    __table_args__ = (
        UniqueConstraint("user_id", "content_type", "content_id", name="uq_purchases_user_content"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    content_type = Column(String, nullable=False)  # track, zip
    content_id = Column(String, nullable=False, index=True)
    dj_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    amount_minor = Column(Integer, nullable=False, default=0)
    payment_reference = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="purchases", foreign_keys=[user_id])
