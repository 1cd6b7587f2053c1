"""DJSubscription model for metered per-DJ access."""

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class DJSubscription(Base):
    """A fan's subscription to one DJ's catalogue.

    Usage counters are only ever changed by the conditional UPDATE in
    ``services.quota.try_consume``; the CHECK constraints back that up at the
    store level.
    """

    __tablename__ = "dj_subscriptions"
    __table_args__ = (
        CheckConstraint("tracks_used <= track_quota", name="ck_dj_subscriptions_track_quota"),
        CheckConstraint("zips_used <= zip_quota", name="ck_dj_subscriptions_zip_quota"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    dj_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    plan = Column(String, nullable=False)
    track_quota = Column(Integer, nullable=False, default=0)
    zip_quota = Column(Integer, nullable=False, default=0)
    fan_upload_quota = Column(Integer, nullable=False, default=0)
    tracks_used = Column(Integer, nullable=False, default=0)
    zips_used = Column(Integer, nullable=False, default=0)
    payment_reference = Column(String, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="subscriptions", foreign_keys=[user_id])
