"""DownloadToken model: single-use capability for one file delivery."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String

from database import Base


class DownloadToken(Base):
    """Short-lived token issued after a fresh entitlement check."""

    __tablename__ = "download_tokens"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    token = Column(String, nullable=False, unique=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    content_id = Column(String, nullable=False)
    content_type = Column(String, nullable=False)
    access_source = Column(String, nullable=False)  # purchase, subscription
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    is_used = Column(Boolean, nullable=False, default=False)
    issued_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    used_at = Column(DateTime(timezone=True), nullable=True)
