"""Sellable content owned by a DJ: single tracks and album ZIP packs."""

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.sql import func
import uuid

from database import Base
from models.enums import ContentStatus


class Track(Base):
    """A single downloadable track."""

    __tablename__ = "tracks"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    dj_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    file_key = Column(String, nullable=True)
    status = Column(String, nullable=False, default=ContentStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class AlbumPack(Base):
    """An album delivered as a single ZIP archive."""

    __tablename__ = "album_packs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    dj_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    file_key = Column(String, nullable=True)
    status = Column(String, nullable=False, default=ContentStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
