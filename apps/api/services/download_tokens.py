"""Single-use download tokens gated by a fresh entitlement check."""

from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

from sqlalchemy import delete, func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.content import AlbumPack, Track
from models.download_token import DownloadToken
from models.enums import ContentType, SuspiciousActivityType
from services.content_store import guess_media_type, safe_filename
from services.entitlement import AccessDecision, resolve_entitlement
from services.suspicious_activity import log_suspicious_activity

logger = logging.getLogger(__name__)

CONCURRENT_LIMIT_REASON = "concurrent_limit"


class TokenRejection(str, Enum):
    NOT_FOUND = "not_found"
    EXPIRED_OR_USED = "expired_or_used"
    IP_MISMATCH = "ip_mismatch"
    CONTENT_NOT_FOUND = "content_not_found"


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime
    access_source: str

    def as_dict(self) -> Dict[str, Any]:
        return {"token": self.token, "expires_at": self.expires_at.isoformat()}


@dataclass(frozen=True)
class TokenDenied:
    reason: str
    decision: Optional[AccessDecision] = None


@dataclass(frozen=True)
class FileAccessGrant:
    user_id: str
    content_id: str
    content_type: str
    access_source: str
    file_key: Optional[str]
    filename: str
    media_type: str


@dataclass(frozen=True)
class TokenRejected:
    reason: TokenRejection


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def count_active_tokens(user_id: str, db: AsyncSession, *, now: Optional[datetime] = None) -> int:
    current = now or datetime.now(timezone.utc)
    result = await db.execute(
        select(func.count(DownloadToken.id)).where(
            DownloadToken.user_id == user_id,
            DownloadToken.is_used.is_(False),
            DownloadToken.expires_at > current,
        )
    )
    return int(result.scalar() or 0)


async def count_recent_tokens(user_id: str, db: AsyncSession, *, since: datetime) -> int:
    result = await db.execute(
        select(func.count(DownloadToken.id)).where(
            DownloadToken.user_id == user_id,
            DownloadToken.issued_at >= since,
        )
    )
    return int(result.scalar() or 0)


async def issue_download_token(
    user_id: str,
    content_id: str,
    content_type: Union[str, ContentType],
    db: AsyncSession,
    *,
    client_ip: Optional[str] = None,
    user_agent: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Union[IssuedToken, TokenDenied]:
    """Issue a token after re-resolving entitlement at this moment.

    The quota charge made by the resolver and the token row commit together.
    """
    kind = ContentType(content_type)
    current = now or datetime.now(timezone.utc)
    limit = max(int(settings.CONCURRENT_DOWNLOAD_LIMIT), 1)

    active = await count_active_tokens(user_id, db, now=current)
    if active >= limit:
        await db.rollback()
        await log_suspicious_activity(
            SuspiciousActivityType.CONCURRENT_DOWNLOAD_LIMIT_EXCEEDED,
            user_id,
            ip_address=client_ip,
            user_agent=user_agent,
            resource_id=content_id,
            description=f"User exceeded limit of {limit} active downloads (Current: {active})",
        )
        return TokenDenied(reason=CONCURRENT_LIMIT_REASON)

    decision = await resolve_entitlement(user_id, kind, content_id, db, now=current)
    if not decision.allowed:
        await db.rollback()
        logger.info(
            "Download token denied user=%s content=%s:%s reason=%s",
            user_id,
            kind.value,
            content_id,
            decision.reason.value if decision.reason else None,
        )
        return TokenDenied(reason=decision.reason.value if decision.reason else "denied", decision=decision)

    ttl_minutes = max(int(settings.DOWNLOAD_TOKEN_TTL_MINUTES), 1)
    expires_at = current + timedelta(minutes=ttl_minutes)
    row = DownloadToken(
        id=str(uuid.uuid4()),
        token=secrets.token_hex(32),
        user_id=user_id,
        content_id=content_id,
        content_type=kind.value,
        access_source=decision.via.value,
        ip_address=client_ip,
        user_agent=user_agent,
        is_used=False,
        issued_at=current,
        expires_at=expires_at,
    )
    db.add(row)
    await db.commit()

    threshold = int(settings.RAPID_DOWNLOAD_THRESHOLD)
    if threshold > 0:
        recent = await count_recent_tokens(user_id, db, since=current - timedelta(hours=1))
        if recent > threshold:
            await log_suspicious_activity(
                SuspiciousActivityType.RAPID_DOWNLOAD_PATTERN,
                user_id,
                ip_address=client_ip,
                user_agent=user_agent,
                resource_id=content_id,
                description=f"{recent} download tokens issued in the last hour",
            )

    return IssuedToken(token=row.token, expires_at=expires_at, access_source=row.access_source)


async def _content_details(content_type: str, content_id: str, db: AsyncSession) -> Optional[Dict[str, Any]]:
    if content_type == ContentType.TRACK.value:
        result = await db.execute(select(Track.title, Track.file_key).where(Track.id == content_id))
        row = result.one_or_none()
        if row is None:
            return None
        return {"title": row.title or "track", "file_key": row.file_key}

    result = await db.execute(select(AlbumPack.title, AlbumPack.file_key).where(AlbumPack.id == content_id))
    row = result.one_or_none()
    if row is None:
        return None
    return {"title": f"{row.title or 'album'}.zip", "file_key": row.file_key}


async def consume_download_token(
    token: str,
    db: AsyncSession,
    *,
    client_ip: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Union[FileAccessGrant, TokenRejected]:
    """Flip ``is_used`` false -> true exactly once and return what to deliver.

    Entitlement is not checked again; the token is the capability.
    """
    value = str(token or "").strip()
    if not value:
        return TokenRejected(TokenRejection.NOT_FOUND)

    current = now or datetime.now(timezone.utc)
    conditions = [
        DownloadToken.token == value,
        DownloadToken.is_used.is_(False),
        DownloadToken.expires_at > current,
    ]
    if settings.DOWNLOAD_IP_LOCK and client_ip:
        conditions.append(or_(DownloadToken.ip_address.is_(None), DownloadToken.ip_address == client_ip))

    result = await db.execute(
        update(DownloadToken)
        .where(*conditions)
        .values(is_used=True, used_at=current)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        # Plain row, not an entity: rollback expires loaded instances.
        lookup = await db.execute(
            select(
                DownloadToken.is_used,
                DownloadToken.expires_at,
                DownloadToken.user_id,
                DownloadToken.user_agent,
                DownloadToken.content_id,
                DownloadToken.ip_address,
            ).where(DownloadToken.token == value)
        )
        row = lookup.one_or_none()
        await db.rollback()
        if row is None:
            return TokenRejected(TokenRejection.NOT_FOUND)
        expires_at = _as_utc(row.expires_at)
        if row.is_used or expires_at is None or expires_at <= current:
            return TokenRejected(TokenRejection.EXPIRED_OR_USED)
        await log_suspicious_activity(
            SuspiciousActivityType.MULTIPLE_IP_ACCESS,
            row.user_id,
            ip_address=client_ip,
            user_agent=row.user_agent,
            resource_id=row.content_id,
            description=f"Download token issued to {row.ip_address} presented from {client_ip}",
        )
        return TokenRejected(TokenRejection.IP_MISMATCH)

    await db.commit()
    lookup = await db.execute(select(DownloadToken).where(DownloadToken.token == value))
    row = lookup.scalar_one()

    details = await _content_details(row.content_type, row.content_id, db)
    if details is None:
        logger.error("Consumed token for missing content %s:%s", row.content_type, row.content_id)
        return TokenRejected(TokenRejection.CONTENT_NOT_FOUND)

    file_key = details["file_key"]
    return FileAccessGrant(
        user_id=row.user_id,
        content_id=row.content_id,
        content_type=row.content_type,
        access_source=row.access_source,
        file_key=file_key,
        filename=safe_filename(details["title"]),
        media_type=guess_media_type(file_key) if file_key else "application/octet-stream",
    )


async def purge_expired_tokens(db: AsyncSession, *, now: Optional[datetime] = None) -> int:
    """Delete tokens that expired longer ago than the retention window."""
    current = now or datetime.now(timezone.utc)
    retention = timedelta(hours=max(int(settings.DOWNLOAD_TOKEN_RETENTION_HOURS), 0))
    result = await db.execute(
        delete(DownloadToken)
        .where(DownloadToken.expires_at < current - retention)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return int(result.rowcount or 0)
