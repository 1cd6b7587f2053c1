"""Best-effort audit sink for suspicious access patterns."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional, Union

from database import async_session_maker
from models.audit_log import AuditLogEntry
from models.enums import SuspiciousActivityType

logger = logging.getLogger(__name__)

SUSPICIOUS_ACTIVITY_ACTION = "SUSPICIOUS_ACTIVITY"


def build_activity_metadata(
    activity_type: SuspiciousActivityType,
    *,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    resource_id: Optional[str] = None,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "type": activity_type.value,
        "ip_address": ip_address,
        "user_agent": user_agent,
        "resource_id": resource_id,
        "description": description or "Suspicious activity detected",
    }


async def log_suspicious_activity(
    activity_type: Union[str, SuspiciousActivityType],
    user_id: str,
    *,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    resource_id: Optional[str] = None,
    description: Optional[str] = None,
) -> bool:
    """Persist a suspicious-activity entry. Never raises.

    Writes through its own session so a failed insert cannot roll back or
    poison the caller's transaction. Returns whether the entry was stored.
    """
    try:
        kind = SuspiciousActivityType(activity_type)
        entry = AuditLogEntry(
            id=str(uuid.uuid4()),
            action=SUSPICIOUS_ACTIVITY_ACTION,
            activity_type=kind.value,
            target_user_id=user_id,
            metadata_json=build_activity_metadata(
                kind,
                ip_address=ip_address,
                user_agent=user_agent,
                resource_id=resource_id,
                description=description,
            ),
        )
        async with async_session_maker() as db:
            db.add(entry)
            await db.commit()
    except Exception:
        logger.exception(
            "Failed to record suspicious activity type=%s user=%s",
            activity_type,
            user_id,
        )
        return False

    logger.warning(
        "Suspicious activity type=%s user=%s ip=%s resource=%s",
        kind.value,
        user_id,
        ip_address,
        resource_id,
    )
    return True
