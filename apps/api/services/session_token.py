"""Bearer session tokens.

Sessions are minted by the identity flow once a user signs in. Besides the
subject, a token may carry the account role so DJ-only routes can be gated
without a user lookup; tokens without a role fall back to the stored one.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union

from jose import JWTError, jwt

from config import settings
from models.enums import UserRole


SESSION_TOKEN_TYPE = "mixmint_session"


@dataclass(frozen=True)
class SessionClaims:
    user_id: str
    email: Optional[str] = None
    role: Optional[UserRole] = None


def mint_session_token(
    user_id: str,
    *,
    email: Optional[str] = None,
    role: Optional[Union[str, UserRole]] = None,
    ttl_hours: Optional[int] = None,
) -> str:
    """Sign a session for ``user_id``, valid for ``ttl_hours`` (default from settings)."""
    subject = str(user_id or "").strip()
    if not subject:
        raise ValueError("user_id is required")

    issued_at = datetime.now(timezone.utc)
    lifetime = max(int(ttl_hours or settings.JWT_EXPIRATION_HOURS or 24), 1)
    claims: Dict[str, Any] = {
        "sub": subject,
        "type": SESSION_TOKEN_TYPE,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + timedelta(hours=lifetime)).timestamp()),
    }
    if email:
        claims["email"] = email
    if role is not None:
        claims["role"] = UserRole(role).value
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def read_session_token(token: str) -> SessionClaims:
    """Verify signature, expiry and type, and return the typed claims.

    Raises ``ValueError`` with a client-safe message on any failure.
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        raise ValueError("Invalid or expired session token.") from exc

    if str(payload.get("type", "")).strip() != SESSION_TOKEN_TYPE:
        raise ValueError("Invalid session token type.")

    subject = str(payload.get("sub", "")).strip()
    if not subject:
        raise ValueError("Session token missing subject.")

    role = payload.get("role")
    if role is not None:
        try:
            role = UserRole(role)
        except ValueError as exc:
            raise ValueError("Session token carries an unknown role.") from exc

    return SessionClaims(user_id=subject, email=str(payload.get("email") or "") or None, role=role)
