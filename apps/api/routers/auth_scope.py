"""Authentication dependencies for API user scoping."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from database import get_db
from models.enums import UserRole
from models.user import User
from services.session_token import read_session_token


auth_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    user_id: str
    email: Optional[str] = None
    role: Optional[UserRole] = None


async def get_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
) -> AuthContext:
    """Resolve authenticated user from Bearer session token."""
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Missing Bearer session token.")

    try:
        claims = read_session_token(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    return AuthContext(user_id=claims.user_id, email=claims.email, role=claims.role)


async def ensure_user(db: AsyncSession, auth: AuthContext) -> User:
    """Return the local user row, provisioning it on first authenticated use."""
    result = await db.execute(select(User).where(User.id == auth.user_id))
    user = result.scalar_one_or_none()
    if user:
        return user

    user = User(
        id=auth.user_id,
        email=auth.email or f"{auth.user_id}@local.invalid",
        role=(auth.role or UserRole.FAN).value,
    )
    db.add(user)
    await db.flush()
    return user


async def require_dj(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
) -> AuthContext:
    """Allow only DJ (or admin) accounts through.

    A role claim in the session decides on its own; older sessions without
    one are checked against the stored account role.
    """
    if auth.role is not None:
        role = auth.role.value
    else:
        result = await db.execute(select(User.role).where(User.id == auth.user_id))
        role = result.scalar_one_or_none()
    if role not in (UserRole.DJ.value, UserRole.ADMIN.value):
        raise HTTPException(status_code=403, detail="DJ account required.")
    return auth
