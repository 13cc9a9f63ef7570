"""
Principal resolution for the booking core.

Tokens are issued by the identity service; this module only verifies them and
maps the `sub` claim onto a local user row to obtain `{id, role}`.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fitstudio.core.config import get_settings
from fitstudio.core.exceptions import ForbiddenError, UnauthorizedError
from fitstudio.core.logging import bind_actor, get_logger
from fitstudio.db.session import get_db
from fitstudio.models.user import User, UserRole

logger = get_logger(__name__)
settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode["exp"] = expire
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> int:
    """Return the user id carried by a valid token."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return int(payload["sub"])
    except (jwt.PyJWTError, KeyError, TypeError, ValueError):
        raise UnauthorizedError("Invalid or expired token")


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Principal:
    if credentials is None:
        raise UnauthorizedError()

    user_id = decode_access_token(credentials.credentials)
    result = await db.execute(select(User.id, User.role, User.is_active).where(User.id == user_id))
    row = result.one_or_none()
    if row is None or not row.is_active:
        logger.warning("principal_rejected", user_id=user_id)
        raise UnauthorizedError("Unknown or inactive user")

    bind_actor(row.id, row.role)
    return Principal(id=row.id, role=row.role)


def require_roles(*roles: str):
    """Dependency factory restricting an endpoint to the given roles."""

    async def checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in roles:
            raise ForbiddenError("Forbidden")
        return principal

    return checker
