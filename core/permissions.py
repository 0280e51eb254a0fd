# app/core/permissions.py
import logging
from typing import Optional

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_db
from core.exceptions import Forbidden, Unauthorized
from core.security import decode_token, oauth2_scheme
from models.user import User, UserRole, UserStatus

logger = logging.getLogger(__name__)


async def load_user_for_token(token: str, db: AsyncSession) -> User:
    user_uuid = decode_token(token)

    result = await db.execute(select(User).where(User.uuid == user_uuid))
    user = result.scalar_one_or_none()

    if not user:
        raise Unauthorized("Token is not valid.", code="token_invalid")
    if not user.is_active:
        raise Unauthorized("Account is deactivated.")
    if user.is_banned:
        raise Unauthorized("Account is banned.", details={"reason": user.ban_reason})
    if user.status == UserStatus.SUSPENDED:
        raise Unauthorized("Account is suspended.", details={"reason": user.status_reason})

    return user


async def get_current_user(
        token: Optional[str] = Depends(oauth2_scheme),
        db: AsyncSession = Depends(get_db),
) -> User:
    if not token:
        raise Unauthorized("Access denied. No token provided.")
    return await load_user_for_token(token, db)


def require_roles(*roles_allowed: UserRole):
    allowed = {UserRole(r) for r in roles_allowed}

    async def wrapper(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            logger.warning(f"User {user.id} with role {user.role.value} denied; requires {sorted(r.value for r in allowed)}")
            raise Forbidden(
                "Access denied. Insufficient permissions.",
                details={"required": sorted(r.value for r in allowed), "current": user.role.value},
            )
        return user

    return wrapper


require_admin = require_roles(UserRole.ADMIN)
require_campaign_manager = require_roles(UserRole.CAMPAIGN_LEADER, UserRole.ADMIN)
