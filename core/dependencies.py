from typing import Optional, Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_db
from core.exceptions import ServiceUnavailable, Unauthorized
from core.permissions import load_user_for_token
from core.security import oauth2_scheme
from models.user import User, UserRole
from services.admin_service import system_flag

# sign-in must keep working so an admin can switch maintenance off
MAINTENANCE_OPEN_PATHS = ("/api/auth/login", "/api/auth/refresh")
READ_METHODS = ("GET", "HEAD", "OPTIONS")


async def get_current_user_optional(
    token: Annotated[Optional[str], Depends(oauth2_scheme)],
    db: AsyncSession = Depends(get_db)
) -> Optional[User]:
    """Resolve the caller if a valid token is present; anonymous otherwise."""
    if not token:
        return None

    try:
        return await load_user_for_token(token, db)
    except Unauthorized:
        return None


async def maintenance_guard(
    request: Request,
    token: Annotated[Optional[str], Depends(oauth2_scheme)],
    db: AsyncSession = Depends(get_db)
):
    """Reject writes from non-admins while maintenance mode is on."""
    if not system_flag("maintenance_mode"):
        return
    if request.method in READ_METHODS or request.url.path in MAINTENANCE_OPEN_PATHS:
        return
    user = await get_current_user_optional(token, db)
    if user and user.role == UserRole.ADMIN:
        return
    raise ServiceUnavailable("Platform is under maintenance, please try again later.")
