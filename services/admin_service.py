# app/services/admin_service.py
import logging
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy import select, func, or_, desc
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import InvalidState, NotFound, ValidationError
from models.audit_log import AuditAction, AuditResource
from models.donation import Donation
from models.user import User, UserRole, UserStatus
from schemas.admin import AuditLogRead, SystemSettingsUpdate
from schemas.donation import DonationRead
from schemas.user import UserDetail, UserRead, UserRoleUpdate, UserStatusUpdate
from services.audit_service import AuditService
from services.notification_service import NotificationService
from utils.helpers import generate_reference_id
from utils.pagination import paginate, total_pages

logger = logging.getLogger(__name__)

# process-local flags edited through PUT /admin/settings
_system_flags: Dict[str, Any] = {
    "maintenance_mode": False,
    "registration_enabled": True,
}


def system_flag(name: str) -> Any:
    return _system_flags[name]


def current_settings() -> Dict[str, Any]:
    return {
        "platform_name": settings.APP_NAME,
        "maintenance_mode": _system_flags["maintenance_mode"],
        "registration_enabled": _system_flags["registration_enabled"],
        "donations": {
            "min_amount": settings.MIN_DONATION_AMOUNT,
            "max_amount": settings.MAX_DONATION_AMOUNT,
            "default_currency": settings.DEFAULT_CURRENCY,
            "processing_fee_percent": settings.PROCESSING_FEE_PERCENT,
            "platform_fee_percent": settings.PLATFORM_FEE_PERCENT,
        },
        "campaigns": {
            "require_approval": settings.CAMPAIGN_REQUIRE_APPROVAL,
            "max_duration_days": settings.CAMPAIGN_MAX_DURATION_DAYS,
        },
        "security": {
            "access_token_expire_minutes": settings.ACCESS_TOKEN_EXPIRE_MINUTES,
            "rate_limit_enabled": settings.RATE_LIMIT_ENABLED,
        },
    }


class AdminService:
    def __init__(self, db: AsyncSession, request: Optional[Request] = None):
        self.db = db
        self.audit = AuditService(db, request)
        self.notifications = NotificationService(db)

    # ---------- users ----------
    async def list_users(
            self,
            role: Optional[UserRole] = None,
            status: Optional[UserStatus] = None,
            search: Optional[str] = None,
            page: int = 1,
            limit: int = 20,
    ) -> Dict[str, Any]:
        query = select(User)
        if role:
            query = query.where(User.role == role)
        if status:
            query = query.where(User.status == status)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(or_(User.name.ilike(pattern), User.email.ilike(pattern)))

        total = (await self.db.execute(
            select(func.count()).select_from(query.subquery())
        )).scalar_one()
        result = await self.db.execute(
            query.order_by(desc(User.created_at), desc(User.id)).offset((page - 1) * limit).limit(limit)
        )

        return {
            "users": [UserDetail.model_validate(u).model_dump() for u in result.scalars().all()],
            "pagination": {"current": page, "pages": total_pages(total, limit), "total": total},
        }

    async def get_user(self, user_id: int) -> Dict[str, Any]:
        user = await self._get_user(user_id)
        donations = await self.db.execute(
            select(Donation)
            .where(Donation.donor_email == user.email)
            .order_by(desc(Donation.created_at))
            .limit(10)
        )
        return {
            "user": UserDetail.model_validate(user).model_dump(),
            "recent_donations": [DonationRead.model_validate(d).model_dump() for d in donations.scalars().all()],
        }

    async def update_user_status(self, user_id: int, data: UserStatusUpdate, admin: User) -> Dict[str, Any]:
        user = await self._get_user(user_id)
        if user.id == admin.id:
            raise InvalidState("You cannot change your own status")
        if data.status != UserStatus.ACTIVE and not data.reason:
            raise ValidationError("A reason is required to suspend or ban a user")

        old_status = user.status
        user.status = data.status
        user.status_reason = data.reason
        user.is_banned = data.status == UserStatus.BANNED
        user.ban_reason = data.reason if user.is_banned else None

        self.audit.log(AuditAction.USER_STATUS_UPDATED, AuditResource.USER, user.id, admin,
                       {"from": old_status.value, "to": data.status.value, "reason": data.reason})
        self.notifications.account_status_changed(user.id, data.status.value, data.reason, sender_id=admin.id)
        await self.db.commit()
        await self.db.refresh(user)
        logger.info(f"Admin {admin.id} set user {user.id} status to {data.status.value}")
        return {"message": "User status updated successfully", "user": UserDetail.model_validate(user).model_dump()}

    async def update_user_role(self, user_id: int, data: UserRoleUpdate, admin: User) -> Dict[str, Any]:
        user = await self._get_user(user_id)
        if user.id == admin.id and data.role != UserRole.ADMIN:
            raise InvalidState("You cannot remove your own admin role")

        old_role = user.role
        user.role = data.role
        self.audit.log(AuditAction.USER_ROLE_UPDATED, AuditResource.USER, user.id, admin,
                       {"from": old_role.value, "to": data.role.value})
        await self.db.commit()
        await self.db.refresh(user)
        return {"message": "User role updated successfully", "user": UserRead.model_validate(user).model_dump()}

    async def delete_user(self, user_id: int, admin: User) -> Dict[str, str]:
        user = await self._get_user(user_id)
        if user.id == admin.id:
            raise InvalidState("You cannot delete your own account")

        user.is_active = False
        self.audit.log(AuditAction.USER_DELETED, AuditResource.USER, user.id, admin, {"soft": True})
        await self.db.commit()
        return {"message": "User deleted successfully"}

    async def _get_user(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        return user

    # ---------- audit ----------
    async def audit_logs(self, page: int = 1, limit: int = 50, **filters) -> Dict[str, Any]:
        items, total = await self.audit.list_logs(page=page, limit=limit, **filters)
        return {
            "logs": [AuditLogRead.model_validate(entry).model_dump() for entry in items],
            **paginate(total, page, limit),
        }

    # ---------- settings ----------
    @staticmethod
    def get_settings() -> Dict[str, Any]:
        return current_settings()

    async def update_settings(self, data: SystemSettingsUpdate, admin: User) -> Dict[str, Any]:
        """Apply overrides to the running process; they reset to the environment on restart."""
        changes = data.model_dump(exclude_none=True)

        if data.donations:
            if data.donations.min_amount > data.donations.max_amount:
                raise ValidationError("min_amount cannot exceed max_amount")
            settings.MIN_DONATION_AMOUNT = data.donations.min_amount
            settings.MAX_DONATION_AMOUNT = data.donations.max_amount
            settings.PROCESSING_FEE_PERCENT = data.donations.processing_fee_percent
            settings.PLATFORM_FEE_PERCENT = data.donations.platform_fee_percent
            if data.donations.default_currency:
                settings.DEFAULT_CURRENCY = data.donations.default_currency.value
        if data.campaigns:
            settings.CAMPAIGN_REQUIRE_APPROVAL = data.campaigns.require_approval
            settings.CAMPAIGN_MAX_DURATION_DAYS = data.campaigns.max_duration_days
        if data.platform_name:
            settings.APP_NAME = data.platform_name
        for flag in ("maintenance_mode", "registration_enabled"):
            if flag in changes:
                _system_flags[flag] = changes[flag]

        self.audit.log(AuditAction.SETTINGS_CHANGED, AuditResource.SYSTEM, generate_reference_id("SET"), admin,
                       changes)
        await self.db.commit()
        logger.info(f"Admin {admin.id} changed settings: {sorted(changes)}")
        return {"message": "Settings updated successfully", "settings": current_settings()}
