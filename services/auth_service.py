import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

from fastapi import Request
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.exceptions import Conflict, Forbidden, NotFound, Unauthorized, ValidationError
from core.security import (
    REFRESH,
    create_token_pair,
    decode_token,
    generate_one_time_token,
    hash_one_time_token,
    hash_password,
    verify_password,
)
from models.audit_log import AuditAction, AuditResource, AuditOutcome
from models.user import User, UserStatus
from schemas.user import UserCreate, UserDetail, UserRead, UserUpdate
from services.admin_service import system_flag
from services.audit_service import AuditService

logger = logging.getLogger(__name__)

PASSWORD_RESET_MESSAGE = "If an account exists with this email, a password reset link has been sent."


class AuthService:
    def __init__(self, db: AsyncSession, request: Optional[Request] = None):
        self.db = db
        self.request = request
        self.audit = AuditService(db, request)

    # ------------------------------------------------
    # REGISTER
    # ------------------------------------------------
    async def register_user(self, data: UserCreate) -> Dict[str, Any]:
        if not system_flag("registration_enabled"):
            raise Forbidden("Registration is currently disabled")

        existing = await self._get_by_email(data.email)
        if existing:
            raise Conflict("User already exists with this email")

        verification_token = generate_one_time_token()
        user = User(
            name=data.name,
            email=data.email,
            hashed_password=hash_password(data.password),
            role=data.role,
            status=UserStatus.ACTIVE,
            email_verification_token=hash_one_time_token(verification_token),
            email_verification_expires=datetime.utcnow() + timedelta(hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS),
            preferences={},
            address={},
        )
        self.db.add(user)
        await self.db.flush()

        self.audit.log(AuditAction.USER_CREATED, AuditResource.USER, user.id, user, {"role": user.role.value})
        await self.db.commit()
        await self.db.refresh(user)

        self._send_email(user.email, "verify-email", verification_token)
        logger.info(f"User registered: {user.id} ({user.role.value})")

        return {
            "message": "User registered successfully",
            "user": UserRead.model_validate(user).model_dump(),
            **create_token_pair(user.uuid, {"role": user.role.value}),
        }

    # ------------------------------------------------
    # LOGIN
    # ------------------------------------------------
    async def authenticate_user(self, email: str, password: str) -> Dict[str, Any]:
        user = await self._get_by_email(email.lower())

        if not user or not verify_password(password, user.hashed_password):
            logger.warning(f"Failed login for {email}")
            if user:
                self.audit.log(
                    AuditAction.USER_LOGIN, AuditResource.USER, user.id, user,
                    outcome=AuditOutcome.FAILURE, error_message="Invalid credentials",
                )
                await self.db.commit()
            raise Unauthorized("Invalid credentials")

        if not user.is_active:
            raise Unauthorized("Account is deactivated. Please contact support.")

        if user.is_banned:
            raise Unauthorized("Account is banned.", details={"reason": user.ban_reason})

        if user.status == UserStatus.SUSPENDED:
            raise Unauthorized("Account is suspended.", details={"reason": user.status_reason})

        user.last_login = datetime.utcnow()
        user.login_count = (user.login_count or 0) + 1
        self.audit.log(AuditAction.USER_LOGIN, AuditResource.USER, user.id, user)
        await self.db.commit()
        await self.db.refresh(user)

        return {
            "message": "Login successful",
            "user": UserRead.model_validate(user).model_dump(),
            **create_token_pair(user.uuid, {"role": user.role.value}),
        }

    # ------------------------------------------------
    # TOKENS
    # ------------------------------------------------
    async def refresh_token(self, refresh_token: str) -> Dict[str, Any]:
        user_uuid = decode_token(refresh_token, token_type=REFRESH)

        result = await self.db.execute(select(User).where(User.uuid == user_uuid))
        user = result.scalar_one_or_none()
        if not user or not user.is_active or user.is_banned or user.status == UserStatus.SUSPENDED:
            raise Unauthorized("Invalid refresh token", code="token_invalid")

        return create_token_pair(user.uuid, {"role": user.role.value})

    async def logout(self, user: User) -> Dict[str, str]:
        self.audit.log(AuditAction.USER_LOGOUT, AuditResource.USER, user.id, user)
        await self.db.commit()
        return {"message": "Logout successful"}

    # ------------------------------------------------
    # PROFILE
    # ------------------------------------------------
    @staticmethod
    def profile(user: User) -> Dict[str, Any]:
        return UserDetail.model_validate(user).model_dump()

    async def update_profile(self, user: User, data: UserUpdate) -> Dict[str, Any]:
        changes = data.model_dump(exclude_unset=True)
        if "address" in changes:
            changes["address"] = {k: v for k, v in (changes["address"] or {}).items() if v is not None}
        if "preferences" in changes:
            changes["preferences"] = {**(user.preferences or {}), **(changes["preferences"] or {})}

        for key, value in changes.items():
            setattr(user, key, value)

        self.audit.log(AuditAction.USER_UPDATED, AuditResource.USER, user.id, user, {"fields": sorted(changes)})
        await self.db.commit()
        await self.db.refresh(user)
        return {"message": "Profile updated successfully", "user": self.profile(user)}

    async def change_password(self, user: User, current_password: str, new_password: str) -> Dict[str, str]:
        if not verify_password(current_password, user.hashed_password):
            raise ValidationError("Current password is incorrect")
        if current_password == new_password:
            raise ValidationError("New password must be different from the current password")

        user.hashed_password = hash_password(new_password)
        user.password_changed_at = datetime.utcnow()
        self.audit.log(AuditAction.PASSWORD_CHANGED, AuditResource.USER, user.id, user)
        await self.db.commit()
        return {"message": "Password changed successfully"}

    async def delete_account(self, user: User, password: Optional[str] = None) -> Dict[str, str]:
        if user.hashed_password and (not password or not verify_password(password, user.hashed_password)):
            raise ValidationError("Password is required to delete the account")

        user.is_active = False
        self.audit.log(AuditAction.USER_DELETED, AuditResource.USER, user.id, user, {"soft": True})
        await self.db.commit()
        return {"message": "Account deleted successfully"}

    # ------------------------------------------------
    # PASSWORD RESET
    # ------------------------------------------------
    async def forgot_password(self, email: str) -> Tuple[Dict[str, str], Optional[str]]:
        """Returns the public response and the raw token (None when no account matched)."""
        user = await self._get_by_email(email.lower())
        if not user or not user.is_active:
            return {"message": PASSWORD_RESET_MESSAGE}, None

        token = generate_one_time_token()
        user.password_reset_token = hash_one_time_token(token)
        user.password_reset_expires = datetime.utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES)
        await self.db.commit()

        self._send_email(user.email, "reset-password", token)
        return {"message": PASSWORD_RESET_MESSAGE}, token

    async def reset_password(self, token: str, new_password: str) -> Dict[str, str]:
        now = datetime.utcnow()
        result = await self.db.execute(
            select(User).where(
                User.password_reset_token == hash_one_time_token(token),
                User.password_reset_expires > now,
            )
        )
        user = result.scalar_one_or_none()
        if not user:
            raise ValidationError("Invalid or expired reset token")

        # clear the token in the same statement that checks it so it is single-use
        consumed = await self.db.execute(
            update(User)
            .where(User.id == user.id, User.password_reset_token == hash_one_time_token(token))
            .values(
                hashed_password=hash_password(new_password),
                password_reset_token=None,
                password_reset_expires=None,
                password_changed_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if consumed.rowcount != 1:
            await self.db.rollback()
            raise ValidationError("Invalid or expired reset token")

        self.audit.log(AuditAction.PASSWORD_RESET, AuditResource.USER, user.id, user)
        await self.db.commit()
        return {"message": "Password reset successful"}

    # ------------------------------------------------
    # EMAIL VERIFICATION
    # ------------------------------------------------
    async def verify_email(self, token: str) -> Dict[str, str]:
        result = await self.db.execute(
            select(User).where(
                User.email_verification_token == hash_one_time_token(token),
                User.email_verification_expires > datetime.utcnow(),
            )
        )
        user = result.scalar_one_or_none()
        if not user:
            raise ValidationError("Invalid or expired verification token")

        user.is_email_verified = True
        user.email_verification_token = None
        user.email_verification_expires = None
        self.audit.log(AuditAction.EMAIL_VERIFIED, AuditResource.USER, user.id, user)
        await self.db.commit()
        return {"message": "Email verified successfully"}

    async def resend_verification(self, user: User) -> Tuple[Dict[str, str], Optional[str]]:
        if user.is_email_verified:
            raise ValidationError("Email is already verified")

        token = generate_one_time_token()
        user.email_verification_token = hash_one_time_token(token)
        user.email_verification_expires = datetime.utcnow() + timedelta(hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS)
        await self.db.commit()

        self._send_email(user.email, "verify-email", token)
        return {"message": "Verification email sent"}, token

    # ------------------------------------------------
    # helpers
    # ------------------------------------------------
    async def get_user(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        return user

    async def _get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    @staticmethod
    def _send_email(email: str, purpose: str, token: str):
        # outbound email is not wired up; the link is only logged in debug
        link = f"{settings.FRONTEND_URL}/{purpose}?token={token}"
        if settings.DEBUG:
            logger.info(f"[email:{purpose}] to={email} link={link}")
        else:
            logger.info(f"[email:{purpose}] queued for {email}")
