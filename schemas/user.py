from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, constr, field_validator

from core.constants import SELF_ASSIGNABLE_ROLES
from models.user import UserRole, UserStatus


# ---------- registration ----------
class UserCreate(BaseModel):
    name: constr(strip_whitespace=True, min_length=2, max_length=50)
    email: EmailStr
    password: constr(min_length=6, max_length=128)
    role: UserRole = UserRole.DONOR

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.lower()

    @field_validator("role")
    @classmethod
    def role_is_self_assignable(cls, v):
        if v.value not in SELF_ASSIGNABLE_ROLES:
            raise ValueError("Role must be donor or campaign-leader")
        return v

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "name": "Jane Donor",
            "email": "jane@impacthub.org",
            "password": "StrongPass123",
            "role": "donor"
        }
    })


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.lower()


class RefreshRequest(BaseModel):
    refresh_token: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    password: constr(min_length=6, max_length=128)


class VerifyEmailRequest(BaseModel):
    token: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: constr(min_length=6, max_length=128)


class DeleteAccountRequest(BaseModel):
    password: Optional[str] = None


# ---------- profile ----------
class AddressSchema(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    zip_code: Optional[str] = None


class UserUpdate(BaseModel):
    name: Optional[constr(strip_whitespace=True, min_length=2, max_length=50)] = None
    avatar: Optional[str] = None
    bio: Optional[constr(max_length=500)] = None
    phone: Optional[constr(max_length=30)] = None
    address: Optional[AddressSchema] = None
    preferences: Optional[Dict[str, Any]] = None


# ---------- output ----------
class DonationStatsRead(BaseModel):
    total_donated: float = 0
    donation_count: int = 0
    campaigns_supported: int = 0
    donor_level: str
    impact_points: int = 0


class UserRead(BaseModel):
    id: int
    uuid: str
    name: str
    email: str
    role: UserRole
    avatar: Optional[str] = None
    is_email_verified: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserDetail(UserRead):
    """Full view (the user themself and admins)."""
    status: UserStatus
    is_active: bool
    is_banned: bool
    ban_reason: Optional[str] = None
    profile: Dict[str, Any] = {}
    preferences: Optional[Dict[str, Any]] = None
    donation_stats: DonationStatsRead
    last_login: Optional[datetime] = None
    login_count: int = 0
    updated_at: Optional[datetime] = None


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


# ---------- admin ----------
class UserStatusUpdate(BaseModel):
    status: UserStatus
    reason: Optional[constr(max_length=500)] = None


class UserRoleUpdate(BaseModel):
    role: UserRole
