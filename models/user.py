# app/models/user.py
from datetime import datetime
import uuid
import enum

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, Float, Enum, JSON
from sqlalchemy.orm import relationship

from core.constants import IMPACT_POINT_UNIT
from models.base import Base, enum_values
from utils.helpers import calculate_donor_level


class UserRole(str, enum.Enum):
    """Single role definition shared by the schema and the route guards."""
    DONOR = "donor"
    CAMPAIGN_LEADER = "campaign-leader"
    ADMIN = "admin"
    PUBLIC = "public"


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    BANNED = "banned"


class User(Base):
    __tablename__ = "users"

    # ---------- identifiers ----------
    id = Column(Integer, primary_key=True)
    uuid = Column(String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))

    # ---------- identity ----------
    name = Column(String(50), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=True)  # nullable for OAuth accounts
    google_id = Column(String(255), unique=True, nullable=True)
    avatar = Column(String(500), nullable=True)

    role = Column(
        Enum(UserRole, name="user_role", values_callable=enum_values),
        default=UserRole.DONOR,
        nullable=False
    )

    # ---------- account state ----------
    status = Column(
        Enum(UserStatus, name="user_status", values_callable=enum_values),
        default=UserStatus.ACTIVE,
        nullable=False
    )
    is_active = Column(Boolean, default=True, nullable=False)
    is_banned = Column(Boolean, default=False, nullable=False)
    ban_reason = Column(String(500), nullable=True)
    status_reason = Column(String(500), nullable=True)

    # ---------- verification / reset ----------
    is_email_verified = Column(Boolean, default=False, nullable=False)
    email_verification_token = Column(String(64), nullable=True, index=True)
    email_verification_expires = Column(DateTime, nullable=True)
    password_reset_token = Column(String(64), nullable=True, index=True)
    password_reset_expires = Column(DateTime, nullable=True)
    password_changed_at = Column(DateTime, nullable=True)

    # ---------- profile ----------
    bio = Column(Text, nullable=True)
    phone = Column(String(30), nullable=True)
    address = Column(JSON, default=dict)  # {street, city, state, country, zip_code}
    preferences = Column(JSON, default=dict)

    # ---------- donation stats (mutated only by donation completion) ----------
    total_donated = Column(Float, default=0.0, nullable=False)
    donation_count = Column(Integer, default=0, nullable=False)
    campaigns_supported = Column(Integer, default=0, nullable=False)

    # ---------- login tracking ----------
    last_login = Column(DateTime, nullable=True)
    login_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # ========== relationships ==========
    campaigns = relationship(
        "Campaign",
        foreign_keys="Campaign.creator_id",
        back_populates="creator"
    )
    donations = relationship(
        "Donation",
        foreign_keys="Donation.donor_id",
        back_populates="donor"
    )
    notifications = relationship(
        "Notification",
        foreign_keys="Notification.recipient_id",
        back_populates="recipient",
        cascade="all, delete-orphan"
    )

    # ========== helpers ==========

    @property
    def donor_level(self) -> str:
        return calculate_donor_level(self.total_donated)

    @property
    def impact_points(self) -> int:
        return int((self.total_donated or 0) // IMPACT_POINT_UNIT)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def profile(self) -> dict:
        return {"bio": self.bio, "phone": self.phone, "address": self.address or {}}

    @property
    def donation_stats(self) -> dict:
        return {
            "total_donated": self.total_donated or 0,
            "donation_count": self.donation_count or 0,
            "campaigns_supported": self.campaigns_supported or 0,
            "donor_level": self.donor_level,
            "impact_points": self.impact_points,
        }
