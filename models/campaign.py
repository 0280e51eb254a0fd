# app/models/campaign.py
from datetime import datetime
import uuid
import enum

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Text, Enum, JSON
from sqlalchemy.orm import relationship

from models.base import Base, enum_values
from utils.helpers import calculate_days_remaining, calculate_progress_percentage


class CampaignStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"


class ApprovalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class CampaignCategory(str, enum.Enum):
    EDUCATION = "education"
    HEALTH = "health"
    ENVIRONMENT = "environment"
    POVERTY = "poverty"
    DISASTER_RELIEF = "disaster-relief"
    OTHER = "other"


class Currency(str, enum.Enum):
    LKR = "LKR"
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    CAD = "CAD"
    AUD = "AUD"
    INR = "INR"


class Campaign(Base):
    __tablename__ = "campaigns"

    id = Column(Integer, primary_key=True)
    uuid = Column(String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))

    creator_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # 📝 basics
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    short_description = Column(String(200), nullable=True)
    image_url = Column(String(500), nullable=True)
    category = Column(
        Enum(CampaignCategory, name="campaign_category", values_callable=enum_values),
        nullable=False,
        index=True
    )
    organization_name = Column(String(200), nullable=True)
    organization_email = Column(String(255), nullable=True)

    # 🎯 money
    goal = Column(Float, nullable=False)
    raised = Column(Float, default=0.0, nullable=False)
    currency = Column(
        Enum(Currency, name="currency", values_callable=enum_values),
        default=Currency.USD,
        nullable=False
    )
    donation_count = Column(Integer, default=0, nullable=False)

    # 📊 status & approval
    status = Column(
        Enum(CampaignStatus, name="campaign_status", values_callable=enum_values),
        default=CampaignStatus.DRAFT,
        nullable=False,
        index=True
    )
    approval_status = Column(
        Enum(ApprovalStatus, name="approval_status", values_callable=enum_values),
        default=ApprovalStatus.PENDING,
        nullable=False
    )
    approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejection_reason = Column(String(500), nullable=True)
    suspension_reason = Column(String(500), nullable=True)

    # 📅 time window
    start_date = Column(DateTime, default=datetime.utcnow, nullable=False)
    end_date = Column(DateTime, nullable=True, index=True)
    completed_at = Column(DateTime, nullable=True)

    # embedded entries
    updates = Column(JSON, default=list)  # [{id, title, content, author_id, created_at}]
    impact_reports = Column(JSON, default=list)  # [{id, title, description, report_date, attachment_url}]

    # 📈 analytics
    views = Column(Integer, default=0, nullable=False)
    shares = Column(Integer, default=0, nullable=False)
    donor_count = Column(Integer, default=0, nullable=False)
    average_donation = Column(Float, default=0.0, nullable=False)
    top_donation = Column(Float, default=0.0, nullable=False)
    conversion_rate = Column(Float, default=0.0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # 🔗 relationships
    creator = relationship("User", foreign_keys=[creator_id], back_populates="campaigns", lazy="selectin")
    approver = relationship("User", foreign_keys=[approved_by])
    donations = relationship("Donation", back_populates="campaign")

    @property
    def progress_percentage(self) -> int:
        return calculate_progress_percentage(self.raised, self.goal)

    @property
    def days_remaining(self):
        return calculate_days_remaining(self.end_date)

    @property
    def is_accepting_donations(self) -> bool:
        return self.status == CampaignStatus.ACTIVE

    @property
    def analytics(self) -> dict:
        return {
            "views": self.views or 0,
            "shares": self.shares or 0,
            "donor_count": self.donor_count or 0,
            "average_donation": self.average_donation or 0,
            "top_donation": self.top_donation or 0,
            "conversion_rate": self.conversion_rate or 0,
        }
