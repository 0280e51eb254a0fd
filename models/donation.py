# app/models/donation.py
from datetime import datetime
import uuid
import enum

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Text, Boolean, Enum
from sqlalchemy.orm import relationship

from models.base import Base, enum_values
from models.campaign import Currency


class DonationStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    PAYPAL = "paypal"
    STRIPE = "stripe"
    RAZORPAY = "razorpay"
    PAYHERE = "payhere"


class RecurringFrequency(str, enum.Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class DonationSource(str, enum.Enum):
    WEB = "web"
    MOBILE_APP = "mobile_app"
    API = "api"
    WIDGET = "widget"
    SOCIAL_MEDIA = "social_media"


class Donation(Base):
    __tablename__ = "donations"

    id = Column(Integer, primary_key=True)
    uuid = Column(String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))

    # 💰 amount
    amount = Column(Float, nullable=False)
    currency = Column(
        Enum(Currency, name="currency", values_callable=enum_values),
        default=Currency.USD,
        nullable=False
    )

    # 🔗 references
    campaign_id = Column(Integer, ForeignKey("campaigns.id"), nullable=False, index=True)
    donor_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    donor_email = Column(String(255), nullable=False, index=True)
    donor_name = Column(String(100), nullable=False)
    is_anonymous = Column(Boolean, default=False, nullable=False)
    message = Column(String(500), nullable=True)
    dedicated_to = Column(String(100), nullable=True)

    # 🔁 recurring descriptor
    is_recurring = Column(Boolean, default=False, nullable=False)
    recurring_frequency = Column(
        Enum(RecurringFrequency, name="recurring_frequency", values_callable=enum_values),
        nullable=True
    )
    recurring_end_date = Column(DateTime, nullable=True)

    # 💳 payment
    payment_id = Column(String(255), unique=True, nullable=True, index=True)  # gateway intent id
    payment_method = Column(
        Enum(PaymentMethod, name="payment_method", values_callable=enum_values),
        default=PaymentMethod.STRIPE,
        nullable=False
    )
    payment_gateway = Column(String(50), default="stripe")
    transaction_id = Column(String(255), nullable=True)
    processing_fee = Column(Float, default=0.0, nullable=False)
    net_amount = Column(Float, nullable=True)

    # 📊 status
    status = Column(
        Enum(DonationStatus, name="donation_status", values_callable=enum_values),
        default=DonationStatus.PENDING,
        nullable=False,
        index=True
    )
    failure_reason = Column(String(500), nullable=True)
    refund_reason = Column(String(500), nullable=True)
    refunded_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # 🧾 tax receipt
    receipt_number = Column(String(50), unique=True, nullable=True)
    tax_year = Column(Integer, nullable=True)

    # 🌐 provenance
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    referrer = Column(String(500), nullable=True)
    source = Column(
        Enum(DonationSource, name="donation_source", values_callable=enum_values),
        default=DonationSource.WEB,
        nullable=False
    )

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # 🔗 relationships
    campaign = relationship("Campaign", back_populates="donations")
    donor = relationship("User", foreign_keys=[donor_id], back_populates="donations")

    @property
    def donor_display_name(self) -> str:
        return "Anonymous" if self.is_anonymous else self.donor_name
