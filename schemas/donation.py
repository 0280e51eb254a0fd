# app/schemas/donation.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, constr, field_validator

from models.campaign import Currency
from models.donation import DonationSource, DonationStatus, PaymentMethod, RecurringFrequency
from schemas.campaign import default_currency


# ---------- payment intent ----------
class PaymentIntentCreate(BaseModel):
    """Start a donation; minimum/maximum amounts are enforced by the service."""
    campaign_id: int
    amount: float
    donor_email: EmailStr
    donor_name: constr(strip_whitespace=True, min_length=1, max_length=100)
    currency: Currency = Field(default_factory=default_currency)
    message: Optional[constr(max_length=500)] = None
    dedicated_to: Optional[constr(max_length=100)] = None
    is_anonymous: bool = False
    source: DonationSource = DonationSource.WEB

    @field_validator("donor_email")
    @classmethod
    def normalize_email(cls, v):
        return v.lower()

    @field_validator("currency", mode="before")
    @classmethod
    def upper_currency(cls, v):
        return v.upper() if isinstance(v, str) else v

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "campaign_id": 1,
            "amount": 25.0,
            "donor_email": "jane@impacthub.org",
            "donor_name": "Jane",
            "currency": "USD",
            "is_anonymous": False
        }
    })


class PaymentIntentResponse(BaseModel):
    client_secret: str
    donation_id: int
    payment_intent_id: str


class DonationConfirm(BaseModel):
    payment_intent_id: constr(strip_whitespace=True, min_length=1)


# ---------- output ----------
class DonationRead(BaseModel):
    id: int
    uuid: str
    amount: float
    currency: Currency
    campaign_id: int
    status: DonationStatus
    is_anonymous: bool
    donor_name: str = Field(validation_alias="donor_display_name")
    message: Optional[str] = None
    dedicated_to: Optional[str] = None
    receipt_number: Optional[str] = None
    completed_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class DonationDetail(DonationRead):
    """Owner/admin view including payment data."""
    donor_id: Optional[int] = None
    donor_email: str
    payment_id: Optional[str] = None
    payment_method: PaymentMethod
    payment_gateway: Optional[str] = None
    processing_fee: float
    net_amount: Optional[float] = None
    failure_reason: Optional[str] = None
    tax_year: Optional[int] = None
    is_recurring: bool
    recurring_frequency: Optional[RecurringFrequency] = None
    source: DonationSource


class PublicDonationRead(BaseModel):
    """Donor wall entry; anonymous donors are masked."""
    id: int
    amount: float
    currency: Currency
    donor_name: str = Field(validation_alias="donor_display_name")
    message: Optional[str] = None
    campaign_id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)
