from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, constr, field_validator, model_validator

from core.config import settings
from models.campaign import ApprovalStatus, CampaignCategory, CampaignStatus, Currency


def default_currency() -> Currency:
    return Currency(settings.DEFAULT_CURRENCY.upper())


class CampaignSort(str, Enum):
    NEWEST = "newest"
    PROGRESS = "progress"
    TARGET = "target"
    ENDING_SOON = "ending-soon"


# ---------- input ----------
class CampaignCreate(BaseModel):
    title: constr(strip_whitespace=True, min_length=3, max_length=100)
    description: constr(strip_whitespace=True, min_length=10, max_length=2000)
    short_description: Optional[constr(max_length=200)] = None
    goal: float = Field(..., ge=1)
    currency: Currency = Field(default_factory=default_currency)
    category: CampaignCategory
    organization_name: Optional[constr(max_length=200)] = None
    organization_email: Optional[EmailStr] = None
    image_url: Optional[constr(max_length=500)] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @model_validator(mode="after")
    def end_after_start(self):
        if self.end_date and self.start_date and self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class CampaignUpdate(BaseModel):
    title: Optional[constr(strip_whitespace=True, min_length=3, max_length=100)] = None
    description: Optional[constr(strip_whitespace=True, min_length=10, max_length=2000)] = None
    short_description: Optional[constr(max_length=200)] = None
    goal: Optional[float] = Field(None, ge=1)
    category: Optional[CampaignCategory] = None
    organization_name: Optional[constr(max_length=200)] = None
    organization_email: Optional[EmailStr] = None
    image_url: Optional[constr(max_length=500)] = None
    end_date: Optional[datetime] = None


class CampaignStatusChange(BaseModel):
    status: CampaignStatus
    reason: Optional[constr(max_length=500)] = None


class ReasonRequest(BaseModel):
    reason: constr(strip_whitespace=True, min_length=1, max_length=500)


class CampaignUpdateCreate(BaseModel):
    title: constr(strip_whitespace=True, min_length=1, max_length=200)
    content: constr(strip_whitespace=True, min_length=1, max_length=5000)


class ImpactReportCreate(BaseModel):
    title: constr(strip_whitespace=True, min_length=1, max_length=200)
    description: constr(strip_whitespace=True, min_length=1, max_length=5000)
    report_date: Optional[datetime] = None
    attachment_url: Optional[constr(max_length=500)] = None


# ---------- output ----------
class CreatorRead(BaseModel):
    id: int
    name: str
    avatar: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CampaignSummary(BaseModel):
    """List view; embedded updates and impact reports are left out."""
    id: int
    uuid: str
    title: str
    short_description: Optional[str] = None
    description: str
    image_url: Optional[str] = None
    category: CampaignCategory
    organization_name: Optional[str] = None
    goal: float
    raised: float
    currency: Currency
    donation_count: int
    status: CampaignStatus
    approval_status: ApprovalStatus
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    progress_percentage: int
    days_remaining: Optional[int] = None
    analytics: Dict[str, Any]
    creator: Optional[CreatorRead] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CampaignDetail(CampaignSummary):
    organization_email: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    suspension_reason: Optional[str] = None
    completed_at: Optional[datetime] = None
    updates: List[Dict[str, Any]] = []
    impact_reports: List[Dict[str, Any]] = []
    updated_at: Optional[datetime] = None

    @field_validator("updates", "impact_reports", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return v or []
