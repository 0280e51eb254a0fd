from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from models.audit_log import AuditAction, AuditOutcome, AuditResource
from models.campaign import Currency


class AuditLogRead(BaseModel):
    id: int
    user_id: Optional[int] = None
    action: AuditAction
    resource: AuditResource
    resource_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    outcome: AuditOutcome
    error_message: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DonationSettings(BaseModel):
    min_amount: float = Field(..., gt=0)
    max_amount: float = Field(..., gt=0)
    processing_fee_percent: float = Field(..., ge=0, le=100)
    platform_fee_percent: float = Field(..., ge=0, le=100)
    default_currency: Optional[Currency] = None


class CampaignSettings(BaseModel):
    require_approval: bool
    max_duration_days: int = Field(..., ge=1)


class SystemSettingsUpdate(BaseModel):
    platform_name: Optional[str] = None
    maintenance_mode: Optional[bool] = None
    registration_enabled: Optional[bool] = None
    donations: Optional[DonationSettings] = None
    campaigns: Optional[CampaignSettings] = None
