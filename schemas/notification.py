from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, constr, field_validator

from models.notification import NotificationType
from models.user import UserRole


class NotificationRead(BaseModel):
    id: int
    type: NotificationType
    title: str
    message: str
    data: Optional[Dict[str, Any]] = None
    action_url: Optional[str] = None
    action_text: Optional[str] = None
    sender_id: Optional[int] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationSend(BaseModel):
    """Admin message to explicit recipients, or "all" active users."""
    recipients: Union[List[int], str]
    title: constr(strip_whitespace=True, min_length=1, max_length=200)
    message: constr(strip_whitespace=True, min_length=1, max_length=5000)
    type: NotificationType = NotificationType.INFO
    action_url: Optional[constr(max_length=500)] = None
    action_text: Optional[constr(max_length=100)] = None

    @field_validator("recipients")
    @classmethod
    def recipients_valid(cls, v):
        if isinstance(v, str):
            if v != "all":
                raise ValueError('recipients must be a list of user ids or "all"')
            return v
        if not v:
            raise ValueError("recipients must not be empty")
        return v


class NotificationBroadcast(BaseModel):
    title: constr(strip_whitespace=True, min_length=1, max_length=200)
    message: constr(strip_whitespace=True, min_length=1, max_length=5000)
    type: NotificationType = NotificationType.INFO
    role: Optional[UserRole] = None
    action_url: Optional[constr(max_length=500)] = None
    action_text: Optional[constr(max_length=100)] = None


class NotificationPreferences(BaseModel):
    email: Optional[bool] = None
    push: Optional[bool] = None
    sms: Optional[bool] = None
    donation_updates: Optional[bool] = None
    campaign_updates: Optional[bool] = None
    marketing: Optional[bool] = None
