# app/models/audit_log.py
from datetime import datetime
import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum, JSON
from sqlalchemy.orm import relationship

from models.base import Base, enum_values


class AuditAction(str, enum.Enum):
    USER_CREATED = "user_created"
    USER_UPDATED = "user_updated"
    USER_DELETED = "user_deleted"
    USER_LOGIN = "user_login"
    USER_LOGOUT = "user_logout"
    PASSWORD_CHANGED = "password_changed"
    PASSWORD_RESET = "password_reset"
    EMAIL_VERIFIED = "email_verified"
    USER_STATUS_UPDATED = "user_status_updated"
    USER_ROLE_UPDATED = "user_role_updated"
    CAMPAIGN_CREATED = "campaign_created"
    CAMPAIGN_UPDATED = "campaign_updated"
    CAMPAIGN_DELETED = "campaign_deleted"
    CAMPAIGN_APPROVED = "campaign_approved"
    CAMPAIGN_REJECTED = "campaign_rejected"
    CAMPAIGN_SUSPENDED = "campaign_suspended"
    DONATION_MADE = "donation_made"
    DONATION_FAILED = "donation_failed"
    DONATION_REFUNDED = "donation_refunded"
    PAYMENT_PROCESSED = "payment_processed"
    PAYMENT_FAILED = "payment_failed"
    ADMIN_ACTION = "admin_action"
    DATA_EXPORT = "data_export"
    SETTINGS_CHANGED = "settings_changed"


class AuditResource(str, enum.Enum):
    USER = "user"
    CAMPAIGN = "campaign"
    DONATION = "donation"
    NOTIFICATION = "notification"
    SYSTEM = "system"


class AuditOutcome(str, enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    PARTIAL = "partial"


class AuditLog(Base):
    """Append-only; rows are never updated or deleted by the application."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True)

    # actor (null for webhook/system actions)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    action = Column(Enum(AuditAction, name="audit_action", values_callable=enum_values), nullable=False, index=True)
    resource = Column(Enum(AuditResource, name="audit_resource", values_callable=enum_values), nullable=False)
    resource_id = Column(String(64), nullable=True)
    details = Column(JSON, default=dict)

    ip_address = Column(String(45))
    user_agent = Column(Text)

    outcome = Column(
        Enum(AuditOutcome, name="audit_outcome", values_callable=enum_values),
        default=AuditOutcome.SUCCESS,
        nullable=False
    )
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    user = relationship("User", foreign_keys=[user_id])
