from models.base import Base

from models.user import User
from models.campaign import Campaign
from models.donation import Donation
from models.notification import Notification
from models.audit_log import AuditLog
