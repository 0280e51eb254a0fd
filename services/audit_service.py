# app/services/audit_service.py
import logging
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy import select, func, desc
from sqlalchemy.ext.asyncio import AsyncSession

from core.rate_limiter import client_ip
from models.audit_log import AuditAction, AuditLog, AuditOutcome, AuditResource
from models.user import User

logger = logging.getLogger(__name__)


class AuditService:
    def __init__(self, db: AsyncSession, request: Optional[Request] = None):
        self.db = db
        self.request = request

    def log(
            self,
            action: AuditAction,
            resource: AuditResource,
            resource_id: Any = None,
            user: Optional[User] = None,
            details: Optional[Dict[str, Any]] = None,
            outcome: AuditOutcome = AuditOutcome.SUCCESS,
            error_message: Optional[str] = None,
    ) -> AuditLog:
        """Stage an audit row in the caller's transaction; the caller commits."""
        entry = AuditLog(
            user_id=user.id if user else None,
            action=action,
            resource=resource,
            resource_id=str(resource_id) if resource_id is not None else None,
            details=details or {},
            ip_address=client_ip(self.request) if self.request else None,
            user_agent=self.request.headers.get("user-agent") if self.request else None,
            outcome=outcome,
            error_message=error_message,
        )
        self.db.add(entry)
        return entry

    async def list_logs(
            self,
            action: Optional[AuditAction] = None,
            resource: Optional[AuditResource] = None,
            user_id: Optional[int] = None,
            page: int = 1,
            limit: int = 50,
    ):
        query = select(AuditLog)
        if action:
            query = query.where(AuditLog.action == action)
        if resource:
            query = query.where(AuditLog.resource == resource)
        if user_id:
            query = query.where(AuditLog.user_id == user_id)

        total = (await self.db.execute(
            select(func.count()).select_from(query.subquery())
        )).scalar_one()

        result = await self.db.execute(
            query.order_by(desc(AuditLog.created_at), desc(AuditLog.id))
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return result.scalars().all(), total
