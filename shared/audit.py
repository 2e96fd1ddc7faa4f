"""Audit trail for moderation decisions and session administration"""
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from .logging import get_correlation_id
from .models import AuditLog


async def create_audit_log(
    session: AsyncSession,
    action_type: str,
    entity_type: str,
    entity_id: str,
    user=None,
    action_data: Optional[Dict[str, Any]] = None,
    previous_state: Optional[Dict[str, Any]] = None,
    new_state: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None
) -> AuditLog:
    """Add an audit entry to the caller's transaction"""
    audit_log = AuditLog(
        action_type=action_type,
        entity_type=entity_type,
        entity_id=str(entity_id),
        user_id=str(user.id) if user is not None else None,
        user_role=getattr(getattr(user, "role", None), "value", None),
        action_data=action_data or {},
        previous_state=previous_state,
        new_state=new_state,
        ip_address=request.client.host if request is not None and request.client else None,
        user_agent=request.headers.get("user-agent") if request is not None else None,
        correlation_id=get_correlation_id()
    )
    session.add(audit_log)
    await session.flush()
    return audit_log
