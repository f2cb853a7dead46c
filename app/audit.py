"""
Audit trail for create/update/delete actions.

Writes never raise: a failed audit insert is logged and rolled back so the
primary operation (already committed) is unaffected.
"""

import json
import logging
from typing import Any, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from .models import AuditLog

logger = logging.getLogger(__name__)


def _client_details(request: Optional[Request]) -> tuple[Optional[str], Optional[str]]:
    if request is None:
        return None, None

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    else:
        ip_address = request.headers.get("x-real-ip") or (
            request.client.host if request.client else None
        )
    return ip_address, request.headers.get("user-agent")


def record_audit(
    db: Session,
    owner_id: int,
    action: str,
    entity_type: str,
    entity_id: Optional[Any] = None,
    details: Optional[dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> None:
    try:
        ip_address, user_agent = _client_details(request)
        db.add(
            AuditLog(
                owner_id=owner_id,
                action=action,
                entity_type=entity_type,
                entity_id=str(entity_id) if entity_id is not None else None,
                details=json.dumps(details, default=str) if details else None,
                ip_address=ip_address,
                user_agent=user_agent[:500] if user_agent else None,
            )
        )
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(
            f"❌ Failed to record audit log {action} {entity_type}:{entity_id} for owner {owner_id}: {e}"
        )
