from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from app.context import get_correlation_id
from app.models.audit import AuditLog


def write_audit_log(
    db: Session,
    *,
    entity_type: str,
    entity_ref_id: str,
    action_type: str,
    user_type: str = "system",
    user_ref_id: str | None = None,
    description: str | None = None,
    before: dict[str, Any] | None = None,
    after: dict[str, Any] | None = None,
) -> AuditLog:
    """Stage an audit row on the caller's session; the caller owns the commit."""

    event = AuditLog(
        entity_type=entity_type,
        entity_ref_id=entity_ref_id,
        action_type=action_type,
        user_type=user_type,
        user_ref_id=user_ref_id,
        log_description=description,
        before=before,
        after=after,
        correlation_id=get_correlation_id(),
    )
    db.add(event)
    return event
