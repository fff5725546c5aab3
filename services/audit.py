"""Audit trail of admin actions (logins, catalog edits, payments, conversions)."""

from __future__ import annotations

from typing import Optional

from extensions import db
from models import AuditLog
from services.auth import get_current_user


def log_action(
    action: str,
    entity_type: str,
    entity_id: Optional[int],
    details: str = "",
    *,
    actor_id: Optional[int] = None,
) -> AuditLog:
    """Add an ``AuditLog`` row to the caller's unit of work.

    The actor defaults to the admin user of the current request.  Nothing is
    committed here.
    """
    if actor_id is None:
        user = get_current_user()
        actor_id = user.id if user else None
    entry = AuditLog(
        admin_user_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
    )
    db.session.add(entry)
    return entry


def entity_history(entity_type: str, entity_id: int) -> list[AuditLog]:
    """Audit rows for one entity, oldest first."""
    return (
        AuditLog.query.filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
        .all()
    )
