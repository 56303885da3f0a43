"""
Audit logging for schedule, appointment, record request and receipt changes.
"""
import logging
from typing import Any, Optional

from clinicdesk.extensions import db
from clinicdesk.models import AuditLog

logger = logging.getLogger(__name__)


def log_audit(
    entity_type: str,
    action: str,
    user_id: Optional[int] = None,
    entity_id: Optional[Any] = None,
    details: Optional[dict] = None,
) -> None:
    """Append an audit log entry in its own transaction."""
    try:
        entry = AuditLog(
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            action=action,
            user_id=user_id,
            details=details or None,
        )
        db.session.add(entry)
        db.session.commit()
    except Exception as e:
        logger.warning("Audit log failed: %s", e)
        db.session.rollback()


def audit_after_commit(uow, entity_type, action, ctx, entity_id=None, details=None):
    """Write the audit entry only once the surrounding unit of work commits."""
    uow.after_commit(
        lambda: log_audit(entity_type, action, user_id=ctx.user_id, entity_id=entity_id, details=details)
    )
