"""Reimbursement audit trail.

Entries are written inside the routing transaction and are never updated.
"""
import json
import logging
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.audit import AuditLog

logger = logging.getLogger(__name__)

ENTITY_TYPE = "reimbursement"


def _dump(state: Any | None) -> str | None:
    return json.dumps(state, default=str) if state is not None else None


def record(
    db: Session,
    action: str,
    reimbursement_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
    *,
    actor_email: str | None = None,
    before: dict | None = None,
    after: dict | None = None,
    notes: str | None = None,
) -> AuditLog:
    """Append one transition to the trail. Flushed, never committed here.

    Args:
        action: e.g. 'reimbursement_submitted', 'reimbursement_advanced'.
        before / after: routing fields around the transition.
    """
    entry = AuditLog(
        actor_id=actor_id,
        actor_email=actor_email,
        action=action,
        entity_type=ENTITY_TYPE,
        entity_id=reimbursement_id,
        before_state=_dump(before),
        after_state=_dump(after),
        notes=notes,
    )
    db.add(entry)
    db.flush()
    logger.debug("Audit: %s on reimbursement %s", action, reimbursement_id)
    return entry


def history(db: Session, reimbursement_id: uuid.UUID) -> list[AuditLog]:
    """Trail for one reimbursement, oldest first."""
    stmt = (
        select(AuditLog)
        .where(AuditLog.entity_type == ENTITY_TYPE, AuditLog.entity_id == reimbursement_id)
        .order_by(AuditLog.created_at.asc())
    )
    return list(db.execute(stmt).scalars().all())
