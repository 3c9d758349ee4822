"""Celery task delivering routing notifications.

Reads users only; never touches reimbursements or the approval ledger.
"""
import logging
import uuid

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


def resolve_recipients(db: Session, event: dict) -> list[str]:
    """Email addresses for a routing event payload.

    Submitted/advanced events go to active holders of the next role (narrowed
    to the request's SAP code for SAP-scoped roles); approved/rejected events
    go to the submitter.
    """
    from app.core.config import settings
    from app.models.user import User

    if event["kind"] in ("approved", "rejected") or not event.get("next_role"):
        submitter = db.get(User, uuid.UUID(str(event["submitter_id"])))
        return [submitter.email] if submitter is not None else []

    role = event["next_role"]
    stmt = select(User.email).where(
        User.role == role,
        User.is_active.is_(True),
        User.deleted_at.is_(None),
    )
    sap_code = event.get("sap_code")
    if sap_code and role in settings.sap_scoped_roles_set:
        stmt = stmt.where(or_(User.sap_code_1 == sap_code, User.sap_code_2 == sap_code))
    return list(db.execute(stmt).scalars().all())


@celery_app.task(
    bind=True,
    name="notifications.deliver_routing_event",
    max_retries=3,
    default_retry_delay=30,
)
def deliver_routing_event(self, event: dict) -> dict:
    """Render and send the email for one routing event; drop after max retries."""
    from app.db.session import SyncSessionLocal
    from app.services import email as email_svc

    try:
        with SyncSessionLocal() as db:
            recipients = resolve_recipients(db, event)
        message = email_svc.render_routing_email(event, recipients)
        email_svc.send_email(message)
    except Exception as exc:
        if self.request.retries >= self.max_retries:
            logger.error(
                "deliver_routing_event: giving up on %s event for reimbursement %s: %s",
                event.get("kind"), event.get("reimbursement_id"), exc,
            )
            return {"status": "dropped", "reimbursement_id": event.get("reimbursement_id")}
        logger.warning(
            "deliver_routing_event: attempt %s failed for reimbursement %s: %s",
            self.request.retries + 1, event.get("reimbursement_id"), exc,
        )
        raise self.retry(exc=exc)

    if not recipients:
        logger.warning(
            "deliver_routing_event: no recipients for %s event on reimbursement %s",
            event["kind"], event["reimbursement_id"],
        )
    return {"status": "sent", "reimbursement_id": event["reimbursement_id"], "recipients": len(recipients)}
