"""Routing notifications: fire-and-forget.

The routing engine hands a RoutingEvent to ``notify`` only after its
transaction has committed. ``notify`` enqueues a Celery task and returns;
failures are logged and never propagate back into routing.
"""
import enum
import logging
import uuid
from decimal import Decimal

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class RoutingEventKind(str, enum.Enum):
    submitted = "submitted"
    advanced = "advanced"
    approved = "approved"
    rejected = "rejected"


class RoutingEvent(BaseModel):
    kind: RoutingEventKind
    reimbursement_id: uuid.UUID
    submitter_id: uuid.UUID
    status: str
    category: str
    total: Decimal
    sap_code: str | None = None
    level: int | None = None
    actor_id: uuid.UUID | None = None
    actor_role: str | None = None
    next_role: str | None = None  # who must act now; None once terminal
    remarks: str | None = None

    @property
    def recipient_role(self) -> str | None:
        """Role to notify; None means the submitter."""
        if self.kind in (RoutingEventKind.approved, RoutingEventKind.rejected):
            return None
        return self.next_role


def notify(event: RoutingEvent) -> None:
    """Enqueue delivery of `event`. Never raises."""
    try:
        from app.workers.notification_tasks import deliver_routing_event

        deliver_routing_event.delay(event.model_dump(mode="json"))
        logger.info(
            "Notification queued: kind=%s reimbursement=%s recipient_role=%s",
            event.kind.value, event.reimbursement_id, event.recipient_role or "submitter",
        )
    except Exception as exc:
        logger.warning(
            "Notification dropped for reimbursement %s (%s): %s",
            event.reimbursement_id, event.kind.value, exc,
        )
