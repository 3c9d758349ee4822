"""Email notification service: console mock (MAIL_ENABLED=False).

When MAIL_ENABLED is False, email content is written to the log instead of
being sent via SMTP. Set MAIL_ENABLED=True to wire a real transport.
"""
import logging
from dataclasses import dataclass

from app.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class RenderedEmail:
    to: list[str]
    subject: str
    body: str


def _amount(total) -> str:
    return f"₱{float(total):,.2f}" if total is not None else "N/A"


# ─── Templates ───

def render_routing_email(event: dict, recipients: list[str]) -> RenderedEmail:
    """Render the plain-text message for a routing event payload.

    Args:
        event: RoutingEvent dumped to JSON (see app.services.notifier).
        recipients: Addresses of the next approvers, or of the submitter.
    """
    kind = event["kind"]
    ref = event.get("sap_code") or event["reimbursement_id"]
    lines = [
        f"Request: {ref}",
        f"Category: {event['category']}",
        f"Amount: {_amount(event.get('total'))}",
    ]

    if kind == "submitted":
        subject = f"Reimbursement awaiting your approval: {ref}"
        lines.insert(0, "A new reimbursement request is waiting for your review.")
    elif kind == "advanced":
        subject = f"Reimbursement awaiting your approval: {ref}"
        lines.insert(0, f"Approved by {event['actor_role']} at level {event['level']}; your review is next.")
    elif kind == "approved":
        subject = f"Your reimbursement was approved: {ref}"
        lines.insert(0, "Your reimbursement request has been fully approved.")
    else:
        subject = f"Your reimbursement was rejected: {ref}"
        lines.insert(0, f"Your reimbursement request was rejected by {event['actor_role']}.")
        lines.append(f"Reason: {event.get('remarks') or 'N/A'}")

    if event.get("remarks") and kind in ("advanced", "approved"):
        lines.append(f"Approver remarks: {event['remarks']}")

    return RenderedEmail(to=recipients, subject=subject, body="\n".join(lines))


# ─── Delivery ───

def send_email(message: RenderedEmail) -> None:
    """Send (or mock-log) a rendered email."""
    if not message.to:
        logger.warning("Email '%s' has no recipients; skipped.", message.subject)
        return

    if not settings.MAIL_ENABLED:
        logger.info(
            "\n"
            "=== REIMBURSEMENT EMAIL ===\n"
            "From: %s <%s>\n"
            "To: %s\n"
            "Subject: %s\n"
            "%s\n"
            "===========================",
            settings.MAIL_FROM_NAME,
            settings.MAIL_FROM,
            ", ".join(message.to),
            message.subject,
            message.body,
        )
        return

    # Real SMTP path (not implemented)
    logger.warning(
        "MAIL_ENABLED=True but SMTP transport is not configured. "
        "Falling back to console log for '%s'.",
        message.subject,
    )
    logger.info("EMAIL (unsent): to=%s subject=%s", ", ".join(message.to), message.subject)
