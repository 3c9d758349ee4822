"""Approval ledger access.

Read helpers are safe for any caller. ``append_entry`` and ``record_decision``
are write paths owned by app.services.routing; nothing else mutates the ledger.
"""
import logging
import uuid
from collections.abc import Collection
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from app.models.approval import Approval, ApprovalStatus
from app.models.reimbursement import Reimbursement, ReimbursementStatus

logger = logging.getLogger(__name__)


# ─── Reads ───

def fetch_by_reimbursement(db: Session, reimbursement_id: uuid.UUID) -> list[Approval]:
    """All ledger entries for a reimbursement, ordered by approval_level."""
    stmt = (
        select(Approval)
        .where(Approval.reimbursement_id == reimbursement_id)
        .order_by(Approval.approval_level.asc())
    )
    return list(db.execute(stmt).scalars().all())


def fetch_current_entry(db: Session, reimbursement_id: uuid.UUID) -> Approval | None:
    """The single Pending entry of an in-progress reimbursement, if any."""
    stmt = (
        select(Approval)
        .where(
            Approval.reimbursement_id == reimbursement_id,
            Approval.status == ApprovalStatus.PENDING,
        )
        .order_by(Approval.approval_level.asc())
    )
    return db.execute(stmt).scalars().first()


def fetch_pending_for_role(
    db: Session,
    role: str,
    *,
    sap_codes: Collection[str] | None = None,
) -> list[Approval]:
    """Pending entries a holder of `role` can act on right now.

    Args:
        sap_codes: When not None, restrict to reimbursements filed under one of
            these SAP codes. Requests without a code never match.
    """
    stmt = (
        select(Approval)
        .join(Reimbursement, Reimbursement.id == Approval.reimbursement_id)
        .where(
            Approval.status == ApprovalStatus.PENDING,
            Approval.approver_role == role,
            Reimbursement.current_approver == role,
        )
        .options(selectinload(Approval.reimbursement).selectinload(Reimbursement.approvals))
        .order_by(Reimbursement.submitted_at.desc())
    )
    if sap_codes is not None:
        stmt = stmt.where(Reimbursement.sap_code.in_([c.upper() for c in sap_codes]))
    return list(db.execute(stmt).scalars().all())


def list_for_user(db: Session, user_id: uuid.UUID) -> list[Reimbursement]:
    stmt = (
        select(Reimbursement)
        .where(Reimbursement.user_id == user_id)
        .options(selectinload(Reimbursement.approvals))
        .order_by(Reimbursement.submitted_at.desc())
    )
    return list(db.execute(stmt).scalars().all())


def list_in_progress(db: Session) -> list[Reimbursement]:
    """Every reimbursement still awaiting an approval at some level."""
    stmt = (
        select(Reimbursement)
        .where(Reimbursement.status.not_in(list(ReimbursementStatus.TERMINAL)))
        .options(selectinload(Reimbursement.approvals))
        .order_by(Reimbursement.submitted_at.desc())
    )
    return list(db.execute(stmt).scalars().all())


def monthly_stats(db: Session, user_id: uuid.UUID, now: datetime | None = None) -> dict[str, int]:
    """Counts of the user's reimbursements submitted since the start of this month.

    Intermediate "<Role> Approved" statuses count as pending.
    """
    now = now or datetime.now(timezone.utc)
    start_of_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

    statuses = db.execute(
        select(Reimbursement.status).where(
            Reimbursement.user_id == user_id,
            Reimbursement.submitted_at >= start_of_month,
        )
    ).scalars().all()

    stats = {"submitted": len(statuses), "approved": 0, "pending": 0, "rejected": 0, "total": len(statuses)}
    for status in statuses:
        if status == ReimbursementStatus.APPROVED:
            stats["approved"] += 1
        elif status == ReimbursementStatus.REJECTED:
            stats["rejected"] += 1
        else:
            stats["pending"] += 1
    return stats


# ─── Writes (routing engine only) ───

def append_entry(db: Session, reimbursement_id: uuid.UUID, level: int, role: str) -> Approval:
    """Open the ledger entry for `level`. The unique (reimbursement, level) key rejects duplicates."""
    entry = Approval(
        reimbursement_id=reimbursement_id,
        approval_level=level,
        approver_role=role,
        status=ApprovalStatus.PENDING,
    )
    db.add(entry)
    db.flush()
    logger.debug("Ledger: opened level %s (%s) for reimbursement %s", level, role, reimbursement_id)
    return entry


def record_decision(
    db: Session,
    entry: Approval,
    *,
    status: str,
    approver_id: uuid.UUID,
    remarks: str | None,
    decided_at: datetime,
) -> bool:
    """Write a decision into a Pending entry.

    The UPDATE only matches while the row is still Pending, so of two racing
    writers exactly one sees rowcount == 1.

    Returns:
        True if this call decided the entry, False if it was already decided.
    """
    if status not in (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED):
        raise ValueError(f"Invalid ledger decision '{status}'.")

    result = db.execute(
        update(Approval)
        .where(Approval.id == entry.id, Approval.status == ApprovalStatus.PENDING)
        .values(
            status=status,
            approver_id=approver_id,
            remarks=remarks,
            decided_at=decided_at,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False

    db.refresh(entry)
    return True
