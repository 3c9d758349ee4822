"""Approval routing engine.

The only code path that mutates a reimbursement's routing fields or its
approval ledger. Every method takes a sync SQLAlchemy Session so the engine is
usable from API handlers and Celery tasks alike.

State machine per reimbursement (N = len(route)):

    Pending(k) --approve--> Pending(k+1)      k < N
    Pending(N) --approve--> Approved
    Pending(k) --reject---> Rejected
    Approved, Rejected: terminal
"""
import enum
import logging
import re
import uuid
from collections.abc import Callable, Collection, Iterable
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from sqlalchemy import func, or_, select, text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from app.core.errors import (
    MissingRemarks,
    NotFound,
    NotPending,
    RoutingConflict,
    RoutingError,
    ValidationError,
    WrongTurn,
)
from app.models.approval import Approval, ApprovalStatus
from app.models.reimbursement import Reimbursement, ReimbursementStatus
from app.models.user import User
from app.services import audit as audit_svc
from app.services import ledger as ledger_svc
from app.services.notifier import RoutingEvent, RoutingEventKind
from app.services.role_sequence import ApprovalFlowTable, RoleSequence

logger = logging.getLogger(__name__)

SAP_CODE_PATTERN = re.compile(r"^E-\d{5}-\d{4}$", re.IGNORECASE)
CENTS = Decimal("0.01")


class Outcome(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


class RoutingEngine:
    """Decides whose turn it is and applies approval decisions atomically.

    Args:
        flows: Role sequence(s) to route through. A bare list or RoleSequence
            is used for every submitter.
        sap_scoped_roles: Approver roles that may only act on requests filed
            under one of their own SAP codes.
        lock_timeout_ms: Upper bound on waiting for the reimbursement row lock
            (PostgreSQL). Exceeding it raises RoutingConflict.
        notifier: Called with a RoutingEvent after each successful commit.
        clock: Returns "now"; injectable for tests.
    """

    def __init__(
        self,
        flows: ApprovalFlowTable | RoleSequence | Iterable[str],
        *,
        sap_scoped_roles: Collection[str] = (),
        lock_timeout_ms: int = 5000,
        notifier: Callable[[RoutingEvent], None] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        if not isinstance(flows, ApprovalFlowTable):
            flows = ApprovalFlowTable(default=flows)
        self.flows = flows
        self.sap_scoped_roles = frozenset(sap_scoped_roles)
        self.lock_timeout_ms = lock_timeout_ms
        self._notifier = notifier
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ─── Submission ───

    def submit(
        self,
        db: Session,
        requester_id: uuid.UUID,
        category: str,
        amount: Decimal | str | int | float,
        description: str,
        receipt_ref: str | None = None,
        *,
        submitter_role: str | None = None,
        type: str | None = None,
        items: str | None = None,
        merchant: str | None = None,
        sap_code: str | None = None,
        date_of_expense: date | None = None,
        requester_email: str | None = None,
    ) -> Reimbursement:
        """Create a reimbursement at Pending(1) with its level-1 ledger entry.

        Raises:
            ValidationError: amount <= 0, blank category/description, or a
                malformed or missing SAP code, or no active first approver
                holds the SAP code. Nothing is written.
        """
        total = _parse_amount(amount)
        category = (category or "").strip()
        description = (description or "").strip()
        if not category:
            raise ValidationError("Category is required.", field="category")
        if not description:
            raise ValidationError("Description is required.", field="description")

        if sap_code is not None:
            sap_code = sap_code.strip().upper() or None
        if sap_code is not None and not SAP_CODE_PATTERN.match(sap_code):
            raise ValidationError(
                f"SAP code '{sap_code}' must look like E-00000-0000.", field="sap_code"
            )

        route = self.flows.for_submitter(submitter_role)
        first_role = route.first()
        self._check_submission_scope(db, route, sap_code)
        now = self._clock()

        reimbursement = Reimbursement(
            user_id=requester_id,
            category=category,
            type=(type or merchant or category),
            description=description,
            items=items,
            merchant=merchant,
            total=total,
            sap_code=sap_code,
            date_of_expense=date_of_expense,
            receipt_ref=receipt_ref,
            status=ReimbursementStatus.PENDING,
            current_approver=first_role,
            approval_route=list(route.roles),
            submitted_at=now,
        )
        try:
            db.add(reimbursement)
            db.flush()
            ledger_svc.append_entry(db, reimbursement.id, level=1, role=first_role)
            audit_svc.record(
                db,
                "reimbursement_submitted",
                reimbursement.id,
                requester_id,
                actor_email=requester_email,
                after={
                    "status": reimbursement.status,
                    "current_approver": first_role,
                    "route": list(route.roles),
                    "total": str(total),
                },
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(
            "Reimbursement submitted: id=%s requester=%s total=%s first_approver=%s",
            reimbursement.id, requester_id, total, first_role,
        )
        self._emit(self._event(reimbursement, RoutingEventKind.submitted, level=1, next_role=first_role))
        return reimbursement

    # ─── Decision ───

    def decide(
        self,
        db: Session,
        reimbursement_id: uuid.UUID,
        actor_id: uuid.UUID,
        actor_role: str,
        outcome: Outcome | str,
        remarks: str | None = None,
        *,
        actor_sap_codes: Collection[str] | None = None,
        actor_email: str | None = None,
    ) -> Reimbursement:
        """Apply one approver's decision in a single transaction.

        Raises:
            NotFound, NotPending, WrongTurn, MissingRemarks: nothing applied.
            RoutingConflict: lock timeout or a concurrent decision won the
                level; nothing applied, the whole call may be retried.
        """
        try:
            outcome = Outcome(outcome)
        except ValueError:
            raise ValidationError(
                f"Invalid outcome '{outcome}'. Must be 'approve' or 'reject'.", field="outcome"
            )
        remarks = remarks.strip() if remarks else None

        try:
            self._bound_lock_wait(db)
            reimbursement = self._lock_reimbursement(db, reimbursement_id)
            if reimbursement is None:
                raise NotFound(f"Reimbursement {reimbursement_id} not found.")
            before = _snapshot(reimbursement)
            event = self._apply(db, reimbursement, actor_id, actor_role, outcome, remarks, actor_sap_codes)
            audit_svc.record(
                db,
                f"reimbursement_{event.kind.value}",
                reimbursement.id,
                actor_id,
                actor_email=actor_email,
                before=before,
                after=_snapshot(reimbursement),
                notes=f"Level {event.level} {outcome.value} by {actor_role}. Remarks: {remarks}",
            )
            db.commit()
        except RoutingError:
            db.rollback()
            raise
        except (OperationalError, IntegrityError) as exc:
            db.rollback()
            logger.warning("Routing conflict on reimbursement %s: %s", reimbursement_id, exc)
            raise RoutingConflict(
                f"Reimbursement {reimbursement_id} is being updated by another request. Retry.",
            ) from exc

        db.expire(reimbursement, ["approvals"])
        logger.info(
            "Routing decision: reimbursement=%s level=%s role=%s outcome=%s status=%s next=%s",
            reimbursement.id, event.level, actor_role, outcome.value,
            reimbursement.status, reimbursement.current_approver,
        )
        self._emit(event)
        return reimbursement

    def _apply(
        self,
        db: Session,
        reimbursement: Reimbursement,
        actor_id: uuid.UUID,
        actor_role: str,
        outcome: Outcome,
        remarks: str | None,
        actor_sap_codes: Collection[str] | None,
    ) -> RoutingEvent:
        if reimbursement.is_terminal or reimbursement.current_approver is None:
            raise NotPending(
                f"Reimbursement {reimbursement.id} is already {reimbursement.status}.",
                status=reimbursement.status,
            )
        if actor_role != reimbursement.current_approver:
            raise WrongTurn(
                f"Reimbursement {reimbursement.id} is awaiting {reimbursement.current_approver}, not {actor_role}.",
                current_approver=reimbursement.current_approver,
                actor_role=actor_role,
            )
        self._check_sap_scope(reimbursement, actor_role, actor_sap_codes)

        entry = ledger_svc.fetch_current_entry(db, reimbursement.id)
        if entry is None or entry.approver_role != actor_role:
            raise WrongTurn(
                f"No pending {actor_role} approval on reimbursement {reimbursement.id}.",
                current_approver=entry.approver_role if entry else None,
                actor_role=actor_role,
            )
        if outcome is Outcome.REJECT and not remarks:
            raise MissingRemarks("Remarks are required for rejection.")

        now = self._clock()
        decided = ledger_svc.record_decision(
            db,
            entry,
            status=ApprovalStatus.APPROVED if outcome is Outcome.APPROVE else ApprovalStatus.REJECTED,
            approver_id=actor_id,
            remarks=remarks,
            decided_at=now,
        )
        if not decided:
            raise RoutingConflict(
                f"Level {entry.approval_level} of reimbursement {reimbursement.id} was decided concurrently.",
                level=entry.approval_level,
            )

        level = entry.approval_level
        if outcome is Outcome.REJECT:
            reimbursement.status = ReimbursementStatus.REJECTED
            reimbursement.current_approver = None
            db.flush()
            return self._event(
                reimbursement, RoutingEventKind.rejected,
                level=level, actor_id=actor_id, actor_role=actor_role, remarks=remarks,
            )

        next_role = self._route_of(reimbursement).next_after(entry.approver_role)
        if next_role is not None:
            reimbursement.status = ReimbursementStatus.in_progress(actor_role)
            reimbursement.current_approver = next_role
            db.flush()
            ledger_svc.append_entry(db, reimbursement.id, level=level + 1, role=next_role)
            return self._event(
                reimbursement, RoutingEventKind.advanced,
                level=level, actor_id=actor_id, actor_role=actor_role,
                next_role=next_role, remarks=remarks,
            )

        reimbursement.status = ReimbursementStatus.APPROVED
        reimbursement.current_approver = None
        reimbursement.approved_at = now
        db.flush()
        return self._event(
            reimbursement, RoutingEventKind.approved,
            level=level, actor_id=actor_id, actor_role=actor_role, remarks=remarks,
        )

    # ─── Reads ───

    def approval_trail(self, db: Session, reimbursement_id: uuid.UUID) -> list[Approval]:
        if db.get(Reimbursement, reimbursement_id) is None:
            raise NotFound(f"Reimbursement {reimbursement_id} not found.")
        return ledger_svc.fetch_by_reimbursement(db, reimbursement_id)

    def can_act(self, db: Session, reimbursement_id: uuid.UUID, actor_role: str) -> bool:
        return any(
            entry.status == ApprovalStatus.PENDING and entry.approver_role == actor_role
            for entry in self.approval_trail(db, reimbursement_id)
        )

    def pending_for(
        self,
        db: Session,
        actor_role: str,
        actor_sap_codes: Collection[str] | None = None,
    ) -> list[Approval]:
        """Ledger entries awaiting `actor_role`, honouring SAP scoping."""
        sap_codes = None
        if actor_role in self.sap_scoped_roles:
            sap_codes = list(actor_sap_codes or [])
        return ledger_svc.fetch_pending_for_role(db, actor_role, sap_codes=sap_codes)

    # ─── Internals ───

    def _route_of(self, reimbursement: Reimbursement) -> RoleSequence:
        # Requests keep the route they were submitted under
        if reimbursement.approval_route:
            return RoleSequence(reimbursement.approval_route)
        return self.flows.default

    def _check_submission_scope(self, db: Session, route: RoleSequence, sap_code: str | None) -> None:
        """Scoped routes need a SAP code that an active first approver holds."""
        if not any(role in self.sap_scoped_roles for role in route):
            return
        if sap_code is None:
            raise ValidationError(
                "SAP code is required for requests routed through SAP-scoped approvers.",
                field="sap_code",
            )
        first_role = route.first()
        if first_role not in self.sap_scoped_roles:
            return
        stmt = (
            select(User.id)
            .where(
                User.role == first_role,
                User.is_active.is_(True),
                User.deleted_at.is_(None),
                or_(func.upper(User.sap_code_1) == sap_code, func.upper(User.sap_code_2) == sap_code),
            )
            .limit(1)
        )
        if db.execute(stmt).first() is None:
            raise ValidationError(
                f"No active {first_role} holds SAP code {sap_code}.", field="sap_code"
            )

    def _check_sap_scope(
        self,
        reimbursement: Reimbursement,
        actor_role: str,
        actor_sap_codes: Collection[str] | None,
    ) -> None:
        if actor_role not in self.sap_scoped_roles:
            return
        codes = {c.upper() for c in (actor_sap_codes or [])}
        if not reimbursement.sap_code or reimbursement.sap_code.upper() not in codes:
            raise WrongTurn(
                f"Reimbursement {reimbursement.id} is not assigned to your SAP code.",
                request_sap_code=reimbursement.sap_code,
            )

    def _bound_lock_wait(self, db: Session) -> None:
        if db.get_bind().dialect.name == "postgresql":
            db.execute(text(f"SET LOCAL lock_timeout = {int(self.lock_timeout_ms)}"))

    @staticmethod
    def _lock_reimbursement(db: Session, reimbursement_id: uuid.UUID) -> Reimbursement | None:
        stmt = (
            select(Reimbursement)
            .where(Reimbursement.id == reimbursement_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return db.execute(stmt).scalars().first()

    @staticmethod
    def _event(reimbursement: Reimbursement, kind: RoutingEventKind, **fields) -> RoutingEvent:
        return RoutingEvent(
            kind=kind,
            reimbursement_id=reimbursement.id,
            submitter_id=reimbursement.user_id,
            status=reimbursement.status,
            category=reimbursement.category,
            total=reimbursement.total,
            sap_code=reimbursement.sap_code,
            **fields,
        )

    def _emit(self, event: RoutingEvent) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier(event)
        except Exception as exc:
            logger.warning("Notifier failed for %s event on %s: %s", event.kind.value, event.reimbursement_id, exc)


# ─── Helpers ───

def _parse_amount(amount) -> Decimal:
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Amount '{amount}' is not a number.", field="total")
    if not value.is_finite() or value <= 0:
        raise ValidationError("Amount must be greater than zero.", field="total")
    value = value.quantize(CENTS, rounding=ROUND_HALF_UP)
    if value <= 0:
        raise ValidationError("Amount must be at least 0.01.", field="total")
    return value


def _snapshot(reimbursement: Reimbursement) -> dict:
    return {
        "status": reimbursement.status,
        "current_approver": reimbursement.current_approver,
        "approved_at": reimbursement.approved_at,
    }
