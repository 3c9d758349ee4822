"""Reimbursement submission and read projections.

  POST /reimbursements                               submit (routes to level 1)
  GET  /reimbursements?userId=...                    a user's requests with trails
  GET  /reimbursements/my-reimbursements             caller's requests
  GET  /reimbursements/monthly-stats                 caller's counts this month
  GET  /reimbursements/pending-approvals             awaiting the caller's role
  GET  /reimbursements/pending-all-approvals         every in-progress request
  GET  /reimbursements/{reimbursement_id}
  GET  /reimbursements/{reimbursement_id}/history    routing audit trail
"""
import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.core.deps import (
    ADMIN_ROLE,
    get_current_user,
    get_routing_engine,
    get_visible_reimbursement,
)
from app.db.session import get_sync_session
from app.models.reimbursement import Reimbursement
from app.models.user import User
from app.schemas.reimbursement import (
    AuditEntryOut,
    MonthlyStats,
    ReimbursementCreate,
    ReimbursementListResponse,
    ReimbursementOut,
)
from app.services import audit as audit_svc
from app.services import ledger as ledger_svc
from app.services.routing import RoutingEngine

logger = logging.getLogger(__name__)

router = APIRouter()


def _list_response(rows: list[Reimbursement]) -> ReimbursementListResponse:
    items = [ReimbursementOut.model_validate(r) for r in rows]
    return ReimbursementListResponse(items=items, total=len(items))


def _require_approver(user: User, engine: RoutingEngine) -> None:
    if user.role != ADMIN_ROLE and user.role not in engine.flows.approver_roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Role '{user.role}' does not approve reimbursements.",
        )


# ─── Submit ───

@router.post(
    "",
    response_model=ReimbursementOut,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a reimbursement request",
)
def create_reimbursement(
    body: ReimbursementCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_sync_session)],
    engine: Annotated[RoutingEngine, Depends(get_routing_engine)],
):
    if body.sap_code:
        held = {c.upper() for c in current_user.sap_codes}
        if body.sap_code.strip().upper() not in held:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid SAP code. You can only submit reimbursements with your assigned SAP codes.",
            )

    reimbursement = engine.submit(
        db,
        requester_id=current_user.id,
        category=body.category,
        amount=body.total,
        description=body.description,
        receipt_ref=body.receipt,
        submitter_role=current_user.role,
        type=body.type,
        items=body.items,
        merchant=body.merchant,
        sap_code=body.sap_code,
        date_of_expense=body.date_of_expense,
        requester_email=current_user.email,
    )
    return ReimbursementOut.model_validate(reimbursement)


# ─── Read projections ───

@router.get("", response_model=ReimbursementListResponse, summary="List a user's reimbursements")
def list_reimbursements(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_sync_session)],
    user_id: uuid.UUID | None = Query(None, alias="userId"),
):
    target = user_id or current_user.id
    if target != current_user.id and current_user.role != ADMIN_ROLE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only list your own reimbursements.",
        )
    return _list_response(ledger_svc.list_for_user(db, target))


@router.get("/my-reimbursements", response_model=ReimbursementListResponse)
def my_reimbursements(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_sync_session)],
):
    return _list_response(ledger_svc.list_for_user(db, current_user.id))


@router.get("/monthly-stats", response_model=MonthlyStats)
def monthly_stats(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_sync_session)],
):
    return MonthlyStats(**ledger_svc.monthly_stats(db, current_user.id))


@router.get(
    "/pending-approvals",
    response_model=ReimbursementListResponse,
    summary="Reimbursements awaiting the caller's role",
)
def pending_approvals(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_sync_session)],
    engine: Annotated[RoutingEngine, Depends(get_routing_engine)],
):
    entries = engine.pending_for(db, current_user.role, current_user.sap_codes)
    return _list_response([entry.reimbursement for entry in entries])


@router.get(
    "/pending-all-approvals",
    response_model=ReimbursementListResponse,
    summary="Every reimbursement still in the approval pipeline",
)
def pending_all_approvals(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_sync_session)],
    engine: Annotated[RoutingEngine, Depends(get_routing_engine)],
):
    _require_approver(current_user, engine)
    return _list_response(ledger_svc.list_in_progress(db))


@router.get("/{reimbursement_id}", response_model=ReimbursementOut)
def get_reimbursement(
    reimbursement_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_sync_session)],
):
    return ReimbursementOut.model_validate(get_visible_reimbursement(db, reimbursement_id, current_user))


@router.get(
    "/{reimbursement_id}/history",
    response_model=list[AuditEntryOut],
    summary="Audit trail of routing transitions",
)
def get_reimbursement_history(
    reimbursement_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_sync_session)],
):
    get_visible_reimbursement(db, reimbursement_id, current_user)
    return [AuditEntryOut.model_validate(entry) for entry in audit_svc.history(db, reimbursement_id)]
