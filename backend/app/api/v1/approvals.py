"""Approval workflow API endpoints.

  GET  /approvals/{reimbursement_id}          approval trail + can_act for caller
  POST /approvals/{reimbursement_id}/approve  body {remarks?}
  POST /approvals/{reimbursement_id}/reject   body {remarks} (required)

Routing errors (NotPending, WrongTurn, ...) are mapped to HTTP responses by
the RoutingError handler in app.main.
"""
import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.deps import get_current_user, get_routing_engine, get_visible_reimbursement
from app.db.session import get_sync_session
from app.models.user import User
from app.schemas.approval import (
    ApprovalDecisionRequest,
    ApprovalEntryOut,
    ApprovalTrailOut,
    RejectionRequest,
)
from app.schemas.reimbursement import ReimbursementOut
from app.services.routing import Outcome, RoutingEngine

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/{reimbursement_id}",
    response_model=ApprovalTrailOut,
    summary="Approval trail for a reimbursement",
)
def get_approval_trail(
    reimbursement_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_sync_session)],
    engine: Annotated[RoutingEngine, Depends(get_routing_engine)],
):
    reimbursement = get_visible_reimbursement(db, reimbursement_id, current_user)
    trail = engine.approval_trail(db, reimbursement_id)
    return ApprovalTrailOut(
        reimbursement_id=reimbursement_id,
        status=reimbursement.status,
        current_approver=reimbursement.current_approver,
        can_act=engine.can_act(db, reimbursement_id, current_user.role),
        approvals=[ApprovalEntryOut.model_validate(entry) for entry in trail],
    )


@router.post(
    "/{reimbursement_id}/approve",
    response_model=ReimbursementOut,
    summary="Approve the current level of a reimbursement",
)
def approve_reimbursement(
    reimbursement_id: uuid.UUID,
    body: ApprovalDecisionRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_sync_session)],
    engine: Annotated[RoutingEngine, Depends(get_routing_engine)],
):
    reimbursement = engine.decide(
        db,
        reimbursement_id=reimbursement_id,
        actor_id=current_user.id,
        actor_role=current_user.role,
        outcome=Outcome.APPROVE,
        remarks=body.remarks,
        actor_sap_codes=current_user.sap_codes,
        actor_email=current_user.email,
    )
    return ReimbursementOut.model_validate(reimbursement)


@router.post(
    "/{reimbursement_id}/reject",
    response_model=ReimbursementOut,
    summary="Reject a reimbursement at the current level",
)
def reject_reimbursement(
    reimbursement_id: uuid.UUID,
    body: RejectionRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_sync_session)],
    engine: Annotated[RoutingEngine, Depends(get_routing_engine)],
):
    reimbursement = engine.decide(
        db,
        reimbursement_id=reimbursement_id,
        actor_id=current_user.id,
        actor_role=current_user.role,
        outcome=Outcome.REJECT,
        remarks=body.remarks,
        actor_sap_codes=current_user.sap_codes,
        actor_email=current_user.email,
    )
    return ReimbursementOut.model_validate(reimbursement)
