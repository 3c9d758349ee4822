"""Pydantic schemas for reimbursement submission and read projections."""
import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.approval import ApprovalEntryOut


# ─── Submission ───

class ReimbursementCreate(BaseModel):
    category: str
    type: str | None = None
    description: str
    items: str | None = None
    total: Decimal
    merchant: str | None = None
    date_of_expense: date | None = None
    sap_code: str | None = None
    receipt: str | None = Field(default=None, description="Opaque reference to an uploaded receipt")


# ─── Output ───

class ReimbursementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    category: str
    type: str | None
    description: str
    items: str | None
    merchant: str | None
    total: Decimal
    sap_code: str | None
    date_of_expense: date | None
    receipt_ref: str | None
    status: str
    current_approver: str | None
    approval_route: list[str]
    submitted_at: datetime
    approved_at: datetime | None
    approvals: list[ApprovalEntryOut] = []


class ReimbursementListResponse(BaseModel):
    items: list[ReimbursementOut]
    total: int


class MonthlyStats(BaseModel):
    submitted: int
    approved: int
    pending: int
    rejected: int
    total: int


class AuditEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    action: str
    actor_id: uuid.UUID | None
    actor_email: str | None
    before_state: str | None
    after_state: str | None
    notes: str | None
    created_at: datetime
