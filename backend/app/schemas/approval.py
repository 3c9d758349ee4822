"""Pydantic schemas for approval ledger endpoints."""
import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator


# ─── Ledger entry output ───

class ApprovalEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    reimbursement_id: uuid.UUID
    approval_level: int
    approver_role: str
    approver_id: uuid.UUID | None
    status: str
    remarks: str | None
    decided_at: datetime | None


class ApprovalTrailOut(BaseModel):
    reimbursement_id: uuid.UUID
    status: str
    current_approver: str | None
    can_act: bool
    approvals: list[ApprovalEntryOut]


# ─── Decision request bodies ───

class ApprovalDecisionRequest(BaseModel):
    remarks: str | None = None


class RejectionRequest(BaseModel):
    remarks: str

    @field_validator("remarks")
    @classmethod
    def remarks_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Remarks are required for rejection")
        return v.strip()
