from app.models.user import User
from app.models.reimbursement import Reimbursement, ReimbursementStatus
from app.models.approval import Approval, ApprovalStatus
from app.models.audit import AuditLog

__all__ = [
    "User",
    "Reimbursement", "ReimbursementStatus",
    "Approval", "ApprovalStatus",
    "AuditLog",
]
