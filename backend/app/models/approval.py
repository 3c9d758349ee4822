import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin, UUIDMixin


class ApprovalStatus:
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class Approval(Base, UUIDMixin, TimestampMixin):
    """One level of a reimbursement's approval ledger. Immutable once decided."""

    __tablename__ = "approvals"
    __table_args__ = (
        UniqueConstraint("reimbursement_id", "approval_level", name="uq_approvals_reimbursement_level"),
        # At most one open level per reimbursement
        Index(
            "uq_approvals_one_pending_per_reimbursement",
            "reimbursement_id",
            unique=True,
            postgresql_where=text("status = 'Pending'"),
            sqlite_where=text("status = 'Pending'"),
        ),
    )

    reimbursement_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("reimbursements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    approval_level: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-based
    approver_role: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    approver_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ApprovalStatus.PENDING, index=True
    )
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    reimbursement: Mapped["Reimbursement"] = relationship("Reimbursement", back_populates="approvals")

    @property
    def is_decided(self) -> bool:
        return self.status != ApprovalStatus.PENDING
