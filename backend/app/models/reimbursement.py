import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, TimestampMixin, UUIDMixin, utcnow


class ReimbursementStatus:
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"

    TERMINAL = frozenset({APPROVED, REJECTED})

    @staticmethod
    def in_progress(role: str) -> str:
        """Display status after `role` has approved and a later level is still open."""
        return f"{role} Approved"

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in cls.TERMINAL


class Reimbursement(Base, UUIDMixin, TimestampMixin):
    """An expense or overtime claim routed through the approval ledger."""

    __tablename__ = "reimbursements"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    items: Mapped[str | None] = mapped_column(Text, nullable=True)
    merchant: Mapped[str | None] = mapped_column(String(255), nullable=True)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    sap_code: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    date_of_expense: Mapped[date | None] = mapped_column(Date, nullable=True)
    receipt_ref: Mapped[str | None] = mapped_column(String(500), nullable=True)

    status: Mapped[str] = mapped_column(
        String(100), nullable=False, default=ReimbursementStatus.PENDING, index=True
    )  # Pending, "<Role> Approved", Approved, Rejected
    current_approver: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    approval_route: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    approvals: Mapped[list["Approval"]] = relationship(
        "Approval",
        back_populates="reimbursement",
        cascade="all, delete-orphan",
        order_by="Approval.approval_level",
    )

    @property
    def is_terminal(self) -> bool:
        return ReimbursementStatus.is_terminal(self.status)
