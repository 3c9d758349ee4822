from datetime import datetime

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin, UUIDMixin

ROLES = (
    "Employee",
    "SUL",
    "Account Manager",
    "Invoice Specialist",
    "Finance Officer",
    "Sales Director",
    "Admin",
)

# Roles that never carry SAP codes
SAP_EXEMPT_ROLES = ("Sales Director", "Invoice Specialist", "Finance Officer", "Admin")


class User(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="Employee")
    sap_code_1: Mapped[str | None] = mapped_column(String(20), nullable=True)
    sap_code_2: Mapped[str | None] = mapped_column(String(20), nullable=True)  # Employees only
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)  # soft delete

    @property
    def sap_codes(self) -> list[str]:
        """SAP codes this user may submit under or approve for."""
        if self.role in SAP_EXEMPT_ROLES:
            return []
        codes = [self.sap_code_1]
        if self.role == "Employee":
            codes.append(self.sap_code_2)
        return [c for c in codes if c]
