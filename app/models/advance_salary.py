"""
EduPay - Advance Salary Models

Salary advances requested by staff and the deduction lines that settle them
against monthly payroll records.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import (
    Date, DateTime, ForeignKey, Integer, Numeric, String, Text,
    Enum as SQLEnum,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, AuditMixin, TenantMixin, utcnow

if TYPE_CHECKING:
    from app.models.payroll import Payroll
    from app.models.user import User


class AdvanceStatus(str, Enum):
    """Approval state of an advance request."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class DeductionStatus(str, Enum):
    """Repayment state of an approved advance."""
    PENDING = "pending"      # nothing deducted yet
    PARTIAL = "partial"      # some deducted, balance remaining
    COMPLETE = "complete"    # fully repaid


class AdvanceSalary(BaseModel, TenantMixin, AuditMixin):
    """
    A salary advance.

    ``remaining_amount`` always equals ``amount`` minus the sum of the
    non-reversed deduction lines and is never negative. Advances are never
    deleted.
    """

    __tablename__ = "advance_salaries"

    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        nullable=False,
        comment="Original advance amount",
    )
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    request_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
        comment="Settlement order key (oldest first)",
    )

    # Approval
    status: Mapped[AdvanceStatus] = mapped_column(
        SQLEnum(AdvanceStatus),
        default=AdvanceStatus.PENDING,
        nullable=False,
        index=True,
    )
    approved_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    rejected_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )
    rejected_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Repayment tracking
    deduction_status: Mapped[DeductionStatus] = mapped_column(
        SQLEnum(DeductionStatus),
        default=DeductionStatus.PENDING,
        nullable=False,
        index=True,
    )
    amount_deducted: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    remaining_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        nullable=False,
    )

    employee: Mapped["User"] = relationship("User", lazy="selectin")
    deductions: Mapped[List["AdvanceDeduction"]] = relationship(
        "AdvanceDeduction",
        back_populates="advance",
        lazy="selectin",
        order_by="AdvanceDeduction.deducted_at",
    )

    @property
    def employee_name(self) -> Optional[str]:
        return self.employee.name if self.employee else None

    @property
    def employee_code(self) -> Optional[str]:
        return self.employee.employee_code if self.employee else None

    @property
    def is_open(self) -> bool:
        """Approved with a balance still to settle."""
        return (
            self.status == AdvanceStatus.APPROVED
            and self.deduction_status != DeductionStatus.COMPLETE
            and self.remaining_amount > 0
        )

    def __repr__(self) -> str:
        return (
            f"<AdvanceSalary(id={self.id}, amount={self.amount}, "
            f"remaining={self.remaining_amount}, status={self.status})>"
        )


class AdvanceDeduction(BaseModel):
    """
    One settlement of an advance against one payroll record.

    The same row is the payroll's advance-deduction line and the advance's
    deduction history entry. Reversed lines are kept and excluded from totals.
    """

    __tablename__ = "advance_deductions"

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    advance_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("advance_salaries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    payroll_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("payrolls.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        nullable=False,
    )
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    deducted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    reversed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    reversed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )

    advance: Mapped["AdvanceSalary"] = relationship(
        "AdvanceSalary",
        back_populates="deductions",
        lazy="noload",
    )
    payroll: Mapped["Payroll"] = relationship(
        "Payroll",
        back_populates="advance_deductions",
        lazy="noload",
    )

    @property
    def is_active(self) -> bool:
        return self.reversed_at is None

    def __repr__(self) -> str:
        return (
            f"<AdvanceDeduction(advance_id={self.advance_id}, "
            f"payroll_id={self.payroll_id}, amount={self.amount})>"
        )
