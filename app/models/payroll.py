"""
EduPay - Payroll Model

One monthly salary record per employee per period. Records are soft deleted;
at most one non-deleted record exists per (tenant, employee, month, year).
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import (
    CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, Numeric,
    String, Text, text, Enum as SQLEnum,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, SoftDeleteMixin, TenantMixin, utcnow

if TYPE_CHECKING:
    from app.models.advance_salary import AdvanceDeduction
    from app.models.user import User


class PaymentStatus(str, Enum):
    """Payment state of a payroll record."""
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    """How the salary was paid out."""
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"
    ONLINE = "online"


class Payroll(BaseModel, TenantMixin, SoftDeleteMixin):
    """
    Monthly payroll record.

    ``net_salary = max(0, base_salary + bonuses - other_deductions
    - total_advance_deduction - leave_deduction)``.
    """

    __tablename__ = "payrolls"
    __table_args__ = (
        Index(
            "uq_payrolls_tenant_employee_period_active",
            "tenant_id", "employee_id", "month", "year",
            unique=True,
            postgresql_where=text("is_deleted = false"),
            sqlite_where=text("is_deleted = 0"),
        ),
        Index("ix_payrolls_tenant_period", "tenant_id", "year", "month"),
        CheckConstraint("month >= 1 AND month <= 12", name="month_range"),
        CheckConstraint("year >= 2000 AND year <= 2100", name="year_range"),
    )

    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Period
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    # Earnings & deductions
    base_salary: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2),
        nullable=False,
        comment="Salary snapshot at generation time",
    )
    bonuses: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0.00"), nullable=False,
    )
    other_deductions: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0.00"), nullable=False,
    )
    total_advance_deduction: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0.00"), nullable=False,
    )
    leave_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    leave_deduction: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), default=Decimal("0.00"), nullable=False,
    )
    net_salary: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False,
    )

    # Payment
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SQLEnum(PaymentStatus),
        default=PaymentStatus.PENDING,
        nullable=False,
        index=True,
    )
    payment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    payment_method: Mapped[Optional[PaymentMethod]] = mapped_column(
        SQLEnum(PaymentMethod), nullable=True,
    )
    payment_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Generation audit
    generated_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )
    generated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False,
    )
    updated_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True,
    )

    employee: Mapped["User"] = relationship("User", lazy="selectin")
    advance_deductions: Mapped[List["AdvanceDeduction"]] = relationship(
        "AdvanceDeduction",
        back_populates="payroll",
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
    def period_label(self) -> str:
        return f"{self.year}-{self.month:02d}"

    @property
    def active_advance_deductions(self) -> List["AdvanceDeduction"]:
        return [line for line in self.advance_deductions if line.reversed_at is None]

    def __repr__(self) -> str:
        return (
            f"<Payroll(employee_id={self.employee_id}, period={self.period_label}, "
            f"net={self.net_salary}, deleted={self.is_deleted})>"
        )
