"""
EduPay - Payroll Schemas

Pydantic schemas for payroll requests and responses.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Dict
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.models.payroll import PaymentMethod, PaymentStatus


# ===========================================
# GENERATION
# ===========================================

class PayrollGenerateRequest(BaseModel):
    """
    Generate payroll for every eligible employee of the school.

    ``bonuses`` and ``deductions`` are keyed by employee id.
    """
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000, le=2100)
    overwrite: bool = False
    bonuses: Dict[UUID, Decimal] = Field(default_factory=dict)
    deductions: Dict[UUID, Decimal] = Field(default_factory=dict)

    @field_validator("bonuses", "deductions")
    @classmethod
    def amounts_not_negative(cls, v: Dict[UUID, Decimal]) -> Dict[UUID, Decimal]:
        for employee_id, amount in v.items():
            if amount < 0:
                raise ValueError(f"Amount for employee {employee_id} cannot be negative")
        return v


class BatchErrorItem(BaseModel):
    """One employee that could not be processed."""
    employee_id: UUID
    employee_code: Optional[str] = None
    name: str
    error: str


# ===========================================
# RECORDS
# ===========================================

class AdvanceDeductionLineResponse(BaseModel):
    """Advance settled against a payroll record."""
    id: UUID
    advance_id: UUID
    payroll_id: UUID
    amount: Decimal
    month: int
    year: int
    deducted_at: datetime
    reversed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PayrollUpdate(BaseModel):
    """Administrative edit of a payroll record."""
    base_salary: Optional[Decimal] = Field(None, gt=0)
    bonuses: Optional[Decimal] = Field(None, ge=0)
    other_deductions: Optional[Decimal] = Field(None, ge=0)
    leave_days: Optional[int] = Field(None, ge=0, le=31)
    leave_deduction: Optional[Decimal] = Field(None, ge=0)
    payment_status: Optional[PaymentStatus] = None
    payment_date: Optional[date] = None
    payment_method: Optional[PaymentMethod] = None
    payment_reference: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class PayrollResponse(BaseModel):
    """Payroll record response schema."""
    id: UUID
    tenant_id: UUID
    employee_id: UUID
    month: int
    year: int
    base_salary: Decimal
    bonuses: Decimal
    other_deductions: Decimal
    total_advance_deduction: Decimal
    leave_days: int
    leave_deduction: Decimal
    net_salary: Decimal
    payment_status: PaymentStatus
    payment_date: Optional[date] = None
    payment_method: Optional[PaymentMethod] = None
    payment_reference: Optional[str] = None
    notes: Optional[str] = None
    generated_by_id: Optional[UUID] = None
    generated_at: datetime
    updated_by_id: Optional[UUID] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    advance_deductions: List[AdvanceDeductionLineResponse] = []

    # Employee info (for list views)
    employee_name: Optional[str] = None
    employee_code: Optional[str] = None

    class Config:
        from_attributes = True


class PayrollListResponse(BaseModel):
    """Paginated payroll records."""
    items: List[PayrollResponse]
    total: int
    page: int
    limit: int
    pages: int


class PayrollGenerateResponse(BaseModel):
    """Outcome of a payroll generation batch."""
    success: bool
    message: str
    created: int
    skipped: int
    errors: List[BatchErrorItem] = []
    records: List[PayrollResponse] = []


class EmployeePayrollHistoryResponse(BaseModel):
    """Payroll history of one employee, newest period first."""
    employee_id: UUID
    year: Optional[int] = None
    items: List[PayrollResponse]


# ===========================================
# SUMMARY
# ===========================================

class SalarySummaryResponse(BaseModel):
    """Aggregated payroll totals for a period."""
    month: int
    year: int
    total_employees: int
    total_base_salary: Decimal
    total_bonuses: Decimal
    total_deductions: Decimal
    total_advance_deductions: Decimal
    total_net_salary: Decimal
    paid_count: int
    pending_count: int
    cancelled_count: int
