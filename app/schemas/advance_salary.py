"""
EduPay - Advance Salary Schemas
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.advance_salary import AdvanceStatus, DeductionStatus


class AdvanceSalaryCreate(BaseModel):
    """Create advance request. ``employee_id`` defaults to the caller."""
    employee_id: Optional[UUID] = None
    amount: Decimal = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=500)
    notes: Optional[str] = None
    request_date: Optional[date] = None


class AdvanceRejectRequest(BaseModel):
    """Reject advance request."""
    reason: str = Field(..., min_length=1, max_length=500)


class AdvanceDeductionHistoryItem(BaseModel):
    """Deduction history line of an advance."""
    id: UUID
    payroll_id: UUID
    amount: Decimal
    month: int
    year: int
    deducted_at: datetime
    reversed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AdvanceSalaryResponse(BaseModel):
    """Advance salary response schema."""
    id: UUID
    tenant_id: UUID
    employee_id: UUID
    amount: Decimal
    reason: str
    notes: Optional[str] = None
    request_date: date
    status: AdvanceStatus
    approved_by_id: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    rejected_by_id: Optional[UUID] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    deduction_status: DeductionStatus
    amount_deducted: Decimal
    remaining_amount: Decimal
    created_by_id: Optional[UUID] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    deductions: List[AdvanceDeductionHistoryItem] = []

    employee_name: Optional[str] = None
    employee_code: Optional[str] = None

    class Config:
        from_attributes = True


class AdvanceListResponse(BaseModel):
    """Paginated advance requests."""
    items: List[AdvanceSalaryResponse]
    total: int
    page: int
    limit: int
    pages: int


class AdvanceStatsResponse(BaseModel):
    """Advance request statistics for the school."""
    pending_count: int
    approved_count: int
    rejected_count: int
    total_approved_amount: Decimal
    total_outstanding: Decimal
