"""
EduPay - Schemas Package

Pydantic schemas for request/response validation.
"""

from app.schemas.payroll import (
    PayrollGenerateRequest,
    BatchErrorItem,
    AdvanceDeductionLineResponse,
    PayrollUpdate,
    PayrollResponse,
    PayrollListResponse,
    PayrollGenerateResponse,
    EmployeePayrollHistoryResponse,
    SalarySummaryResponse,
)
from app.schemas.advance_salary import (
    AdvanceSalaryCreate,
    AdvanceRejectRequest,
    AdvanceDeductionHistoryItem,
    AdvanceSalaryResponse,
    AdvanceListResponse,
    AdvanceStatsResponse,
)

__all__ = [
    # Payroll
    "PayrollGenerateRequest",
    "BatchErrorItem",
    "AdvanceDeductionLineResponse",
    "PayrollUpdate",
    "PayrollResponse",
    "PayrollListResponse",
    "PayrollGenerateResponse",
    "EmployeePayrollHistoryResponse",
    "SalarySummaryResponse",
    # Advances
    "AdvanceSalaryCreate",
    "AdvanceRejectRequest",
    "AdvanceDeductionHistoryItem",
    "AdvanceSalaryResponse",
    "AdvanceListResponse",
    "AdvanceStatsResponse",
]
