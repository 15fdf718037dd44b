"""
EduPay - Services Package

Business logic services.
"""

from app.services.advance_ledger import AdvanceLedger
from app.services.advance_salary_service import AdvanceSalaryService
from app.services.employee_directory import EmployeeDirectory, EligibleEmployee
from app.services.payroll_service import PayrollService

__all__ = [
    "AdvanceLedger",
    "AdvanceSalaryService",
    "EmployeeDirectory",
    "EligibleEmployee",
    "PayrollService",
]
