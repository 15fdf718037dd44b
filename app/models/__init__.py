"""
EduPay - Database Models
"""

from app.models.base import BaseModel, TimestampMixin, TenantMixin, AuditMixin, SoftDeleteMixin
from app.models.tenant import Tenant
from app.models.user import User, UserRole
from app.models.advance_salary import (
    AdvanceSalary,
    AdvanceDeduction,
    AdvanceStatus,
    DeductionStatus,
)
from app.models.payroll import Payroll, PaymentStatus, PaymentMethod

__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    "TenantMixin",
    "AuditMixin",
    "SoftDeleteMixin",
    # Tenancy
    "Tenant",
    "User",
    "UserRole",
    # Advances
    "AdvanceSalary",
    "AdvanceDeduction",
    "AdvanceStatus",
    "DeductionStatus",
    # Payroll
    "Payroll",
    "PaymentStatus",
    "PaymentMethod",
]
