"""
EduPay - Employee Directory

Read-only view of the staff a school pays each month.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.user import User, UserRole


@dataclass(frozen=True)
class EligibleEmployee:
    """
    Snapshot of an employee taken before payroll processing starts.

    Plain values rather than ORM rows, so a rolled back unit of work cannot
    expire them mid-batch.
    """
    id: uuid.UUID
    name: str
    employee_code: Optional[str]
    base_salary: Decimal


class EmployeeDirectory:
    """Looks up payroll-eligible employees of a tenant."""

    def __init__(self, db: AsyncSession, eligible_roles: Optional[List[str]] = None):
        self.db = db
        roles = eligible_roles if eligible_roles is not None else settings.payroll_eligible_roles_list
        self.eligible_roles = [UserRole(role) for role in roles]

    async def find_eligible_employees(self, tenant_id: uuid.UUID) -> List[EligibleEmployee]:
        """
        Active users of the tenant in a payroll role with a positive salary,
        ordered by name.
        """
        result = await self.db.execute(
            select(User)
            .where(
                User.tenant_id == tenant_id,
                User.is_active == True,  # noqa: E712
                User.role.in_(self.eligible_roles),
                User.salary.is_not(None),
                User.salary > 0,
            )
            .order_by(User.name, User.id)
        )
        return [
            EligibleEmployee(
                id=user.id,
                name=user.name,
                employee_code=user.employee_code,
                base_salary=user.salary,
            )
            for user in result.scalars().all()
        ]

    async def get_employee(self, tenant_id: uuid.UUID, employee_id: uuid.UUID) -> Optional[User]:
        """Any user of the tenant, eligible or not."""
        result = await self.db.execute(
            select(User).where(User.id == employee_id, User.tenant_id == tenant_id)
        )
        return result.scalar_one_or_none()
