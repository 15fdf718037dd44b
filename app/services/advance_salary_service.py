"""
EduPay - Advance Salary Service

Request, approval and reporting workflow for salary advances. Settlement
against payroll is handled by the advance ledger.
"""

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.advance_salary import AdvanceSalary, AdvanceStatus, DeductionStatus
from app.services.employee_directory import EmployeeDirectory
from app.services.payroll_allocation import ZERO, to_money
from app.utils.error_handling import (
    AdvanceNotFoundException,
    BusinessRuleException,
    EmployeeNotFoundException,
    ErrorCode,
    InvalidAmountException,
)

logger = logging.getLogger(__name__)


class AdvanceSalaryService:
    """Service for salary advance requests."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.directory = EmployeeDirectory(db)

    async def create_advance(
        self,
        tenant_id: uuid.UUID,
        employee_id: uuid.UUID,
        amount: Decimal,
        reason: str,
        created_by: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
        request_date: Optional[date] = None,
    ) -> AdvanceSalary:
        """Record a new advance request in ``pending`` state."""
        amount = to_money(amount)
        if amount <= 0:
            raise InvalidAmountException(amount)

        employee = await self.directory.get_employee(tenant_id, employee_id)
        if not employee:
            raise EmployeeNotFoundException(employee_id)

        advance = AdvanceSalary(
            tenant_id=tenant_id,
            employee_id=employee_id,
            amount=amount,
            reason=reason,
            notes=notes,
            request_date=request_date or date.today(),
            status=AdvanceStatus.PENDING,
            deduction_status=DeductionStatus.PENDING,
            amount_deducted=ZERO,
            remaining_amount=amount,
            created_by_id=created_by,
        )
        self.db.add(advance)
        await self.db.commit()

        logger.info(f"Advance {advance.id} of {amount} requested for employee {employee_id}")
        return await self.get_advance(tenant_id, advance.id)

    async def get_advance(
        self,
        tenant_id: uuid.UUID,
        advance_id: uuid.UUID,
    ) -> AdvanceSalary:
        """Get advance by ID with its deduction history."""
        result = await self.db.execute(
            select(AdvanceSalary)
            .where(
                AdvanceSalary.id == advance_id,
                AdvanceSalary.tenant_id == tenant_id,
            )
            .execution_options(populate_existing=True)
        )
        advance = result.scalar_one_or_none()
        if not advance:
            raise AdvanceNotFoundException(advance_id)
        return advance

    async def list_advances(
        self,
        tenant_id: uuid.UUID,
        status: Optional[AdvanceStatus] = None,
        deduction_status: Optional[DeductionStatus] = None,
        employee_id: Optional[uuid.UUID] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[AdvanceSalary], int]:
        """List advances with filters, newest request first."""
        query = select(AdvanceSalary).where(AdvanceSalary.tenant_id == tenant_id)

        if status:
            query = query.where(AdvanceSalary.status == status)
        if deduction_status:
            query = query.where(AdvanceSalary.deduction_status == deduction_status)
        if employee_id:
            query = query.where(AdvanceSalary.employee_id == employee_id)

        count_result = await self.db.execute(
            select(func.count()).select_from(query.subquery())
        )
        total = count_result.scalar() or 0

        query = query.order_by(AdvanceSalary.request_date.desc(), AdvanceSalary.created_at.desc())
        query = query.offset((page - 1) * limit).limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def approve_advance(
        self,
        tenant_id: uuid.UUID,
        advance_id: uuid.UUID,
        approved_by: uuid.UUID,
    ) -> AdvanceSalary:
        """Approve a pending advance; it becomes open for settlement."""
        advance = await self.get_advance(tenant_id, advance_id)
        self._ensure_pending(advance, "approve")

        advance.status = AdvanceStatus.APPROVED
        advance.approved_by_id = approved_by
        advance.approved_at = datetime.now(timezone.utc)
        advance.updated_by_id = approved_by

        await self.db.commit()
        logger.info(f"Advance {advance_id} approved by {approved_by}")
        return await self.get_advance(tenant_id, advance_id)

    async def reject_advance(
        self,
        tenant_id: uuid.UUID,
        advance_id: uuid.UUID,
        rejected_by: uuid.UUID,
        reason: str,
    ) -> AdvanceSalary:
        """Reject a pending advance."""
        advance = await self.get_advance(tenant_id, advance_id)
        self._ensure_pending(advance, "reject")

        advance.status = AdvanceStatus.REJECTED
        advance.rejected_by_id = rejected_by
        advance.rejected_at = datetime.now(timezone.utc)
        advance.rejection_reason = reason
        advance.updated_by_id = rejected_by

        await self.db.commit()
        logger.info(f"Advance {advance_id} rejected by {rejected_by}")
        return await self.get_advance(tenant_id, advance_id)

    async def get_employee_advances(
        self,
        tenant_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> List[AdvanceSalary]:
        """All advances of an employee, newest request first."""
        result = await self.db.execute(
            select(AdvanceSalary)
            .where(
                AdvanceSalary.tenant_id == tenant_id,
                AdvanceSalary.employee_id == employee_id,
            )
            .order_by(AdvanceSalary.request_date.desc(), AdvanceSalary.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_advance_stats(self, tenant_id: uuid.UUID) -> Dict[str, Any]:
        """Counts by approval state and outstanding balances."""
        counts_result = await self.db.execute(
            select(AdvanceSalary.status, func.count())
            .where(AdvanceSalary.tenant_id == tenant_id)
            .group_by(AdvanceSalary.status)
        )
        counts = {row[0]: row[1] for row in counts_result.all()}

        totals_result = await self.db.execute(
            select(
                func.coalesce(func.sum(AdvanceSalary.amount), 0),
                func.coalesce(func.sum(AdvanceSalary.remaining_amount), 0),
            ).where(
                AdvanceSalary.tenant_id == tenant_id,
                AdvanceSalary.status == AdvanceStatus.APPROVED,
            )
        )
        total_approved, total_outstanding = totals_result.one()

        return {
            "pending_count": counts.get(AdvanceStatus.PENDING, 0),
            "approved_count": counts.get(AdvanceStatus.APPROVED, 0),
            "rejected_count": counts.get(AdvanceStatus.REJECTED, 0),
            "total_approved_amount": to_money(total_approved),
            "total_outstanding": to_money(total_outstanding),
        }

    @staticmethod
    def _ensure_pending(advance: AdvanceSalary, action: str) -> None:
        if advance.status != AdvanceStatus.PENDING:
            raise BusinessRuleException(
                f"Cannot {action} advance in {advance.status.value} status",
                rule="ADVANCE_MUST_BE_PENDING",
                code=ErrorCode.ALREADY_PROCESSED,
                details={"advance_id": str(advance.id), "status": advance.status.value},
            )
