"""
EduPay - Advance Ledger

Owns every mutation of an advance balance. A balance only changes together
with a deduction line, so ``remaining_amount`` always equals the original
amount minus the active lines.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.advance_salary import (
    AdvanceDeduction,
    AdvanceSalary,
    AdvanceStatus,
    DeductionStatus,
)
from app.models.payroll import Payroll
from app.services.payroll_allocation import OpenAdvance, ZERO, to_money
from app.utils.error_handling import LedgerInvariantViolation

logger = logging.getLogger(__name__)


class AdvanceLedger:
    """Applies and reverses advance deductions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_open_advances(
        self,
        tenant_id: uuid.UUID,
        employee_id: uuid.UUID,
    ) -> List[AdvanceSalary]:
        """
        Approved advances of an employee that still carry a balance,
        oldest request first. Rows are locked for the rest of the unit of work.
        """
        result = await self.db.execute(
            select(AdvanceSalary)
            .where(
                AdvanceSalary.tenant_id == tenant_id,
                AdvanceSalary.employee_id == employee_id,
                AdvanceSalary.status == AdvanceStatus.APPROVED,
                AdvanceSalary.deduction_status.in_(
                    [DeductionStatus.PENDING, DeductionStatus.PARTIAL]
                ),
                AdvanceSalary.remaining_amount > 0,
            )
            .order_by(AdvanceSalary.request_date, AdvanceSalary.created_at)
            .with_for_update()
        )
        return list(result.scalars().all())

    @staticmethod
    def as_open_advances(advances: List[AdvanceSalary]) -> List[OpenAdvance]:
        """Plain balances for the allocation step."""
        return [
            OpenAdvance(
                advance_id=advance.id,
                remaining_amount=advance.remaining_amount,
                request_date=advance.request_date,
                created_at=advance.created_at,
            )
            for advance in advances
        ]

    async def apply_deduction(
        self,
        advance: AdvanceSalary,
        payroll: Payroll,
        amount: Decimal,
        month: int,
        year: int,
        deducted_at: Optional[datetime] = None,
    ) -> AdvanceDeduction:
        """
        Settle ``amount`` of ``advance`` against ``payroll``.

        Raises:
            LedgerInvariantViolation: The advance is not approved, is already
                complete, belongs to someone else, or would be overdrawn.
        """
        amount = to_money(amount)
        remaining = to_money(advance.remaining_amount)

        if advance.status != AdvanceStatus.APPROVED:
            self._violation(advance, "Cannot deduct from an advance that is not approved", amount)
        if advance.deduction_status == DeductionStatus.COMPLETE:
            self._violation(advance, "Cannot deduct from a fully repaid advance", amount)
        if advance.tenant_id != payroll.tenant_id or advance.employee_id != payroll.employee_id:
            self._violation(advance, "Advance does not belong to the payroll employee", amount)
        if amount <= 0:
            self._violation(advance, "Deduction amount must be positive", amount)
        if amount > remaining:
            self._violation(
                advance,
                f"Deduction of {amount} exceeds remaining balance of {remaining}",
                amount,
            )

        line = AdvanceDeduction(
            tenant_id=advance.tenant_id,
            advance_id=advance.id,
            payroll_id=payroll.id,
            amount=amount,
            month=month,
            year=year,
            deducted_at=deducted_at or datetime.now(timezone.utc),
        )
        self.db.add(line)

        advance.amount_deducted = to_money(advance.amount_deducted) + amount
        advance.remaining_amount = to_money(advance.amount) - advance.amount_deducted
        advance.deduction_status = (
            DeductionStatus.COMPLETE
            if advance.remaining_amount == ZERO
            else DeductionStatus.PARTIAL
        )

        await self.db.flush()

        logger.debug(
            f"Deducted {amount} from advance {advance.id} for payroll "
            f"{payroll.id} ({year}-{month:02d}), remaining {advance.remaining_amount}"
        )
        return line

    async def reverse_deductions(
        self,
        payroll: Payroll,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Decimal:
        """
        Reverse every active deduction line of ``payroll`` and give the
        amounts back to their advances. Reversed lines are kept.

        Returns:
            Total amount returned to the advances
        """
        result = await self.db.execute(
            select(AdvanceDeduction).where(
                AdvanceDeduction.payroll_id == payroll.id,
                AdvanceDeduction.reversed_at.is_(None),
            )
        )
        lines = list(result.scalars().all())
        if not lines:
            return ZERO

        advance_ids = {line.advance_id for line in lines}
        advances_result = await self.db.execute(
            select(AdvanceSalary)
            .where(AdvanceSalary.id.in_(advance_ids))
            .with_for_update()
        )
        advances = {advance.id: advance for advance in advances_result.scalars().all()}

        now = datetime.now(timezone.utc)
        total = ZERO

        for line in lines:
            advance = advances[line.advance_id]
            amount = to_money(line.amount)
            deducted = to_money(advance.amount_deducted) - amount

            if deducted < 0:
                self._violation(
                    advance,
                    f"Reversing {amount} would make the deducted total negative",
                    amount,
                )

            line.reversed_at = now
            line.reversed_by_id = actor_id

            advance.amount_deducted = deducted
            advance.remaining_amount = to_money(advance.amount) - deducted
            advance.deduction_status = (
                DeductionStatus.PENDING if deducted == ZERO else DeductionStatus.PARTIAL
            )
            total += amount

        await self.db.flush()

        logger.info(
            f"Reversed {len(lines)} advance deduction(s) totalling {total} "
            f"for payroll {payroll.id}"
        )
        return to_money(total)

    async def get_deduction_history(
        self,
        advance_id: uuid.UUID,
        include_reversed: bool = True,
    ) -> List[AdvanceDeduction]:
        """Deduction lines of an advance, oldest first."""
        query = select(AdvanceDeduction).where(AdvanceDeduction.advance_id == advance_id)
        if not include_reversed:
            query = query.where(AdvanceDeduction.reversed_at.is_(None))
        result = await self.db.execute(query.order_by(AdvanceDeduction.deducted_at))
        return list(result.scalars().all())

    def _violation(self, advance: AdvanceSalary, message: str, amount: Decimal) -> None:
        details = {
            "advance_id": str(advance.id),
            "employee_id": str(advance.employee_id),
            "amount": str(amount),
            "remaining_amount": str(advance.remaining_amount),
            "status": advance.status.value,
            "deduction_status": advance.deduction_status.value,
        }
        logger.critical(f"Advance ledger invariant violated: {message}", extra=details)
        raise LedgerInvariantViolation(message, details=details)
