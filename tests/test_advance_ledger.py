"""
EduPay - Advance Ledger Tests

Tests for applying and reversing advance deductions.
"""

import logging
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from app.models.advance_salary import AdvanceStatus, DeductionStatus
from app.models.payroll import Payroll, PaymentStatus
from app.services.advance_ledger import AdvanceLedger
from app.utils.error_handling import LedgerInvariantViolation


async def create_payroll(db_session, employee, month=1, year=2025) -> Payroll:
    payroll = Payroll(
        id=uuid4(),
        tenant_id=employee.tenant_id,
        employee_id=employee.id,
        month=month,
        year=year,
        base_salary=employee.salary,
        bonuses=Decimal("0.00"),
        other_deductions=Decimal("0.00"),
        total_advance_deduction=Decimal("0.00"),
        leave_days=0,
        leave_deduction=Decimal("0.00"),
        net_salary=employee.salary,
        payment_status=PaymentStatus.PENDING,
    )
    db_session.add(payroll)
    await db_session.commit()
    return payroll


class TestApplyDeduction:
    """Test cases for AdvanceLedger.apply_deduction."""

    @pytest.mark.asyncio
    async def test_partial_then_complete(self, db_session, teacher, make_advance):
        """Balances move with each line until the advance is repaid."""
        advance = await make_advance(teacher, Decimal("800.00"), date(2025, 1, 3))
        january = await create_payroll(db_session, teacher, month=1)
        february = await create_payroll(db_session, teacher, month=2)
        ledger = AdvanceLedger(db_session)

        await ledger.apply_deduction(advance, january, Decimal("500.00"), 1, 2025)

        assert advance.amount_deducted == Decimal("500.00")
        assert advance.remaining_amount == Decimal("300.00")
        assert advance.deduction_status == DeductionStatus.PARTIAL

        await ledger.apply_deduction(advance, february, Decimal("300.00"), 2, 2025)
        await db_session.commit()

        assert advance.amount_deducted == Decimal("800.00")
        assert advance.remaining_amount == Decimal("0.00")
        assert advance.deduction_status == DeductionStatus.COMPLETE

        history = await ledger.get_deduction_history(advance.id)
        assert [line.amount for line in history] == [Decimal("500.00"), Decimal("300.00")]
        assert [line.payroll_id for line in history] == [january.id, february.id]

    @pytest.mark.asyncio
    async def test_overdraw_is_rejected(self, db_session, teacher, make_advance, caplog):
        advance = await make_advance(teacher, Decimal("800.00"), date(2025, 1, 3))
        payroll = await create_payroll(db_session, teacher)
        ledger = AdvanceLedger(db_session)

        with caplog.at_level(logging.CRITICAL, logger="app.services.advance_ledger"):
            with pytest.raises(LedgerInvariantViolation) as exc_info:
                await ledger.apply_deduction(advance, payroll, Decimal("900.00"), 1, 2025)

        assert exc_info.value.status_code == 500
        assert exc_info.value.details["advance_id"] == str(advance.id)
        assert advance.remaining_amount == Decimal("800.00")
        assert any(record.levelno == logging.CRITICAL for record in caplog.records)

    @pytest.mark.asyncio
    async def test_pending_advance_is_rejected(self, db_session, teacher, make_advance):
        advance = await make_advance(
            teacher, Decimal("300.00"), date(2025, 1, 3), status=AdvanceStatus.PENDING,
        )
        payroll = await create_payroll(db_session, teacher)

        with pytest.raises(LedgerInvariantViolation):
            await AdvanceLedger(db_session).apply_deduction(
                advance, payroll, Decimal("100.00"), 1, 2025,
            )

    @pytest.mark.asyncio
    async def test_complete_advance_is_rejected(self, db_session, teacher, make_advance):
        advance = await make_advance(teacher, Decimal("300.00"), date(2025, 1, 3))
        payroll = await create_payroll(db_session, teacher)
        ledger = AdvanceLedger(db_session)
        await ledger.apply_deduction(advance, payroll, Decimal("300.00"), 1, 2025)

        with pytest.raises(LedgerInvariantViolation):
            await ledger.apply_deduction(advance, payroll, Decimal("0.01"), 1, 2025)

    @pytest.mark.asyncio
    async def test_other_employee_payroll_is_rejected(
        self, db_session, teacher, make_employee, make_advance,
    ):
        colleague = await make_employee("Chioma Colleague")
        advance = await make_advance(teacher, Decimal("300.00"), date(2025, 1, 3))
        payroll = await create_payroll(db_session, colleague)

        with pytest.raises(LedgerInvariantViolation):
            await AdvanceLedger(db_session).apply_deduction(
                advance, payroll, Decimal("100.00"), 1, 2025,
            )

    @pytest.mark.asyncio
    async def test_non_positive_amount_is_rejected(self, db_session, teacher, make_advance):
        advance = await make_advance(teacher, Decimal("300.00"), date(2025, 1, 3))
        payroll = await create_payroll(db_session, teacher)

        with pytest.raises(LedgerInvariantViolation):
            await AdvanceLedger(db_session).apply_deduction(
                advance, payroll, Decimal("0.00"), 1, 2025,
            )


class TestReverseDeductions:
    """Test cases for AdvanceLedger.reverse_deductions."""

    @pytest.mark.asyncio
    async def test_reverse_restores_balance(self, db_session, teacher, admin_user, make_advance):
        advance = await make_advance(teacher, Decimal("800.00"), date(2025, 1, 3))
        payroll = await create_payroll(db_session, teacher)
        ledger = AdvanceLedger(db_session)
        await ledger.apply_deduction(advance, payroll, Decimal("500.00"), 1, 2025)
        await db_session.commit()

        total = await ledger.reverse_deductions(payroll, admin_user.id)
        await db_session.commit()

        assert total == Decimal("500.00")
        assert advance.amount_deducted == Decimal("0.00")
        assert advance.remaining_amount == Decimal("800.00")
        assert advance.deduction_status == DeductionStatus.PENDING

        # Reversed lines stay in the ledger
        history = await ledger.get_deduction_history(advance.id)
        assert len(history) == 1
        assert history[0].reversed_at is not None
        assert history[0].reversed_by_id == admin_user.id
        assert await ledger.get_deduction_history(advance.id, include_reversed=False) == []

    @pytest.mark.asyncio
    async def test_reverse_leaves_earlier_months(self, db_session, teacher, make_advance):
        """Only the given payroll's lines are reversed."""
        advance = await make_advance(teacher, Decimal("800.00"), date(2025, 1, 3))
        january = await create_payroll(db_session, teacher, month=1)
        february = await create_payroll(db_session, teacher, month=2)
        ledger = AdvanceLedger(db_session)
        await ledger.apply_deduction(advance, january, Decimal("500.00"), 1, 2025)
        await ledger.apply_deduction(advance, february, Decimal("300.00"), 2, 2025)
        await db_session.commit()

        await ledger.reverse_deductions(february)

        assert advance.amount_deducted == Decimal("500.00")
        assert advance.remaining_amount == Decimal("300.00")
        assert advance.deduction_status == DeductionStatus.PARTIAL

    @pytest.mark.asyncio
    async def test_reverse_without_lines(self, db_session, teacher):
        payroll = await create_payroll(db_session, teacher)

        total = await AdvanceLedger(db_session).reverse_deductions(payroll)

        assert total == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_reverse_twice_is_a_no_op(self, db_session, teacher, make_advance):
        advance = await make_advance(teacher, Decimal("400.00"), date(2025, 1, 3))
        payroll = await create_payroll(db_session, teacher)
        ledger = AdvanceLedger(db_session)
        await ledger.apply_deduction(advance, payroll, Decimal("400.00"), 1, 2025)

        await ledger.reverse_deductions(payroll)
        second = await ledger.reverse_deductions(payroll)

        assert second == Decimal("0.00")
        assert advance.remaining_amount == Decimal("400.00")


class TestOpenAdvances:
    """Test cases for AdvanceLedger.get_open_advances."""

    @pytest.mark.asyncio
    async def test_oldest_first_and_only_open(
        self, db_session, test_tenant, teacher, make_employee, make_advance,
    ):
        later = await make_advance(teacher, Decimal("500.00"), date(2025, 1, 20))
        earlier = await make_advance(teacher, Decimal("800.00"), date(2025, 1, 2))
        await make_advance(
            teacher, Decimal("100.00"), date(2025, 1, 1), status=AdvanceStatus.PENDING,
        )
        await make_advance(
            teacher, Decimal("100.00"), date(2025, 1, 1), status=AdvanceStatus.REJECTED,
        )
        repaid = await make_advance(teacher, Decimal("50.00"), date(2025, 1, 1))
        payroll = await create_payroll(db_session, teacher)
        ledger = AdvanceLedger(db_session)
        await ledger.apply_deduction(repaid, payroll, Decimal("50.00"), 1, 2025)
        await db_session.commit()

        colleague = await make_employee("Chioma Colleague")
        await make_advance(colleague, Decimal("700.00"), date(2025, 1, 1))

        advances = await ledger.get_open_advances(test_tenant.id, teacher.id)

        assert [a.id for a in advances] == [earlier.id, later.id]

    @pytest.mark.asyncio
    async def test_as_open_advances(self, db_session, test_tenant, teacher, make_advance):
        advance = await make_advance(teacher, Decimal("250.00"), date(2025, 3, 1))
        ledger = AdvanceLedger(db_session)

        snapshots = ledger.as_open_advances(await ledger.get_open_advances(test_tenant.id, teacher.id))

        assert len(snapshots) == 1
        assert snapshots[0].advance_id == advance.id
        assert snapshots[0].remaining_amount == Decimal("250.00")
        assert snapshots[0].request_date == date(2025, 3, 1)
