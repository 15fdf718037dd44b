"""
EduPay - Advance Salary Service Tests

Tests for the advance request and approval workflow.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from app.models.advance_salary import AdvanceStatus, DeductionStatus
from app.services.advance_salary_service import AdvanceSalaryService
from app.services.payroll_service import PayrollService
from app.utils.error_handling import (
    AdvanceNotFoundException,
    BusinessRuleException,
    EmployeeNotFoundException,
    ErrorCode,
    InvalidAmountException,
)


class TestAdvanceRequests:
    """Test cases for creating and reading advances."""

    @pytest.mark.asyncio
    async def test_create_advance(self, db_session, test_tenant, admin_user, teacher):
        service = AdvanceSalaryService(db_session)

        advance = await service.create_advance(
            tenant_id=test_tenant.id,
            employee_id=teacher.id,
            amount=Decimal("450"),
            reason="Rent",
            created_by=admin_user.id,
            request_date=date(2025, 2, 3),
        )

        assert advance.status == AdvanceStatus.PENDING
        assert advance.deduction_status == DeductionStatus.PENDING
        assert advance.amount == Decimal("450.00")
        assert advance.remaining_amount == Decimal("450.00")
        assert advance.amount_deducted == Decimal("0.00")
        assert advance.request_date == date(2025, 2, 3)
        assert advance.created_by_id == admin_user.id
        assert advance.employee_name == "Tunde Teacher"

    @pytest.mark.asyncio
    async def test_request_date_defaults_to_today(self, db_session, test_tenant, teacher):
        advance = await AdvanceSalaryService(db_session).create_advance(
            test_tenant.id, teacher.id, Decimal("100"), "Transport",
        )

        assert advance.request_date == date.today()

    @pytest.mark.asyncio
    async def test_employee_of_other_school(self, db_session, test_tenant, other_tenant, make_employee):
        outsider = await make_employee("Elsewhere Efe", tenant=other_tenant)

        with pytest.raises(EmployeeNotFoundException):
            await AdvanceSalaryService(db_session).create_advance(
                test_tenant.id, outsider.id, Decimal("100"), "Rent",
            )

    @pytest.mark.asyncio
    async def test_non_positive_amount(self, db_session, test_tenant, teacher):
        with pytest.raises(InvalidAmountException):
            await AdvanceSalaryService(db_session).create_advance(
                test_tenant.id, teacher.id, Decimal("0"), "Rent",
            )

    @pytest.mark.asyncio
    async def test_get_unknown_advance(self, db_session, test_tenant):
        with pytest.raises(AdvanceNotFoundException):
            await AdvanceSalaryService(db_session).get_advance(test_tenant.id, uuid4())


class TestAdvanceApproval:
    """Test cases for approve and reject."""

    @pytest.mark.asyncio
    async def test_approve(self, db_session, test_tenant, admin_user, teacher, make_advance):
        pending = await make_advance(
            teacher, Decimal("300.00"), date(2025, 1, 2), status=AdvanceStatus.PENDING,
        )
        service = AdvanceSalaryService(db_session)

        advance = await service.approve_advance(test_tenant.id, pending.id, admin_user.id)

        assert advance.status == AdvanceStatus.APPROVED
        assert advance.approved_by_id == admin_user.id
        assert advance.approved_at is not None
        assert advance.is_open is True

    @pytest.mark.asyncio
    async def test_approved_advance_is_settled_by_payroll(
        self, db_session, test_tenant, admin_user, teacher, make_advance,
    ):
        pending = await make_advance(
            teacher, Decimal("300.00"), date(2025, 1, 2), status=AdvanceStatus.PENDING,
        )
        service = AdvanceSalaryService(db_session)
        await service.approve_advance(test_tenant.id, pending.id, admin_user.id)

        await PayrollService(db_session).generate_monthly_payroll(test_tenant.id, 1, 2025)

        advance = await service.get_advance(test_tenant.id, pending.id)
        assert advance.remaining_amount == Decimal("0.00")
        assert advance.deduction_status == DeductionStatus.COMPLETE
        assert len(advance.deductions) == 1
        assert advance.deductions[0].amount == Decimal("300.00")

    @pytest.mark.asyncio
    async def test_reject(self, db_session, test_tenant, admin_user, teacher, make_advance):
        pending = await make_advance(
            teacher, Decimal("300.00"), date(2025, 1, 2), status=AdvanceStatus.PENDING,
        )

        advance = await AdvanceSalaryService(db_session).reject_advance(
            test_tenant.id, pending.id, admin_user.id, reason="Too many open advances",
        )

        assert advance.status == AdvanceStatus.REJECTED
        assert advance.rejected_by_id == admin_user.id
        assert advance.rejection_reason == "Too many open advances"

    @pytest.mark.asyncio
    async def test_cannot_approve_twice(self, db_session, test_tenant, admin_user, teacher, make_advance):
        approved = await make_advance(teacher, Decimal("300.00"), date(2025, 1, 2))
        service = AdvanceSalaryService(db_session)

        with pytest.raises(BusinessRuleException) as exc_info:
            await service.approve_advance(test_tenant.id, approved.id, admin_user.id)

        assert exc_info.value.code == ErrorCode.ALREADY_PROCESSED

        with pytest.raises(BusinessRuleException):
            await service.reject_advance(test_tenant.id, approved.id, admin_user.id, reason="No")


class TestAdvanceReporting:
    """Listing and statistics."""

    @pytest.mark.asyncio
    async def test_list_filters(self, db_session, test_tenant, teacher, make_employee, make_advance):
        colleague = await make_employee("Chioma Colleague")
        await make_advance(teacher, Decimal("100.00"), date(2025, 1, 1))
        latest = await make_advance(teacher, Decimal("200.00"), date(2025, 3, 1), status=AdvanceStatus.PENDING)
        await make_advance(colleague, Decimal("300.00"), date(2025, 2, 1))
        service = AdvanceSalaryService(db_session)

        advances, total = await service.list_advances(test_tenant.id)
        assert total == 3
        assert advances[0].id == latest.id

        _, total = await service.list_advances(test_tenant.id, status=AdvanceStatus.APPROVED)
        assert total == 2

        advances, total = await service.list_advances(test_tenant.id, employee_id=colleague.id)
        assert total == 1
        assert advances[0].employee_id == colleague.id

        _, total = await service.list_advances(test_tenant.id, page=2, limit=2)
        assert total == 3

        employee_advances = await service.get_employee_advances(test_tenant.id, teacher.id)
        assert [a.request_date for a in employee_advances] == [date(2025, 3, 1), date(2025, 1, 1)]

    @pytest.mark.asyncio
    async def test_stats(self, db_session, test_tenant, teacher, make_advance):
        await make_advance(teacher, Decimal("800.00"), date(2025, 1, 1))
        await make_advance(teacher, Decimal("200.00"), date(2025, 1, 2))
        await make_advance(teacher, Decimal("50.00"), date(2025, 1, 3), status=AdvanceStatus.PENDING)
        await make_advance(teacher, Decimal("75.00"), date(2025, 1, 4), status=AdvanceStatus.REJECTED)
        await PayrollService(db_session).generate_monthly_payroll(test_tenant.id, 1, 2025)

        stats = await AdvanceSalaryService(db_session).get_advance_stats(test_tenant.id)

        assert stats["pending_count"] == 1
        assert stats["approved_count"] == 2
        assert stats["rejected_count"] == 1
        assert stats["total_approved_amount"] == Decimal("1000.00")
        # 500 settled from the first advance, 200 from the second
        assert stats["total_outstanding"] == Decimal("300.00")
