"""
EduPay - Payroll Service

Monthly payroll generation for schools, with settlement of approved salary
advances, plus the read and administrative edit paths for payroll records.

Generation rules:
1. One non-deleted record per employee per period. Re-running a period skips
   employees that already have a record unless overwrite is requested.
2. Every employee is processed in its own unit of work (SAVEPOINT) and
   committed on success; a failure is reported for that employee only.
3. Overwriting first returns the old record's advance deductions to the
   advance ledger, then allocates again. Paid records are never overwritten.
"""

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.models.base import utcnow
from app.models.payroll import Payroll, PaymentStatus
from app.services.advance_ledger import AdvanceLedger
from app.services.employee_directory import EmployeeDirectory, EligibleEmployee
from app.services.payroll_allocation import ZERO, allocate, to_money
from app.utils.error_handling import (
    AppException,
    BusinessRuleException,
    ErrorCode,
    InvalidPeriodException,
    LedgerInvariantViolation,
    PayrollRecordNotFoundException,
    ValidationException,
)

logger = logging.getLogger(__name__)


NO_ELIGIBLE_EMPLOYEES_MESSAGE = "No active employees with salary found"

# Fields an administrator may change on an existing record
EDITABLE_FIELDS = (
    "base_salary",
    "bonuses",
    "other_deductions",
    "leave_days",
    "leave_deduction",
    "payment_status",
    "payment_date",
    "payment_method",
    "payment_reference",
    "notes",
)
MONEY_FIELDS = ("base_salary", "bonuses", "other_deductions", "leave_deduction")


# ===========================================
# GENERATION TYPES
# ===========================================

def _as_employee_id(key: Any, field_name: str) -> uuid.UUID:
    if isinstance(key, uuid.UUID):
        return key
    try:
        return uuid.UUID(str(key))
    except ValueError:
        raise ValidationException(
            f"Invalid employee id in {field_name}: {key}",
            field=field_name,
            code=ErrorCode.INVALID_INPUT,
        )


@dataclass
class GenerationOptions:
    """
    Per-run options. Amount maps are keyed by employee id; string keys in
    any form ``uuid.UUID`` accepts are normalised on construction.
    """
    overwrite: bool = False
    bonuses: Dict[uuid.UUID, Decimal] = field(default_factory=dict)
    deductions: Dict[uuid.UUID, Decimal] = field(default_factory=dict)

    def __post_init__(self):
        self.bonuses = {
            _as_employee_id(k, "bonuses"): v for k, v in self.bonuses.items()
        }
        self.deductions = {
            _as_employee_id(k, "deductions"): v for k, v in self.deductions.items()
        }

    def bonus_for(self, employee_id: uuid.UUID) -> Decimal:
        return to_money(self.bonuses.get(employee_id, ZERO))

    def deduction_for(self, employee_id: uuid.UUID) -> Decimal:
        return to_money(self.deductions.get(employee_id, ZERO))

    def check_employees(self, employee_ids: Iterable[uuid.UUID]) -> None:
        """
        Raises:
            ValidationException: An amount is keyed by someone who is not
                being paid this run.
        """
        known = set(employee_ids)
        for field_name, amounts in (("bonuses", self.bonuses), ("deductions", self.deductions)):
            unknown = sorted(str(k) for k in amounts if k not in known)
            if unknown:
                raise ValidationException(
                    f"{field_name.capitalize()} given for employees not eligible for payroll: "
                    f"{', '.join(unknown)}",
                    field=field_name,
                    code=ErrorCode.INVALID_INPUT,
                    details={"employee_ids": unknown},
                )


@dataclass(frozen=True)
class EmployeeGenerated:
    employee: EligibleEmployee
    payroll_id: uuid.UUID


@dataclass(frozen=True)
class EmployeeSkipped:
    employee: EligibleEmployee
    reason: str


@dataclass(frozen=True)
class EmployeeFailed:
    employee: EligibleEmployee
    error: str


EmployeeOutcome = Union[EmployeeGenerated, EmployeeSkipped, EmployeeFailed]


@dataclass
class BatchResult:
    """Outcome of one generation run."""
    success: bool
    message: str
    created: int = 0
    skipped: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    records: List[Payroll] = field(default_factory=list)
    generated_ids: List[uuid.UUID] = field(default_factory=list)

    def add(self, outcome: EmployeeOutcome) -> None:
        """Fold one employee's outcome into the batch totals."""
        if isinstance(outcome, EmployeeGenerated):
            self.created += 1
            self.generated_ids.append(outcome.payroll_id)
        elif isinstance(outcome, EmployeeSkipped):
            self.skipped += 1
        else:
            self.errors.append({
                "employee_id": outcome.employee.id,
                "employee_code": outcome.employee.employee_code,
                "name": outcome.employee.name,
                "error": outcome.error,
            })


@dataclass
class PayrollFilters:
    """Filters for listing payroll records."""
    month: Optional[int] = None
    year: Optional[int] = None
    employee_id: Optional[uuid.UUID] = None
    payment_status: Optional[PaymentStatus] = None


def validate_period(month: int, year: int) -> None:
    if not (1 <= month <= 12) or not (2000 <= year <= 2100):
        raise InvalidPeriodException(month, year)


def compute_net_salary(
    base_salary: Decimal,
    bonuses: Decimal,
    other_deductions: Decimal,
    total_advance_deduction: Decimal,
    leave_deduction: Decimal = ZERO,
) -> Decimal:
    """Net pay of a record, floored at zero."""
    net = (
        to_money(base_salary)
        + to_money(bonuses)
        - to_money(other_deductions)
        - to_money(total_advance_deduction)
        - to_money(leave_deduction)
    )
    return to_money(max(ZERO, net))


class PayrollService:
    """
    Payroll service for generating and maintaining monthly salary records.
    """

    def __init__(self, db: AsyncSession, cap_ratio: Optional[Decimal] = None):
        self.db = db
        self.directory = EmployeeDirectory(db)
        self.ledger = AdvanceLedger(db)
        self.cap_ratio = cap_ratio if cap_ratio is not None else settings.advance_deduction_cap_ratio

    # ===========================================
    # GENERATION
    # ===========================================

    async def generate_monthly_payroll(
        self,
        tenant_id: uuid.UUID,
        month: int,
        year: int,
        generated_by: Optional[uuid.UUID] = None,
        options: Optional[GenerationOptions] = None,
    ) -> BatchResult:
        """
        Generate payroll records for every eligible employee of a school.

        Employees are processed one at a time; each one is committed as soon
        as it succeeds, so an interrupted run can simply be repeated.

        Returns:
            BatchResult; ``success`` is False only when nobody is eligible.

        Raises:
            InvalidPeriodException: Month or year out of range
            ValidationException: A bonus or deduction names someone who is not
                eligible for payroll
        """
        validate_period(month, year)
        options = options or GenerationOptions()

        employees = await self.directory.find_eligible_employees(tenant_id)
        if not employees:
            logger.info(f"No eligible employees for tenant {tenant_id}, {year}-{month:02d}")
            return BatchResult(success=False, message=NO_ELIGIBLE_EMPLOYEES_MESSAGE)

        options.check_employees(employee.id for employee in employees)

        logger.info(
            f"Generating payroll for tenant {tenant_id}, {year}-{month:02d}: "
            f"{len(employees)} employee(s), overwrite={options.overwrite}"
        )

        result = BatchResult(success=True, message="")
        for employee in employees:
            outcome = await self._process_employee(
                tenant_id, employee, month, year, generated_by, options,
            )
            result.add(outcome)

        result.records = await self._load_payrolls(result.generated_ids)
        result.message = (
            f"Payroll generated successfully. Created: {result.created}, "
            f"Skipped: {result.skipped}"
        )
        if result.errors:
            result.message += f", Failed: {len(result.errors)}"

        logger.info(
            f"Payroll run finished for tenant {tenant_id}, {year}-{month:02d}: "
            f"created={result.created} skipped={result.skipped} failed={len(result.errors)}"
        )
        return result

    async def _process_employee(
        self,
        tenant_id: uuid.UUID,
        employee: EligibleEmployee,
        month: int,
        year: int,
        generated_by: Optional[uuid.UUID],
        options: GenerationOptions,
    ) -> EmployeeOutcome:
        """Run one employee inside a savepoint and map failures to outcomes."""
        try:
            async with self.db.begin_nested():
                outcome = await self._persist_payroll(
                    tenant_id, employee, month, year, generated_by, options,
                )
            await self.db.commit()
            return outcome
        except IntegrityError as e:
            message = str(e.orig).lower() if e.orig else str(e).lower()
            if "unique" in message or "duplicate" in message:
                logger.debug(f"Payroll for {employee.id} created concurrently, skipping")
                return EmployeeSkipped(employee, "Payroll already exists for this period")
            logger.error(f"Integrity error generating payroll for {employee.id}", exc_info=True)
            return EmployeeFailed(employee, "Data integrity constraint violated")
        except LedgerInvariantViolation as e:
            # Already logged at CRITICAL by the ledger
            return EmployeeFailed(employee, e.message)
        except AppException as e:
            logger.warning(f"Payroll for employee {employee.id} not generated: {e.message}")
            return EmployeeFailed(employee, e.message)
        except Exception as e:
            logger.error(f"Error generating payroll for employee {employee.id}: {e}", exc_info=True)
            return EmployeeFailed(employee, str(e))

    async def _persist_payroll(
        self,
        tenant_id: uuid.UUID,
        employee: EligibleEmployee,
        month: int,
        year: int,
        generated_by: Optional[uuid.UUID],
        options: GenerationOptions,
    ) -> EmployeeOutcome:
        """Allocate and write one employee's record for the period."""
        existing = await self._find_active_record(tenant_id, employee.id, month, year)

        if existing is not None and not options.overwrite:
            logger.debug(f"Payroll for {employee.id} already exists for {year}-{month:02d}")
            return EmployeeSkipped(employee, "Payroll already exists for this period")

        if existing is not None and existing.payment_status == PaymentStatus.PAID:
            raise BusinessRuleException(
                "Cannot overwrite a paid payroll record",
                rule="PAID_PAYROLL_IMMUTABLE",
                code=ErrorCode.CANNOT_MODIFY,
                details={"payroll_id": str(existing.id)},
            )

        if existing is not None:
            await self.ledger.reverse_deductions(existing, generated_by)

        advances = await self.ledger.get_open_advances(tenant_id, employee.id)
        allocation = allocate(
            base_salary=employee.base_salary,
            bonuses=options.bonus_for(employee.id),
            other_deductions=options.deduction_for(employee.id),
            open_advances=self.ledger.as_open_advances(advances),
            cap_ratio=self.cap_ratio,
        )

        now = utcnow()
        if existing is not None:
            payroll = existing
            payroll.base_salary = to_money(employee.base_salary)
            payroll.bonuses = options.bonus_for(employee.id)
            payroll.other_deductions = options.deduction_for(employee.id)
            payroll.total_advance_deduction = allocation.total_advance_deduction
            payroll.leave_days = 0
            payroll.leave_deduction = ZERO
            payroll.net_salary = allocation.net_salary
            payroll.payment_status = PaymentStatus.PENDING
            payroll.payment_date = None
            payroll.updated_by_id = generated_by
            payroll.generated_at = now
        else:
            payroll = Payroll(
                tenant_id=tenant_id,
                employee_id=employee.id,
                month=month,
                year=year,
                base_salary=to_money(employee.base_salary),
                bonuses=options.bonus_for(employee.id),
                other_deductions=options.deduction_for(employee.id),
                total_advance_deduction=allocation.total_advance_deduction,
                leave_days=0,
                leave_deduction=ZERO,
                net_salary=allocation.net_salary,
                payment_status=PaymentStatus.PENDING,
                generated_by_id=generated_by,
                generated_at=now,
            )
            self.db.add(payroll)

        await self.db.flush()

        advances_by_id = {advance.id: advance for advance in advances}
        for line in allocation.deduction_lines:
            await self.ledger.apply_deduction(
                advances_by_id[line.advance_id],
                payroll,
                line.amount,
                month,
                year,
                deducted_at=line.deducted_at,
            )

        return EmployeeGenerated(employee, payroll.id)

    async def _find_active_record(
        self,
        tenant_id: uuid.UUID,
        employee_id: uuid.UUID,
        month: int,
        year: int,
    ) -> Optional[Payroll]:
        result = await self.db.execute(
            select(Payroll)
            .where(
                Payroll.tenant_id == tenant_id,
                Payroll.employee_id == employee_id,
                Payroll.month == month,
                Payroll.year == year,
                Payroll.is_deleted == False,  # noqa: E712
            )
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def _load_payrolls(self, payroll_ids: List[uuid.UUID]) -> List[Payroll]:
        """Reload records with fresh deduction lines, in the given order."""
        if not payroll_ids:
            return []
        result = await self.db.execute(
            select(Payroll)
            .options(
                selectinload(Payroll.advance_deductions),
                selectinload(Payroll.employee),
            )
            .where(Payroll.id.in_(payroll_ids))
            .execution_options(populate_existing=True)
        )
        by_id = {payroll.id: payroll for payroll in result.scalars().all()}
        return [by_id[pid] for pid in payroll_ids if pid in by_id]

    # ===========================================
    # READS
    # ===========================================

    async def get_payroll(
        self,
        tenant_id: uuid.UUID,
        payroll_id: uuid.UUID,
        include_deleted: bool = False,
    ) -> Payroll:
        """Get payroll record by ID."""
        query = (
            select(Payroll)
            .options(
                selectinload(Payroll.advance_deductions),
                selectinload(Payroll.employee),
            )
            .where(
                Payroll.id == payroll_id,
                Payroll.tenant_id == tenant_id,
            )
            .execution_options(populate_existing=True)
        )
        if not include_deleted:
            query = query.where(Payroll.is_deleted == False)  # noqa: E712

        result = await self.db.execute(query)
        payroll = result.scalar_one_or_none()
        if not payroll:
            raise PayrollRecordNotFoundException(payroll_id)
        return payroll

    async def get_payroll_records(
        self,
        tenant_id: uuid.UUID,
        filters: Optional[PayrollFilters] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Payroll], int]:
        """List non-deleted payroll records, latest period first."""
        filters = filters or PayrollFilters()
        query = select(Payroll).where(
            Payroll.tenant_id == tenant_id,
            Payroll.is_deleted == False,  # noqa: E712
        )

        if filters.month:
            query = query.where(Payroll.month == filters.month)
        if filters.year:
            query = query.where(Payroll.year == filters.year)
        if filters.employee_id:
            query = query.where(Payroll.employee_id == filters.employee_id)
        if filters.payment_status:
            query = query.where(Payroll.payment_status == filters.payment_status)

        # Count
        count_result = await self.db.execute(
            select(func.count()).select_from(query.subquery())
        )
        total = count_result.scalar() or 0

        # Paginate
        query = query.order_by(
            Payroll.year.desc(), Payroll.month.desc(), Payroll.created_at.desc(),
        )
        query = query.offset((page - 1) * limit).limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def get_employee_payroll_history(
        self,
        employee_id: uuid.UUID,
        tenant_id: uuid.UUID,
        year: Optional[int] = None,
    ) -> List[Payroll]:
        """Non-deleted records of one employee, newest period first."""
        query = select(Payroll).where(
            Payroll.employee_id == employee_id,
            Payroll.tenant_id == tenant_id,
            Payroll.is_deleted == False,  # noqa: E712
        )
        if year:
            query = query.where(Payroll.year == year)

        result = await self.db.execute(
            query.order_by(Payroll.year.desc(), Payroll.month.desc())
        )
        return list(result.scalars().all())

    async def get_salary_summary(
        self,
        tenant_id: uuid.UUID,
        month: int,
        year: int,
    ) -> Dict[str, Any]:
        """Totals of the non-deleted records of a period."""
        validate_period(month, year)
        period_filter = (
            Payroll.tenant_id == tenant_id,
            Payroll.month == month,
            Payroll.year == year,
            Payroll.is_deleted == False,  # noqa: E712
        )

        totals_result = await self.db.execute(
            select(
                func.count(Payroll.id),
                func.coalesce(func.sum(Payroll.base_salary), 0),
                func.coalesce(func.sum(Payroll.bonuses), 0),
                func.coalesce(func.sum(Payroll.other_deductions), 0),
                func.coalesce(func.sum(Payroll.total_advance_deduction), 0),
                func.coalesce(func.sum(Payroll.net_salary), 0),
            ).where(*period_filter)
        )
        count, base, bonuses, deductions, advances, net = totals_result.one()

        status_result = await self.db.execute(
            select(Payroll.payment_status, func.count())
            .where(*period_filter)
            .group_by(Payroll.payment_status)
        )
        by_status = {row[0]: row[1] for row in status_result.all()}

        return {
            "month": month,
            "year": year,
            "total_employees": count or 0,
            "total_base_salary": to_money(base),
            "total_bonuses": to_money(bonuses),
            "total_deductions": to_money(deductions),
            "total_advance_deductions": to_money(advances),
            "total_net_salary": to_money(net),
            "paid_count": by_status.get(PaymentStatus.PAID, 0),
            "pending_count": by_status.get(PaymentStatus.PENDING, 0),
            "cancelled_count": by_status.get(PaymentStatus.CANCELLED, 0),
        }

    # ===========================================
    # ADMINISTRATIVE EDITS
    # ===========================================

    async def update_payroll(
        self,
        tenant_id: uuid.UUID,
        payroll_id: uuid.UUID,
        data: Dict[str, Any],
        updated_by: Optional[uuid.UUID] = None,
    ) -> Payroll:
        """
        Edit a payroll record and recompute its net salary.

        Marking a record paid without a payment date stamps today's date.
        """
        payroll = await self.get_payroll(tenant_id, payroll_id, include_deleted=True)
        if payroll.is_deleted:
            raise BusinessRuleException(
                "Cannot edit deleted payroll record",
                rule="DELETED_PAYROLL_READ_ONLY",
                code=ErrorCode.CANNOT_MODIFY,
                details={"payroll_id": str(payroll_id)},
                status_code=400,
            )

        for field_name in EDITABLE_FIELDS:
            if field_name not in data:
                continue
            value = data[field_name]
            if field_name in MONEY_FIELDS and value is not None:
                value = to_money(value)
            setattr(payroll, field_name, value)

        if payroll.payment_status == PaymentStatus.PAID and payroll.payment_date is None:
            payroll.payment_date = date.today()

        payroll.net_salary = compute_net_salary(
            payroll.base_salary,
            payroll.bonuses,
            payroll.other_deductions,
            payroll.total_advance_deduction,
            payroll.leave_deduction,
        )
        payroll.updated_by_id = updated_by

        await self.db.commit()
        logger.info(f"Payroll {payroll_id} updated by {updated_by}")
        return await self.get_payroll(tenant_id, payroll_id)

    async def delete_payroll(
        self,
        tenant_id: uuid.UUID,
        payroll_id: uuid.UUID,
        deleted_by: Optional[uuid.UUID] = None,
    ) -> Payroll:
        """
        Soft delete a payroll record. Its advance deductions are reversed so
        the balances can be settled by a later run; the record keeps its
        figures as they were.
        """
        payroll = await self.get_payroll(tenant_id, payroll_id, include_deleted=True)
        if payroll.is_deleted:
            raise BusinessRuleException(
                "Payroll record is already deleted",
                rule="PAYROLL_NOT_DELETED",
                code=ErrorCode.CANNOT_DELETE,
                details={"payroll_id": str(payroll_id)},
                status_code=400,
            )

        await self.ledger.reverse_deductions(payroll, deleted_by)

        payroll.is_deleted = True
        payroll.deleted_at = utcnow()
        payroll.deleted_by_id = deleted_by
        payroll.updated_by_id = deleted_by

        await self.db.commit()
        logger.info(f"Payroll {payroll_id} deleted by {deleted_by}")
        return payroll

    @staticmethod
    def page_count(total: int, limit: int) -> int:
        return math.ceil(total / limit) if limit else 0
