"""
EduPay - Advance Allocation

Decides how much of each open salary advance is settled against one month's
pay and what the employee takes home.

Rules:
- Advances are settled oldest first (request date, then creation time).
- A single advance may take at most ``cap_ratio`` of the base salary
  (50% by default).
- An advance is settled only if the running total stays within the base
  salary; otherwise it is left untouched for a later month.
- Net salary = base + bonuses - other deductions - advances, floored at 0.

The module does no I/O.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional

from app.utils.error_handling import InvalidAmountException


TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")

# Share of the base salary a single advance may consume in one month
DEFAULT_ADVANCE_CAP_RATIO = Decimal("0.5")


def to_money(value) -> Decimal:
    """Quantize to 2 decimal places, rounding half up."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class OpenAdvance:
    """Balance of an approved advance that still has something to settle."""
    advance_id: uuid.UUID
    remaining_amount: Decimal
    request_date: date
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class DeductionLine:
    """Amount to take from one advance this month."""
    advance_id: uuid.UUID
    amount: Decimal
    deducted_at: datetime


@dataclass
class AllocationResult:
    """Outcome of allocating one employee's pay for a period."""
    deduction_lines: List[DeductionLine] = field(default_factory=list)
    total_advance_deduction: Decimal = ZERO
    net_salary: Decimal = ZERO


def fifo_order(open_advances: Iterable[OpenAdvance]) -> List[OpenAdvance]:
    """Oldest request first; ties broken by creation time."""
    return sorted(
        open_advances,
        key=lambda a: (
            a.request_date,
            a.created_at or datetime.min.replace(tzinfo=timezone.utc),
        ),
    )


def allocate(
    base_salary: Decimal,
    bonuses: Decimal,
    other_deductions: Decimal,
    open_advances: Iterable[OpenAdvance],
    now: Optional[datetime] = None,
    cap_ratio: Decimal = DEFAULT_ADVANCE_CAP_RATIO,
) -> AllocationResult:
    """
    Allocate open advances against a month's salary.

    Args:
        base_salary: Monthly salary snapshot, must be > 0
        bonuses: Bonuses for the period, >= 0
        other_deductions: Non-advance deductions for the period, >= 0
        open_advances: Approved advances with a remaining balance
        now: Timestamp stamped on the deduction lines
        cap_ratio: Per-advance share of base salary, in (0, 1]

    Returns:
        AllocationResult with the accepted lines, their total and net salary

    Raises:
        InvalidAmountException: On non-positive base or negative amounts
    """
    base = to_money(base_salary)
    bonuses = to_money(bonuses)
    other_deductions = to_money(other_deductions)
    cap_ratio = Decimal(str(cap_ratio))

    if base <= 0:
        raise InvalidAmountException(base_salary, field="base_salary")
    if bonuses < 0:
        raise InvalidAmountException(
            bonuses, field="bonuses", message=f"Bonuses cannot be negative: {bonuses}",
        )
    if other_deductions < 0:
        raise InvalidAmountException(
            other_deductions,
            field="other_deductions",
            message=f"Deductions cannot be negative: {other_deductions}",
        )
    if cap_ratio <= 0 or cap_ratio > 1:
        raise InvalidAmountException(
            cap_ratio,
            field="cap_ratio",
            message=f"Advance cap ratio must be in (0, 1]: {cap_ratio}",
        )

    stamp = now or datetime.now(timezone.utc)
    per_advance_cap = to_money(base * cap_ratio)

    result = AllocationResult()
    running = ZERO

    for advance in fifo_order(open_advances):
        remaining = to_money(advance.remaining_amount)
        candidate = min(remaining, per_advance_cap)

        if candidate <= 0:
            continue
        # Aggregate cap: never take more than the base salary in total
        if running + candidate > base:
            continue

        result.deduction_lines.append(
            DeductionLine(advance_id=advance.advance_id, amount=candidate, deducted_at=stamp)
        )
        running += candidate

    result.total_advance_deduction = to_money(running)
    result.net_salary = to_money(
        max(ZERO, base + bonuses - other_deductions - result.total_advance_deduction)
    )
    return result
