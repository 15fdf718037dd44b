"""
EduPay - Payroll Router

API endpoints for monthly payroll generation and payroll records.
All endpoints are restricted to school administrators.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_async_session
from app.dependencies import require_admin
from app.models.payroll import PaymentStatus
from app.models.user import User
from app.services.payroll_service import (
    GenerationOptions,
    PayrollFilters,
    PayrollService,
)
from app.schemas.payroll import (
    PayrollGenerateRequest,
    PayrollGenerateResponse,
    PayrollUpdate,
    PayrollResponse,
    PayrollListResponse,
    EmployeePayrollHistoryResponse,
    SalarySummaryResponse,
)
from app.utils.error_handling import NoEligibleEmployeesException


router = APIRouter()


@router.get(
    "",
    response_model=PayrollListResponse,
    summary="List payroll records",
)
async def list_payroll_records(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.payroll_page_size_default, ge=1, le=settings.payroll_page_size_max),
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    employee_id: Optional[uuid.UUID] = Query(None, description="Filter by employee"),
    payment_status: Optional[PaymentStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_admin()),
):
    """List non-deleted payroll records of the school, latest period first."""
    service = PayrollService(db)
    records, total = await service.get_payroll_records(
        tenant_id=current_user.tenant_id,
        filters=PayrollFilters(
            month=month,
            year=year,
            employee_id=employee_id,
            payment_status=payment_status,
        ),
        page=page,
        limit=limit,
    )
    return PayrollListResponse(
        items=[PayrollResponse.model_validate(r) for r in records],
        total=total,
        page=page,
        limit=limit,
        pages=PayrollService.page_count(total, limit),
    )


@router.post(
    "/generate",
    response_model=PayrollGenerateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate monthly payroll",
    description="Create payroll records for every active salaried employee. "
                "Existing records are skipped unless overwrite is set.",
)
async def generate_payroll(
    request: PayrollGenerateRequest,
    db: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_admin()),
):
    """Generate payroll for a month."""
    service = PayrollService(db)
    result = await service.generate_monthly_payroll(
        tenant_id=current_user.tenant_id,
        month=request.month,
        year=request.year,
        generated_by=current_user.id,
        options=GenerationOptions(
            overwrite=request.overwrite,
            bonuses=request.bonuses,
            deductions=request.deductions,
        ),
    )

    if not result.success:
        raise NoEligibleEmployeesException(request.month, request.year, message=result.message)

    return PayrollGenerateResponse(
        success=result.success,
        message=result.message,
        created=result.created,
        skipped=result.skipped,
        errors=result.errors,
        records=[PayrollResponse.model_validate(r) for r in result.records],
    )


@router.get(
    "/employee/{employee_id}",
    response_model=EmployeePayrollHistoryResponse,
    summary="Employee payroll history",
)
async def get_employee_payroll_history(
    employee_id: uuid.UUID = Path(..., description="Employee ID"),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    db: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_admin()),
):
    """Get payroll history of an employee, newest period first."""
    service = PayrollService(db)
    records = await service.get_employee_payroll_history(
        employee_id=employee_id,
        tenant_id=current_user.tenant_id,
        year=year,
    )
    return EmployeePayrollHistoryResponse(
        employee_id=employee_id,
        year=year,
        items=[PayrollResponse.model_validate(r) for r in records],
    )


@router.get(
    "/summary/{year}/{month}",
    response_model=SalarySummaryResponse,
    summary="Salary summary for a period",
)
async def get_salary_summary(
    year: int = Path(..., ge=2000, le=2100),
    month: int = Path(..., ge=1, le=12),
    db: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_admin()),
):
    """Get totals of the payroll records of a month."""
    service = PayrollService(db)
    summary = await service.get_salary_summary(current_user.tenant_id, month, year)
    return SalarySummaryResponse(**summary)


@router.get(
    "/{payroll_id}",
    response_model=PayrollResponse,
    summary="Get payroll record",
)
async def get_payroll(
    payroll_id: uuid.UUID = Path(..., description="Payroll record ID"),
    db: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_admin()),
):
    """Get a payroll record with its advance deductions."""
    service = PayrollService(db)
    payroll = await service.get_payroll(current_user.tenant_id, payroll_id)
    return PayrollResponse.model_validate(payroll)


@router.put(
    "/{payroll_id}",
    response_model=PayrollResponse,
    summary="Update payroll record",
)
async def update_payroll(
    payroll_data: PayrollUpdate,
    payroll_id: uuid.UUID = Path(..., description="Payroll record ID"),
    db: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_admin()),
):
    """Edit amounts or payment details; net salary is recomputed."""
    service = PayrollService(db)
    payroll = await service.update_payroll(
        tenant_id=current_user.tenant_id,
        payroll_id=payroll_id,
        data=payroll_data.model_dump(exclude_unset=True),
        updated_by=current_user.id,
    )
    return PayrollResponse.model_validate(payroll)


@router.delete(
    "/{payroll_id}",
    summary="Delete payroll record",
)
async def delete_payroll(
    payroll_id: uuid.UUID = Path(..., description="Payroll record ID"),
    db: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_admin()),
):
    """Soft delete a payroll record and return its advance deductions."""
    service = PayrollService(db)
    await service.delete_payroll(
        tenant_id=current_user.tenant_id,
        payroll_id=payroll_id,
        deleted_by=current_user.id,
    )
    return {"success": True, "message": "Payroll record deleted successfully"}
