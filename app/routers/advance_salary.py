"""
EduPay - Advance Salary Router

API endpoints for salary advance requests and their approval.
Staff may request advances for themselves; everything else is admin only.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_async_session
from app.dependencies import get_current_active_user, require_admin
from app.models.advance_salary import AdvanceStatus, DeductionStatus
from app.models.user import User, UserRole
from app.services.advance_salary_service import AdvanceSalaryService
from app.services.payroll_service import PayrollService
from app.schemas.advance_salary import (
    AdvanceSalaryCreate,
    AdvanceRejectRequest,
    AdvanceSalaryResponse,
    AdvanceListResponse,
    AdvanceStatsResponse,
)
from app.utils.error_handling import AuthorizationException


router = APIRouter()


@router.get(
    "",
    response_model=AdvanceListResponse,
    summary="List advance requests",
)
async def list_advances(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.payroll_page_size_default, ge=1, le=settings.payroll_page_size_max),
    advance_status: Optional[AdvanceStatus] = Query(None, alias="status"),
    deduction_status: Optional[DeductionStatus] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None, description="Filter by employee"),
    db: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_admin()),
):
    """List advance requests of the school, newest first."""
    service = AdvanceSalaryService(db)
    advances, total = await service.list_advances(
        tenant_id=current_user.tenant_id,
        status=advance_status,
        deduction_status=deduction_status,
        employee_id=employee_id,
        page=page,
        limit=limit,
    )
    return AdvanceListResponse(
        items=[AdvanceSalaryResponse.model_validate(a) for a in advances],
        total=total,
        page=page,
        limit=limit,
        pages=PayrollService.page_count(total, limit),
    )


@router.post(
    "",
    response_model=AdvanceSalaryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request a salary advance",
)
async def create_advance(
    advance_data: AdvanceSalaryCreate,
    db: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(get_current_active_user),
):
    """Request an advance. Only admins may request on behalf of someone else."""
    employee_id = advance_data.employee_id or current_user.id
    if employee_id != current_user.id and current_user.role != UserRole.ADMIN:
        raise AuthorizationException("Only administrators can request advances for other employees")

    service = AdvanceSalaryService(db)
    advance = await service.create_advance(
        tenant_id=current_user.tenant_id,
        employee_id=employee_id,
        amount=advance_data.amount,
        reason=advance_data.reason,
        created_by=current_user.id,
        notes=advance_data.notes,
        request_date=advance_data.request_date,
    )
    return AdvanceSalaryResponse.model_validate(advance)


@router.get(
    "/stats/summary",
    response_model=AdvanceStatsResponse,
    summary="Advance statistics",
)
async def get_advance_stats(
    db: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_admin()),
):
    """Counts by status and outstanding balance of approved advances."""
    service = AdvanceSalaryService(db)
    return AdvanceStatsResponse(**await service.get_advance_stats(current_user.tenant_id))


@router.get(
    "/employee/{employee_id}",
    response_model=List[AdvanceSalaryResponse],
    summary="Advances of an employee",
)
async def get_employee_advances(
    employee_id: uuid.UUID = Path(..., description="Employee ID"),
    db: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(get_current_active_user),
):
    """Admins see anyone's advances; staff only their own."""
    if employee_id != current_user.id and current_user.role != UserRole.ADMIN:
        raise AuthorizationException("Only administrators can view advances of other employees")

    service = AdvanceSalaryService(db)
    advances = await service.get_employee_advances(current_user.tenant_id, employee_id)
    return [AdvanceSalaryResponse.model_validate(a) for a in advances]


@router.get(
    "/{advance_id}",
    response_model=AdvanceSalaryResponse,
    summary="Get advance request",
)
async def get_advance(
    advance_id: uuid.UUID = Path(..., description="Advance ID"),
    db: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_admin()),
):
    """Get an advance with its deduction history."""
    service = AdvanceSalaryService(db)
    advance = await service.get_advance(current_user.tenant_id, advance_id)
    return AdvanceSalaryResponse.model_validate(advance)


@router.put(
    "/{advance_id}/approve",
    response_model=AdvanceSalaryResponse,
    summary="Approve advance request",
)
async def approve_advance(
    advance_id: uuid.UUID = Path(..., description="Advance ID"),
    db: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_admin()),
):
    """Approve a pending advance so payroll runs start settling it."""
    service = AdvanceSalaryService(db)
    advance = await service.approve_advance(
        tenant_id=current_user.tenant_id,
        advance_id=advance_id,
        approved_by=current_user.id,
    )
    return AdvanceSalaryResponse.model_validate(advance)


@router.put(
    "/{advance_id}/reject",
    response_model=AdvanceSalaryResponse,
    summary="Reject advance request",
)
async def reject_advance(
    reject_data: AdvanceRejectRequest,
    advance_id: uuid.UUID = Path(..., description="Advance ID"),
    db: AsyncSession = Depends(get_async_session),
    current_user: User = Depends(require_admin()),
):
    """Reject a pending advance."""
    service = AdvanceSalaryService(db)
    advance = await service.reject_advance(
        tenant_id=current_user.tenant_id,
        advance_id=advance_id,
        rejected_by=current_user.id,
        reason=reject_data.reason,
    )
    return AdvanceSalaryResponse.model_validate(advance)
