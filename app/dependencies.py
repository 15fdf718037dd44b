"""
EduPay - FastAPI Dependencies

Shared dependencies for authentication, database sessions, and RBAC.

This module provides dependency injection for:
1. Database sessions
2. Current user authentication (bearer JWT)
3. Tenant scoping from the authenticated user
4. Role-based access control
"""

import uuid
from typing import List, Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_async_session
from app.models.user import User, UserRole
from app.utils.error_handling import (
    AuthenticationException,
    AuthorizationException,
    ErrorCode,
    InsufficientPermissionsException,
    TokenInvalidException,
)
from app.utils.security import verify_access_token


# HTTP Bearer token security
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_async_session),
) -> User:
    """
    Get the current authenticated user from the bearer token.

    Raises:
        AuthenticationException: No token, or the user no longer exists
        TokenInvalidException: Token is invalid, expired or malformed
    """
    if not credentials:
        raise AuthenticationException("Not authenticated")

    payload = verify_access_token(credentials.credentials)
    if not payload:
        raise TokenInvalidException("Invalid or expired token")

    user_id = payload.get("sub")
    if not user_id:
        raise TokenInvalidException("Invalid token payload")

    try:
        user_uuid = uuid.UUID(user_id)
    except ValueError:
        raise TokenInvalidException("Invalid user ID in token")

    result = await db.execute(select(User).where(User.id == user_uuid))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationException("User not found")

    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """Get current user and verify they are active."""
    if not current_user.is_active:
        raise AuthorizationException(
            "User account is deactivated",
            code=ErrorCode.ACCOUNT_DISABLED,
        )
    return current_user


async def get_current_tenant_id(
    current_user: User = Depends(get_current_active_user),
) -> uuid.UUID:
    """Tenant (school) every query of this request is scoped to."""
    return current_user.tenant_id


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.get("/admin-only")
        async def admin_endpoint(user: User = Depends(require_role([UserRole.ADMIN]))):
            ...
    """
    async def role_checker(
        current_user: User = Depends(get_current_active_user),
    ) -> User:
        if current_user.role not in allowed_roles:
            raise InsufficientPermissionsException(
                "role:" + ",".join(r.value for r in allowed_roles)
            )
        return current_user

    return role_checker


def require_admin():
    """Payroll and advance approval endpoints are admin only."""
    return require_role([UserRole.ADMIN])
