"""
EduPay - Tenant Model

A tenant is one school. Every payroll and advance row is scoped to a tenant.
"""

from typing import TYPE_CHECKING, List

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel

if TYPE_CHECKING:
    from app.models.user import User


class Tenant(BaseModel):
    """School (tenant) that owns employees, advances and payroll records."""

    __tablename__ = "tenants"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
        comment="Short school code e.g. GHS-01",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    users: Mapped[List["User"]] = relationship(
        "User",
        back_populates="tenant",
        lazy="noload",
    )

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, code={self.code})>"
