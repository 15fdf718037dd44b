"""
EduPay - Routers Package

FastAPI route handlers.

Routers:
- payroll: Monthly payroll generation, records and summaries
- advance_salary: Salary advance requests and approval
"""

from app.routers import payroll, advance_salary

__all__ = ["payroll", "advance_salary"]
