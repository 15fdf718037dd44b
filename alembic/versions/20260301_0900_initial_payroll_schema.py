"""Initial payroll schema

Revision ID: 20260301_0900_initial_payroll_schema
Revises:
Create Date: 2026-03-01 09:00:00.000000

Creates the tables used by monthly payroll generation:
- tenants: schools
- users: school users; staff carry a monthly salary
- advance_salaries: salary advance requests and their balances
- payrolls: one monthly record per employee (soft deleted)
- advance_deductions: settlement lines linking advances to payrolls
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = '20260301_0900_initial_payroll_schema'
down_revision = None
branch_labels = None
depends_on = None


user_role = sa.Enum(
    'ADMIN', 'TEACHER', 'ACCOUNTANT', 'STAFF', 'STUDENT', 'PARENT',
    name='userrole',
)
advance_status = sa.Enum('PENDING', 'APPROVED', 'REJECTED', name='advancestatus')
deduction_status = sa.Enum('PENDING', 'PARTIAL', 'COMPLETE', name='deductionstatus')
payment_status = sa.Enum('PENDING', 'PAID', 'CANCELLED', name='paymentstatus')
payment_method = sa.Enum('CASH', 'BANK_TRANSFER', 'CHEQUE', 'ONLINE', name='paymentmethod')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create payroll tables."""

    op.create_table(
        'tenants',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('code', sa.String(50), nullable=False, comment='Short school code e.g. GHS-01'),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_tenants'),
        sa.UniqueConstraint('code', name='uq_tenants_code'),
    )
    op.create_index('ix_tenants_code', 'tenants', ['code'])

    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('employee_code', sa.String(50), nullable=True, comment='School-issued staff number'),
        sa.Column('role', user_role, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('salary', sa.Numeric(15, 2), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
        sa.ForeignKeyConstraint(
            ['tenant_id'], ['tenants.id'],
            name='fk_users_tenant_id_tenants', ondelete='CASCADE',
        ),
        sa.UniqueConstraint('tenant_id', 'email', name='uq_users_tenant_email'),
    )
    op.create_index('ix_users_tenant_id', 'users', ['tenant_id'])
    op.create_index('ix_users_email', 'users', ['email'])

    op.create_table(
        'advance_salaries',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('employee_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('amount', sa.Numeric(15, 2), nullable=False, comment='Original advance amount'),
        sa.Column('reason', sa.String(500), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('request_date', sa.Date(), nullable=False, comment='Settlement order key (oldest first)'),
        sa.Column('status', advance_status, nullable=False),
        sa.Column('approved_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejection_reason', sa.String(500), nullable=True),
        sa.Column('deduction_status', deduction_status, nullable=False),
        sa.Column('amount_deducted', sa.Numeric(15, 2), nullable=False),
        sa.Column('remaining_amount', sa.Numeric(15, 2), nullable=False),
        sa.Column('created_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('updated_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_advance_salaries'),
        sa.ForeignKeyConstraint(
            ['tenant_id'], ['tenants.id'],
            name='fk_advance_salaries_tenant_id_tenants', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['employee_id'], ['users.id'],
            name='fk_advance_salaries_employee_id_users', ondelete='CASCADE',
        ),
    )
    op.create_index('ix_advance_salaries_tenant_id', 'advance_salaries', ['tenant_id'])
    op.create_index('ix_advance_salaries_employee_id', 'advance_salaries', ['employee_id'])
    op.create_index('ix_advance_salaries_request_date', 'advance_salaries', ['request_date'])
    op.create_index('ix_advance_salaries_status', 'advance_salaries', ['status'])
    op.create_index('ix_advance_salaries_deduction_status', 'advance_salaries', ['deduction_status'])

    op.create_table(
        'payrolls',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('employee_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('base_salary', sa.Numeric(15, 2), nullable=False, comment='Salary snapshot at generation time'),
        sa.Column('bonuses', sa.Numeric(15, 2), nullable=False),
        sa.Column('other_deductions', sa.Numeric(15, 2), nullable=False),
        sa.Column('total_advance_deduction', sa.Numeric(15, 2), nullable=False),
        sa.Column('leave_days', sa.Integer(), nullable=False),
        sa.Column('leave_deduction', sa.Numeric(15, 2), nullable=False),
        sa.Column('net_salary', sa.Numeric(15, 2), nullable=False),
        sa.Column('payment_status', payment_status, nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=True),
        sa.Column('payment_method', payment_method, nullable=True),
        sa.Column('payment_reference', sa.String(100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('generated_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('generated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_payrolls'),
        sa.ForeignKeyConstraint(
            ['tenant_id'], ['tenants.id'],
            name='fk_payrolls_tenant_id_tenants', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['employee_id'], ['users.id'],
            name='fk_payrolls_employee_id_users', ondelete='CASCADE',
        ),
        sa.CheckConstraint('month >= 1 AND month <= 12', name='ck_payrolls_month_range'),
        sa.CheckConstraint('year >= 2000 AND year <= 2100', name='ck_payrolls_year_range'),
    )
    op.create_index('ix_payrolls_tenant_id', 'payrolls', ['tenant_id'])
    op.create_index('ix_payrolls_employee_id', 'payrolls', ['employee_id'])
    op.create_index('ix_payrolls_payment_status', 'payrolls', ['payment_status'])
    op.create_index('ix_payrolls_is_deleted', 'payrolls', ['is_deleted'])
    op.create_index('ix_payrolls_tenant_period', 'payrolls', ['tenant_id', 'year', 'month'])
    # One live record per employee per period; deleted rows do not count
    op.create_index(
        'uq_payrolls_tenant_employee_period_active',
        'payrolls',
        ['tenant_id', 'employee_id', 'month', 'year'],
        unique=True,
        postgresql_where=sa.text('is_deleted = false'),
    )

    op.create_table(
        'advance_deductions',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('tenant_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('advance_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('payroll_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('amount', sa.Numeric(15, 2), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('deducted_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reversed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reversed_by_id', postgresql.UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_advance_deductions'),
        sa.ForeignKeyConstraint(
            ['tenant_id'], ['tenants.id'],
            name='fk_advance_deductions_tenant_id_tenants', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['advance_id'], ['advance_salaries.id'],
            name='fk_advance_deductions_advance_id_advance_salaries', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['payroll_id'], ['payrolls.id'],
            name='fk_advance_deductions_payroll_id_payrolls', ondelete='CASCADE',
        ),
    )
    op.create_index('ix_advance_deductions_tenant_id', 'advance_deductions', ['tenant_id'])
    op.create_index('ix_advance_deductions_advance_id', 'advance_deductions', ['advance_id'])
    op.create_index('ix_advance_deductions_payroll_id', 'advance_deductions', ['payroll_id'])


def downgrade() -> None:
    """Drop payroll tables."""
    op.drop_table('advance_deductions')
    op.drop_table('payrolls')
    op.drop_table('advance_salaries')
    op.drop_table('users')
    op.drop_table('tenants')

    bind = op.get_bind()
    for enum_type in (payment_method, payment_status, deduction_status, advance_status, user_role):
        enum_type.drop(bind, checkfirst=True)
