"""finance reporting tables

Revision ID: 7b1f0c9d2e34
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "7b1f0c9d2e34"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'programs',
        sa.Column('program_code', sa.String(length=32), primary_key=True),
        sa.Column('name', sa.String(length=150), nullable=False),
        sa.Column('program_type', sa.String(length=16), nullable=False, server_default='online'),
    )

    op.create_table(
        'students',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('email', sa.String(length=190), nullable=True),
    )

    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('invoice_number', sa.String(length=40), nullable=True),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('class_id', sa.Integer(), nullable=True),
        sa.Column('program_code', sa.String(length=32), sa.ForeignKey('programs.program_code'), nullable=True),
        sa.Column('invoice_type', sa.String(length=40), nullable=False, server_default='tuition'),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('paid_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ux_invoices_invoice_number', 'invoices', ['invoice_number'], unique=True)
    op.create_index('idx_invoice_due', 'invoices', ['due_date'])
    op.create_index('idx_invoice_student', 'invoices', ['student_id'])

    op.create_table(
        'financial_transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('payment_method', sa.String(length=32), nullable=False, server_default='cash'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('transaction_type', sa.String(length=16), nullable=False, server_default='tuition'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('program_code', sa.String(length=32), sa.ForeignKey('programs.program_code'), nullable=True),
        sa.Column('class_id', sa.Integer(), nullable=True),
        sa.Column('invoice_id', sa.Integer(), sa.ForeignKey('invoices.id'), nullable=True),
    )
    op.create_index('idx_ft_status_created', 'financial_transactions', ['status', 'created_at'])
    op.create_index('idx_ft_student', 'financial_transactions', ['student_id'])

    op.create_table(
        'expense_categories',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('category_type', sa.String(length=16), nullable=False, server_default='operational'),
        sa.Column('budget_amount', sa.Numeric(12, 2), nullable=True),
    )

    op.create_table(
        'expense_budgets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('category_id', sa.Integer(), sa.ForeignKey('expense_categories.id'), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        sa.Column('budget_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
    )

    op.create_table(
        'expenses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('category_id', sa.Integer(), sa.ForeignKey('expense_categories.id'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('vendor_name', sa.String(length=150), nullable=True),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
    )
    op.create_index('idx_expense_status_date', 'expenses', ['status', 'payment_date'])

    op.create_table(
        'automated_deductions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('deduction_type', sa.String(length=16), nullable=False),
        sa.Column('percentage', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
    )

    op.create_table(
        'student_financial_status',
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id'), primary_key=True),
        sa.Column('class_id', sa.Integer(), primary_key=True),
        sa.Column('total_fee', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('paid_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('balance', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('is_suspended', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('next_payment_due', sa.Date(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('user_role', sa.String(length=64), nullable=True),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('target', sa.String(length=100), nullable=True),
        sa.Column('detail', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])


def downgrade():
    op.drop_index('ix_audit_logs_action', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_table('student_financial_status')
    op.drop_table('automated_deductions')
    op.drop_index('idx_expense_status_date', table_name='expenses')
    op.drop_table('expenses')
    op.drop_table('expense_budgets')
    op.drop_table('expense_categories')
    op.drop_index('idx_ft_student', table_name='financial_transactions')
    op.drop_index('idx_ft_status_created', table_name='financial_transactions')
    op.drop_table('financial_transactions')
    op.drop_index('idx_invoice_student', table_name='invoices')
    op.drop_index('idx_invoice_due', table_name='invoices')
    op.drop_index('ux_invoices_invoice_number', table_name='invoices')
    op.drop_table('invoices')
    op.drop_table('students')
    op.drop_table('programs')
