"""Initial billing schema.

Revision ID: 001_initial_billing_schema
Revises: None
Create Date: 2026-01-12 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial_billing_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Create billing tables."""
    # Create units table
    op.create_table(
        'units',
        *_timestamps(),
        sa.Column('code', sa.String(20), nullable=False),
        sa.Column('owner_name', sa.String(100), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
    )
    op.create_index('ix_units_code', 'units', ['code'])

    # Create module_billing_configs table
    op.create_table(
        'module_billing_configs',
        *_timestamps(),
        sa.Column('module', sa.String(20), nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False),
        sa.Column('penalty_rate', sa.String(20), nullable=True),
        sa.Column('grace_days', sa.Integer(), nullable=True),
        sa.Column('fiscal_year_start_month', sa.Integer(), nullable=False),
        sa.Column('billing_frequency', sa.String(20), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('module'),
    )

    # Create dues_records table
    op.create_table(
        'dues_records',
        *_timestamps(),
        sa.Column('unit_id', sa.Integer(), nullable=False),
        sa.Column('fiscal_year', sa.Integer(), nullable=False),
        sa.Column('scheduled_amount', sa.Integer(), nullable=False),
        sa.Column('slots', sa.JSON(), nullable=False),
        sa.Column('prior_year_closed', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('unit_id', 'fiscal_year', name='uq_dues_unit_year'),
    )
    op.create_index('ix_dues_records_unit_id', 'dues_records', ['unit_id'])
    op.create_index('idx_dues_unit_year', 'dues_records', ['unit_id', 'fiscal_year'])

    # Create water_bills table
    op.create_table(
        'water_bills',
        *_timestamps(),
        sa.Column('unit_id', sa.Integer(), nullable=False),
        sa.Column('period', sa.String(7), nullable=False),
        sa.Column('bill_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('consumption', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('current_charge', sa.Integer(), nullable=False),
        sa.Column('penalty', sa.Integer(), nullable=False),
        sa.Column('base_paid', sa.Integer(), nullable=False),
        sa.Column('penalty_paid', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('unit_id', 'period', name='uq_water_unit_period'),
    )
    op.create_index('ix_water_bills_unit_id', 'water_bills', ['unit_id'])
    op.create_index('idx_water_unit_period', 'water_bills', ['unit_id', 'period'])

    # Create accounting_transactions table
    op.create_table(
        'accounting_transactions',
        *_timestamps(),
        sa.Column('unit_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('transaction_date', sa.Date(), nullable=False),
        sa.Column('payment_method', sa.String(50), nullable=True),
        sa.Column('reference', sa.String(100), nullable=True),
        sa.Column('notes', sa.String(1000), nullable=True),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_accounting_transactions_unit_id', 'accounting_transactions', ['unit_id'])
    op.create_index('ix_accounting_transactions_transaction_date', 'accounting_transactions', ['transaction_date'])
    op.create_index('idx_transaction_unit_date', 'accounting_transactions', ['unit_id', 'transaction_date'])

    # Create allocations table
    op.create_table(
        'allocations',
        *_timestamps(),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('allocation_type', sa.String(30), nullable=False),
        sa.Column('target_id', sa.String(50), nullable=True),
        sa.Column('target_name', sa.String(100), nullable=True),
        sa.Column('category_id', sa.String(50), nullable=False),
        sa.Column('category_name', sa.String(100), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['transaction_id'], ['accounting_transactions.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_allocations_transaction_id', 'allocations', ['transaction_id'])
    op.create_index('ix_allocations_target_id', 'allocations', ['target_id'])

    # Create credit_ledger_entries table
    op.create_table(
        'credit_ledger_entries',
        *_timestamps(),
        sa.Column('unit_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=True),
        sa.Column('entry_type', sa.String(30), nullable=False),
        sa.Column('note', sa.String(255), nullable=True),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ),
        sa.ForeignKeyConstraint(['transaction_id'], ['accounting_transactions.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_credit_ledger_entries_unit_id', 'credit_ledger_entries', ['unit_id'])
    op.create_index('ix_credit_ledger_entries_transaction_id', 'credit_ledger_entries', ['transaction_id'])
    op.create_index('idx_credit_unit_id', 'credit_ledger_entries', ['unit_id', 'id'])

    # Create audit_logs table
    op.create_table(
        'audit_logs',
        *_timestamps(),
        sa.Column('entity_type', sa.String(), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('actor', sa.String(100), nullable=True),
        sa.Column('changes', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )


def downgrade() -> None:
    """Drop billing tables."""
    op.drop_table('audit_logs')
    op.drop_table('credit_ledger_entries')
    op.drop_table('allocations')
    op.drop_table('accounting_transactions')
    op.drop_table('water_bills')
    op.drop_table('dues_records')
    op.drop_table('module_billing_configs')
    op.drop_table('units')
