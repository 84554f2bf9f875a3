"""consumption, account and cloud detail tables

Revision ID: 0002_consumption_account_cloud_details
Revises: 0001_initial_billing_schema
Create Date: 2026-10-17 15:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '0002_consumption_account_cloud_details'
down_revision = '0001_initial_billing_schema'
branch_labels = None
depends_on = None

MONEY = sa.Numeric(precision=18, scale=8)
RAW_JSON = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), 'postgresql')


def upgrade() -> None:
    op.create_table(
        'consumption_snapshots',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('snapshot_date', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        sa.Column('current_total', MONEY, nullable=True),
        sa.Column('forecast_total', MONEY, nullable=True),
        sa.Column('currency', sa.String(), nullable=True),
        sa.Column('raw_data', RAW_JSON, nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_consumption_snapshots')),
    )

    op.create_table(
        'consumption_history',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('period_start', sa.Date(), nullable=True),
        sa.Column('period_end', sa.Date(), nullable=True),
        sa.Column('service_type', sa.String(), nullable=True),
        sa.Column('total', MONEY, nullable=True),
        sa.Column('currency', sa.String(), nullable=True),
        sa.Column('raw_data', RAW_JSON, nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_consumption_history')),
    )
    op.create_index(op.f('ix_consumption_history_period_start'), 'consumption_history', ['period_start'], unique=False)

    op.create_table(
        'account_balances',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('snapshot_date', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('debt_balance', MONEY, nullable=True),
        sa.Column('credit_balance', MONEY, nullable=True),
        sa.Column('deposit_total', MONEY, nullable=True),
        sa.Column('currency', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_account_balances')),
    )

    op.create_table(
        'credit_movements',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('balance_name', sa.String(), nullable=False),
        sa.Column('amount', MONEY, nullable=True),
        sa.Column('movement_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('movement_type', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_credit_movements')),
    )
    op.create_index(op.f('ix_credit_movements_balance_name'), 'credit_movements', ['balance_name'], unique=False)

    op.create_table(
        'cloud_consumption',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('project_id', sa.String(), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        sa.Column('resource_type', sa.String(), nullable=False),
        sa.Column('resource_id', sa.String(), nullable=True),
        sa.Column('resource_name', sa.String(), nullable=True),
        sa.Column('quantity', MONEY, nullable=True),
        sa.Column('unit', sa.String(), nullable=True),
        sa.Column('unit_price', MONEY, nullable=True),
        sa.Column('total_price', MONEY, nullable=True),
        sa.Column('region', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_cloud_consumption')),
    )
    op.create_index(op.f('ix_cloud_consumption_project_id'), 'cloud_consumption', ['project_id'], unique=False)

    op.create_table(
        'cloud_quotas',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('project_id', sa.String(), nullable=False),
        sa.Column('region', sa.String(), nullable=True),
        sa.Column('max_cores', sa.Integer(), nullable=True),
        sa.Column('max_instances', sa.Integer(), nullable=True),
        sa.Column('max_ram_mb', sa.Integer(), nullable=True),
        sa.Column('used_cores', sa.Integer(), nullable=True),
        sa.Column('used_instances', sa.Integer(), nullable=True),
        sa.Column('used_ram_mb', sa.Integer(), nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_cloud_quotas')),
    )
    op.create_index(op.f('ix_cloud_quotas_project_id'), 'cloud_quotas', ['project_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_cloud_quotas_project_id'), table_name='cloud_quotas')
    op.drop_table('cloud_quotas')
    op.drop_index(op.f('ix_cloud_consumption_project_id'), table_name='cloud_consumption')
    op.drop_table('cloud_consumption')
    op.drop_index(op.f('ix_credit_movements_balance_name'), table_name='credit_movements')
    op.drop_table('credit_movements')
    op.drop_table('account_balances')
    op.drop_index(op.f('ix_consumption_history_period_start'), table_name='consumption_history')
    op.drop_table('consumption_history')
    op.drop_table('consumption_snapshots')
