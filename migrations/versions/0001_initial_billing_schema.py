"""initial billing schema

Revision ID: 0001_initial_billing_schema
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_initial_billing_schema'
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(precision=18, scale=8)


def upgrade() -> None:
    op.create_table(
        'projects',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_projects')),
    )

    op.create_table(
        'bills',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('price_without_tax', MONEY, nullable=True),
        sa.Column('price_with_tax', MONEY, nullable=True),
        sa.Column('tax', MONEY, nullable=True),
        sa.Column('currency', sa.String(), nullable=True),
        sa.Column('pdf_url', sa.String(), nullable=True),
        sa.Column('html_url', sa.String(), nullable=True),
        sa.Column('payment_type', sa.String(), nullable=True),
        sa.Column('payment_date', sa.Date(), nullable=True),
        sa.Column('payment_status', sa.String(), nullable=True),
        sa.Column('imported_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_bills')),
    )
    op.create_index(op.f('ix_bills_date'), 'bills', ['date'], unique=False)

    op.create_table(
        'bill_details',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('bill_id', sa.String(), nullable=False),
        sa.Column('project_id', sa.String(), nullable=True),
        sa.Column('domain', sa.String(), nullable=True),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('quantity', MONEY, nullable=True),
        sa.Column('unit_price', MONEY, nullable=True),
        sa.Column('total_price', MONEY, nullable=True),
        sa.Column('service_type', sa.String(), nullable=False),
        sa.Column('resource_type', sa.String(), nullable=False),
        sa.ForeignKeyConstraint(['bill_id'], ['bills.id'], name=op.f('fk_bill_details_bill_id_bills'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], name=op.f('fk_bill_details_project_id_projects')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_bill_details')),
    )
    op.create_index(op.f('ix_bill_details_bill_id'), 'bill_details', ['bill_id'], unique=False)
    op.create_index(op.f('ix_bill_details_project_id'), 'bill_details', ['project_id'], unique=False)
    op.create_index(op.f('ix_bill_details_domain'), 'bill_details', ['domain'], unique=False)
    op.create_index(op.f('ix_bill_details_service_type'), 'bill_details', ['service_type'], unique=False)
    op.create_index(op.f('ix_bill_details_resource_type'), 'bill_details', ['resource_type'], unique=False)

    op.create_table(
        'import_log',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('from_date', sa.Date(), nullable=True),
        sa.Column('to_date', sa.Date(), nullable=True),
        sa.Column('bills_imported', sa.Integer(), nullable=False),
        sa.Column('details_imported', sa.Integer(), nullable=False),
        sa.Column('projects_imported', sa.Integer(), nullable=False),
        sa.Column('failures', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_import_log')),
    )
    op.create_index(op.f('ix_import_log_status'), 'import_log', ['status'], unique=False)

    op.create_table(
        'inventory_resources',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('resource_type', sa.String(), nullable=False),
        sa.Column('display_name', sa.String(), nullable=True),
        sa.Column('parent_id', sa.String(), nullable=True),
        sa.Column('state', sa.String(), nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_inventory_resources')),
    )
    op.create_index(op.f('ix_inventory_resources_resource_type'), 'inventory_resources', ['resource_type'], unique=False)

    op.create_table(
        'cloud_instances',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('project_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('flavor', sa.String(), nullable=True),
        sa.Column('plan_code', sa.String(), nullable=True),
        sa.Column('region', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('synced_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_cloud_instances')),
    )
    op.create_index(op.f('ix_cloud_instances_project_id'), 'cloud_instances', ['project_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_cloud_instances_project_id'), table_name='cloud_instances')
    op.drop_table('cloud_instances')
    op.drop_index(op.f('ix_inventory_resources_resource_type'), table_name='inventory_resources')
    op.drop_table('inventory_resources')
    op.drop_index(op.f('ix_import_log_status'), table_name='import_log')
    op.drop_table('import_log')
    op.drop_index(op.f('ix_bill_details_resource_type'), table_name='bill_details')
    op.drop_index(op.f('ix_bill_details_service_type'), table_name='bill_details')
    op.drop_index(op.f('ix_bill_details_domain'), table_name='bill_details')
    op.drop_index(op.f('ix_bill_details_project_id'), table_name='bill_details')
    op.drop_index(op.f('ix_bill_details_bill_id'), table_name='bill_details')
    op.drop_table('bill_details')
    op.drop_index(op.f('ix_bills_date'), table_name='bills')
    op.drop_table('bills')
    op.drop_table('projects')
