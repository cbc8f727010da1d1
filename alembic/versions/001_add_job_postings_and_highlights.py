"""Add plans, job_postings and highlight tables

Revision ID: 001_add_job_postings_and_highlights
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_add_job_postings_and_highlights'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create plans, job_postings, highlight_allocations and plan_highlight_locks."""
    op.create_table(
        'plans',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('owner_id', sa.BigInteger(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='ACTIVE'),
        sa.Column('highlight_quota', sa.Integer(), nullable=True),
        sa.Column('posting_quota', sa.Integer(), nullable=True),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_plans_owner_id', 'plans', ['owner_id'])
    op.create_index('idx_plans_owner_status', 'plans', ['owner_id', 'status'])

    op.create_table(
        'job_postings',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('code', sa.String(length=12), nullable=False),
        sa.Column('owner_id', sa.BigInteger(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='UNDER_REVIEW'),
        sa.Column('highlight_requested', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_job_postings_code', 'job_postings', ['code'], unique=True)
    op.create_index('ix_job_postings_owner_id', 'job_postings', ['owner_id'])
    op.create_index('ix_job_postings_status', 'job_postings', ['status'])
    op.create_index('idx_job_postings_owner_status', 'job_postings', ['owner_id', 'status'])

    op.create_table(
        'highlight_allocations',
        sa.Column('id', sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column('posting_id', sa.BigInteger(), nullable=False),
        sa.Column('plan_id', sa.BigInteger(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('activated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('deactivated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['posting_id'], ['job_postings.id']),
        sa.ForeignKeyConstraint(['plan_id'], ['plans.id']),
        sa.UniqueConstraint('posting_id', name='uq_highlight_allocations_posting_id'),
    )
    op.create_index('ix_highlight_allocations_plan_id', 'highlight_allocations', ['plan_id'])
    op.create_index(
        'idx_highlight_allocations_plan_active', 'highlight_allocations', ['plan_id', 'active']
    )

    op.create_table(
        'plan_highlight_locks',
        sa.Column('plan_id', sa.BigInteger(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('plan_id'),
        sa.ForeignKeyConstraint(['plan_id'], ['plans.id']),
    )


def downgrade() -> None:
    """Drop the posting and highlight tables."""
    op.drop_table('plan_highlight_locks')
    op.drop_index('idx_highlight_allocations_plan_active', table_name='highlight_allocations')
    op.drop_index('ix_highlight_allocations_plan_id', table_name='highlight_allocations')
    op.drop_table('highlight_allocations')
    op.drop_index('idx_job_postings_owner_status', table_name='job_postings')
    op.drop_index('ix_job_postings_status', table_name='job_postings')
    op.drop_index('ix_job_postings_owner_id', table_name='job_postings')
    op.drop_index('ix_job_postings_code', table_name='job_postings')
    op.drop_table('job_postings')
    op.drop_index('idx_plans_owner_status', table_name='plans')
    op.drop_index('ix_plans_owner_id', table_name='plans')
    op.drop_table('plans')
