"""create_prompt_tables

Revision ID: 20261019_prompt_tables
Revises:
Create Date: 2026-10-19 00:00:00

Adds: prompts, prompt_versions, prompt_execution_logs, prompt_audit_logs tables
Purpose: Versioned prompt storage with activation, soft delete and usage logs
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '20261019_prompt_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """
    Create prompt tables:
    1. prompts - Named templates with a weak active_version_id pointer
    2. prompt_versions - Immutable numbered bodies, unique per (prompt_id, version_number)
    3. prompt_execution_logs - One row per prompt invocation
    4. prompt_audit_logs - Delete/restore lifecycle events
    """

    op.create_table(
        'prompts',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('active_version_id', sa.String(length=36), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint("status IN ('active', 'deleted')", name='prompt_status_valid'),
    )

    # Name is unique among active prompts only; deleted names can be reused
    op.create_index(
        'uq_prompts_active_name',
        'prompts',
        ['name'],
        unique=True,
        postgresql_where=sa.text("status = 'active'")
    )
    op.create_index('idx_prompts_updated_at', 'prompts', ['updated_at'])

    op.create_table(
        'prompt_versions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('prompt_id', sa.String(length=36), nullable=False),
        sa.Column('version_number', sa.Integer(), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('variables_schema', sa.JSON(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='draft'),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['prompt_id'], ['prompts.id'], ),
        sa.CheckConstraint('version_number > 0', name='version_number_positive'),
        sa.UniqueConstraint('prompt_id', 'version_number', name='uq_prompt_versions_number'),
    )
    op.create_index('idx_prompt_versions_prompt_created', 'prompt_versions', ['prompt_id', 'created_at'])

    op.create_table(
        'prompt_execution_logs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('prompt_id', sa.String(length=36), nullable=False),
        sa.Column('prompt_version_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('duration_ms', sa.Integer(), nullable=True),
        sa.Column('request_payload', sa.JSON(), nullable=True),
        sa.Column('response_metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['prompt_id'], ['prompts.id'], ),
        sa.ForeignKeyConstraint(['prompt_version_id'], ['prompt_versions.id'], ),
    )
    op.create_index('idx_prompt_execution_logs_lookup', 'prompt_execution_logs', ['prompt_id', 'created_at'])

    op.create_table(
        'prompt_audit_logs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('prompt_id', sa.String(length=36), nullable=False),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['prompt_id'], ['prompts.id'], ),
    )
    op.create_index('idx_prompt_audit_logs_prompt', 'prompt_audit_logs', ['prompt_id', 'created_at'])


def downgrade() -> None:
    """Drop prompt tables in reverse dependency order"""
    op.drop_index('idx_prompt_audit_logs_prompt', table_name='prompt_audit_logs')
    op.drop_table('prompt_audit_logs')

    op.drop_index('idx_prompt_execution_logs_lookup', table_name='prompt_execution_logs')
    op.drop_table('prompt_execution_logs')

    op.drop_index('idx_prompt_versions_prompt_created', table_name='prompt_versions')
    op.drop_table('prompt_versions')

    op.drop_index('idx_prompts_updated_at', table_name='prompts')
    op.drop_index('uq_prompts_active_name', table_name='prompts')
    op.drop_table('prompts')
