"""initial_schema: approval workflows, document approvals, audit logs

Revision ID: 3f1c2a9d7e10
Revises:
Create Date: 2026-10-16 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3f1c2a9d7e10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # 1. approval_workflows (no FKs)
    op.create_table('approval_workflows',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('document_type', sa.String(length=100), nullable=False),
    sa.Column('project_id', sa.UUID(), nullable=True),
    sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column('created_by', sa.UUID(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_workflows_type_active', 'approval_workflows', ['document_type', 'is_active'], unique=False)
    op.create_index('idx_workflows_project', 'approval_workflows', ['project_id'], unique=False)

    # 2. workflow_stages (FK to approval_workflows)
    op.create_table('workflow_stages',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('workflow_id', sa.UUID(), nullable=False),
    sa.Column('stage_order', sa.Integer(), nullable=False),
    sa.Column('stage_name', sa.String(length=255), nullable=False),
    sa.Column('required_role', sa.String(length=50), nullable=False),
    sa.Column('approver_user_id', sa.UUID(), nullable=True),
    sa.Column('is_parallel', sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column('auto_approve', sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column('deadline_hours', sa.Integer(), nullable=False, server_default='72'),
    sa.CheckConstraint('stage_order > 0', name='chk_stage_order_positive'),
    sa.CheckConstraint('deadline_hours >= 0', name='chk_deadline_non_negative'),
    sa.ForeignKeyConstraint(['workflow_id'], ['approval_workflows.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_stages_workflow_order', 'workflow_stages', ['workflow_id', 'stage_order'], unique=False)

    # 3. document_approvals (FK to workflows + stages)
    op.create_table('document_approvals',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('document_id', sa.UUID(), nullable=False),
    sa.Column('document_name', sa.String(length=255), nullable=True),
    sa.Column('workflow_id', sa.UUID(), nullable=False),
    sa.Column('current_stage_id', sa.UUID(), nullable=True),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('submitted_at', sa.DateTime(), nullable=False),
    sa.Column('submitted_by', sa.UUID(), nullable=True),
    sa.Column('stage_started_at', sa.DateTime(), nullable=True),
    sa.Column('completed_at', sa.DateTime(), nullable=True),
    sa.Column('rejection_reason', sa.Text(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
    sa.CheckConstraint(
        "status IN ('pending', 'in_progress', 'approved', 'rejected')",
        name='chk_document_approval_status',
    ),
    sa.ForeignKeyConstraint(['workflow_id'], ['approval_workflows.id'], ),
    sa.ForeignKeyConstraint(['current_stage_id'], ['workflow_stages.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_document_approvals_document', 'document_approvals', ['document_id'], unique=False)
    op.create_index('idx_document_approvals_status', 'document_approvals', ['status'], unique=False)
    # At most one open approval round per document
    op.create_index(
        'uq_document_approvals_in_progress', 'document_approvals', ['document_id'],
        unique=True, postgresql_where=sa.text("status = 'in_progress'"),
    )

    # 4. stage_approvals (FK to document_approvals + stages)
    op.create_table('stage_approvals',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('document_approval_id', sa.UUID(), nullable=False),
    sa.Column('stage_id', sa.UUID(), nullable=False),
    sa.Column('approver_id', sa.UUID(), nullable=True),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('approved_at', sa.DateTime(), nullable=True),
    sa.Column('rejected_at', sa.DateTime(), nullable=True),
    sa.Column('comments', sa.Text(), nullable=True),
    sa.Column('signature_data', sa.Text(), nullable=True),
    sa.CheckConstraint(
        "status IN ('pending', 'approved', 'rejected')",
        name='chk_stage_approval_status',
    ),
    sa.ForeignKeyConstraint(['document_approval_id'], ['document_approvals.id'], ),
    sa.ForeignKeyConstraint(['stage_id'], ['workflow_stages.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('document_approval_id', 'stage_id', name='uq_stage_approval_per_stage')
    )
    op.create_index('idx_stage_approvals_document', 'stage_approvals', ['document_approval_id'], unique=False)
    op.create_index('idx_stage_approvals_approver', 'stage_approvals', ['approver_id', 'status'], unique=False)

    # 5. audit_logs (no FKs)
    op.create_table('audit_logs',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('actor_id', sa.UUID(), nullable=True),
    sa.Column('actor_email', sa.String(length=255), nullable=True),
    sa.Column('action', sa.String(length=100), nullable=False),
    sa.Column('entity_type', sa.String(length=50), nullable=False),
    sa.Column('entity_id', sa.UUID(), nullable=False),
    sa.Column('before_state', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('after_state', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column('changed_fields', postgresql.ARRAY(sa.Text()), nullable=True),
    sa.Column('request_id', sa.String(length=64), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_audit_entity', 'audit_logs', ['entity_type', 'entity_id'], unique=False)
    op.create_index('idx_audit_actor', 'audit_logs', ['actor_id'], unique=False)
    op.create_index('idx_audit_created', 'audit_logs', [sa.text('created_at DESC')], unique=False)


def downgrade() -> None:
    op.drop_index('idx_audit_created', table_name='audit_logs')
    op.drop_index('idx_audit_actor', table_name='audit_logs')
    op.drop_index('idx_audit_entity', table_name='audit_logs')
    op.drop_table('audit_logs')

    op.drop_index('idx_stage_approvals_approver', table_name='stage_approvals')
    op.drop_index('idx_stage_approvals_document', table_name='stage_approvals')
    op.drop_table('stage_approvals')

    op.drop_index('uq_document_approvals_in_progress', table_name='document_approvals')
    op.drop_index('idx_document_approvals_status', table_name='document_approvals')
    op.drop_index('idx_document_approvals_document', table_name='document_approvals')
    op.drop_table('document_approvals')

    op.drop_index('idx_stages_workflow_order', table_name='workflow_stages')
    op.drop_table('workflow_stages')

    op.drop_index('idx_workflows_project', table_name='approval_workflows')
    op.drop_index('idx_workflows_type_active', table_name='approval_workflows')
    op.drop_table('approval_workflows')
