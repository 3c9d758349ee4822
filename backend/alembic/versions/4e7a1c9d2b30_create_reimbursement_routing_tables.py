"""create_reimbursement_routing_tables

Revision ID: 4e7a1c9d2b30
Revises:
Create Date: 2026-03-02 09:12:41.208115

Users, reimbursements, the per-level approval ledger and the audit log.
audit_logs is made append-only for the application role.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '4e7a1c9d2b30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('role', sa.String(50), nullable=False),
        sa.Column('sap_code_1', sa.String(20), nullable=True),
        sa.Column('sap_code_2', sa.String(20), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'reimbursements',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('category', sa.String(100), nullable=False),
        sa.Column('type', sa.String(100), nullable=True),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('items', sa.Text(), nullable=True),
        sa.Column('merchant', sa.String(255), nullable=True),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('sap_code', sa.String(20), nullable=True),
        sa.Column('date_of_expense', sa.Date(), nullable=True),
        sa.Column('receipt_ref', sa.String(500), nullable=True),
        sa.Column('status', sa.String(100), nullable=False),
        sa.Column('current_approver', sa.String(100), nullable=True),
        sa.Column('approval_route', sa.JSON(), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('total > 0', name='ck_reimbursements_total_positive'),
    )
    op.create_index('ix_reimbursements_user_id', 'reimbursements', ['user_id'])
    op.create_index('ix_reimbursements_sap_code', 'reimbursements', ['sap_code'])
    op.create_index('ix_reimbursements_status', 'reimbursements', ['status'])
    op.create_index('ix_reimbursements_current_approver', 'reimbursements', ['current_approver'])

    op.create_table(
        'approvals',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('reimbursement_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('approval_level', sa.Integer(), nullable=False),
        sa.Column('approver_role', sa.String(100), nullable=False),
        sa.Column('approver_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['reimbursement_id'], ['reimbursements.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['approver_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reimbursement_id', 'approval_level', name='uq_approvals_reimbursement_level'),
    )
    op.create_index('ix_approvals_reimbursement_id', 'approvals', ['reimbursement_id'])
    op.create_index('ix_approvals_approver_role', 'approvals', ['approver_role'])
    op.create_index('ix_approvals_status', 'approvals', ['status'])
    # At most one open level per reimbursement
    op.create_index(
        'uq_approvals_one_pending_per_reimbursement',
        'approvals',
        ['reimbursement_id'],
        unique=True,
        postgresql_where=sa.text("status = 'Pending'"),
    )

    op.create_table(
        'audit_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('actor_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('actor_email', sa.String(255), nullable=True),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('entity_type', sa.String(100), nullable=False),
        sa.Column('entity_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('before_state', sa.Text(), nullable=True),
        sa.Column('after_state', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(50), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['actor_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_entity_type', 'audit_logs', ['entity_type'])
    op.create_index('ix_audit_logs_entity_id', 'audit_logs', ['entity_id'])

    op.execute("REVOKE UPDATE, DELETE ON audit_logs FROM PUBLIC;")
    op.execute("GRANT SELECT, INSERT ON audit_logs TO PUBLIC;")


def downgrade() -> None:
    op.drop_index('ix_audit_logs_entity_id', table_name='audit_logs')
    op.drop_index('ix_audit_logs_entity_type', table_name='audit_logs')
    op.drop_index('ix_audit_logs_action', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_index('uq_approvals_one_pending_per_reimbursement', table_name='approvals')
    op.drop_index('ix_approvals_status', table_name='approvals')
    op.drop_index('ix_approvals_approver_role', table_name='approvals')
    op.drop_index('ix_approvals_reimbursement_id', table_name='approvals')
    op.drop_table('approvals')
    op.drop_index('ix_reimbursements_current_approver', table_name='reimbursements')
    op.drop_index('ix_reimbursements_status', table_name='reimbursements')
    op.drop_index('ix_reimbursements_sap_code', table_name='reimbursements')
    op.drop_index('ix_reimbursements_user_id', table_name='reimbursements')
    op.drop_table('reimbursements')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
