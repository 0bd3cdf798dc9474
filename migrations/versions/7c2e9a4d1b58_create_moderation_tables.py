"""create moderation tables

Revision ID: 7c2e9a4d1b58
Revises:
Create Date: 2026-10-19 10:12:41.118204

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7c2e9a4d1b58'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('users',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('email', sa.String(length=255), nullable=False),
    sa.Column('password_hash', sa.String(length=255), nullable=False),
    sa.Column('full_name', sa.String(length=255), nullable=True),
    sa.Column('is_admin', sa.Boolean(), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('failed_login_attempts', sa.Integer(), nullable=False),
    sa.Column('locked_until', sa.DateTime(timezone=True), nullable=True),
    sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('email')
    )
    op.create_table('experiences',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('full_name', sa.String(length=100), nullable=False),
    sa.Column('email', sa.String(length=254), nullable=True),
    sa.Column('college_name', sa.String(length=200), nullable=True),
    sa.Column('branch', sa.String(length=20), nullable=True),
    sa.Column('batch_year', sa.Integer(), nullable=True),
    sa.Column('linkedin_url', sa.String(length=500), nullable=True),
    sa.Column('is_anonymous', sa.Boolean(), nullable=False),
    sa.Column('company_name', sa.String(length=200), nullable=False),
    sa.Column('job_role', sa.String(length=100), nullable=False),
    sa.Column('position_type', sa.String(length=20), nullable=False),
    sa.Column('interview_type', sa.String(length=20), nullable=True),
    sa.Column('job_location', sa.String(length=100), nullable=True),
    sa.Column('ctc', sa.String(length=20), nullable=True),
    sa.Column('number_of_rounds', sa.Integer(), nullable=False),
    sa.Column('round_types', sa.JSON(), nullable=False),
    sa.Column('difficulty_level', sa.String(length=10), nullable=True),
    sa.Column('overall_experience', sa.Text(), nullable=False),
    sa.Column('rounds', sa.JSON(), nullable=False),
    sa.Column('interview_date', sa.Date(), nullable=True),
    sa.Column('coding_questions', sa.Text(), nullable=True),
    sa.Column('technical_questions', sa.Text(), nullable=True),
    sa.Column('hr_questions', sa.Text(), nullable=True),
    sa.Column('resources_used', sa.Text(), nullable=True),
    sa.Column('tips_for_candidates', sa.Text(), nullable=True),
    sa.Column('mistakes_to_avoid', sa.Text(), nullable=True),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('moderated_by', sa.String(length=36), nullable=True),
    sa.Column('moderation_notes', sa.Text(), nullable=True),
    sa.Column('verification_badge', sa.Boolean(), nullable=False),
    sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_experiences_status_id', 'experiences', ['status', 'id'], unique=False)
    op.create_table('contacts',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('name', sa.String(length=100), nullable=False),
    sa.Column('email', sa.String(length=254), nullable=False),
    sa.Column('subject', sa.String(length=200), nullable=True),
    sa.Column('message', sa.Text(), nullable=False),
    sa.Column('priority', sa.String(length=20), nullable=False),
    sa.Column('category', sa.String(length=30), nullable=False),
    sa.Column('status', sa.String(length=20), nullable=False),
    sa.Column('moderated_by', sa.String(length=36), nullable=True),
    sa.Column('moderation_notes', sa.Text(), nullable=True),
    sa.Column('response', sa.Text(), nullable=True),
    sa.Column('responded_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_contacts_status_id', 'contacts', ['status', 'id'], unique=False)
    op.create_table('audit_entries',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('actor_id', sa.String(length=36), nullable=True),
    sa.Column('action', sa.String(length=64), nullable=False),
    sa.Column('resource_type', sa.String(length=32), nullable=False),
    sa.Column('resource_id', sa.String(length=36), nullable=True),
    sa.Column('details', sa.JSON(), nullable=True),
    sa.Column('previous_data', sa.JSON(), nullable=True),
    sa.Column('new_data', sa.JSON(), nullable=True),
    sa.Column('ip_address', sa.String(length=64), nullable=True),
    sa.Column('user_agent', sa.String(length=512), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_audit_entries_actor_created', 'audit_entries', ['actor_id', 'created_at'], unique=False)
    op.create_index('ix_audit_entries_action_created', 'audit_entries', ['action', 'created_at'], unique=False)
    op.create_index('ix_audit_entries_resource', 'audit_entries', ['resource_type', 'resource_id'], unique=False)


def downgrade():
    op.drop_index('ix_audit_entries_resource', table_name='audit_entries')
    op.drop_index('ix_audit_entries_action_created', table_name='audit_entries')
    op.drop_index('ix_audit_entries_actor_created', table_name='audit_entries')
    op.drop_table('audit_entries')
    op.drop_index('ix_contacts_status_id', table_name='contacts')
    op.drop_table('contacts')
    op.drop_index('ix_experiences_status_id', table_name='experiences')
    op.drop_table('experiences')
    op.drop_table('users')
