"""Initial schema: users, teams, projects, work items with history, comments and attachments.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('username', sa.String(50), nullable=False),
        sa.Column('email', sa.String(100), nullable=False),
        sa.Column('full_name', sa.String(100), nullable=False),
        sa.Column('avatar_url', sa.String(255)),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('role', sa.Enum('ADMIN', 'SCRUM_MASTER', 'USER', name='userrole'), nullable=False, server_default='USER'),
        sa.Column('last_login', sa.DateTime),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # Create teams and team_members tables
    op.create_table(
        'teams',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('created_by', sa.Integer, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_teams_name', 'teams', ['name'])
    op.create_index('ix_teams_created_by', 'teams', ['created_by'])

    op.create_table(
        'team_members',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('team_id', sa.Integer, sa.ForeignKey('teams.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', sa.Enum('ADMIN', 'MEMBER', 'VIEWER', name='teamrole'), nullable=False, server_default='MEMBER'),
        sa.Column('joined_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('team_id', 'user_id', name='unique_team_user'),
    )
    op.create_index('ix_team_members_team_id', 'team_members', ['team_id'])
    op.create_index('ix_team_members_user_id', 'team_members', ['user_id'])

    # Create projects and their id sequences
    op.create_table(
        'projects',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('key', sa.String(10), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('status', sa.Enum('PLANNING', 'ACTIVE', 'ARCHIVED', 'COMPLETED', name='projectstatus'), nullable=False, server_default='ACTIVE'),
        sa.Column('created_by', sa.Integer, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('team_id', sa.Integer, sa.ForeignKey('teams.id', ondelete='SET NULL')),
        sa.Column('start_date', sa.DateTime),
        sa.Column('target_date', sa.DateTime),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_projects_key', 'projects', ['key'], unique=True)
    op.create_index('ix_projects_name', 'projects', ['name'])
    op.create_index('ix_projects_status', 'projects', ['status'])
    op.create_index('ix_projects_team_id', 'projects', ['team_id'])

    op.create_table(
        'project_sequences',
        sa.Column('project_id', sa.Integer, sa.ForeignKey('projects.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('next_number', sa.Integer, nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('next_number > 0', name='chk_next_number_positive'),
    )

    # Create work_items table
    op.create_table(
        'work_items',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('external_id', sa.String(20), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('type', sa.Enum('EPIC', 'FEATURE', 'STORY', 'TASK', 'BUG', name='workitemtype'), nullable=False),
        sa.Column('status', sa.Enum('TODO', 'IN_PROGRESS', 'DONE', name='workitemstatus'), nullable=False, server_default='TODO'),
        sa.Column('priority', sa.Enum('LOW', 'MEDIUM', 'HIGH', 'CRITICAL', name='workitempriority'), nullable=False, server_default='MEDIUM'),
        sa.Column('project_id', sa.Integer, sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('parent_id', sa.Integer, sa.ForeignKey('work_items.id', ondelete='SET NULL')),
        sa.Column('assignee_id', sa.Integer, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('reporter_id', sa.Integer, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('estimate', sa.Numeric(10, 2)),
        sa.Column('start_date', sa.DateTime),
        sa.Column('end_date', sa.DateTime),
        sa.Column('completed_at', sa.DateTime),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('parent_id IS NULL OR parent_id != id', name='no_self_parent'),
        sa.CheckConstraint(
            "(status = 'DONE' AND completed_at IS NOT NULL) OR (status != 'DONE' AND completed_at IS NULL)",
            name='chk_completed_at_matches_status'
        ),
    )
    op.create_index('work_item_external_id_idx', 'work_items', [sa.text('lower(external_id)')], unique=True)
    op.create_index('work_item_project_idx', 'work_items', ['project_id'])
    op.create_index('work_item_parent_idx', 'work_items', ['parent_id'])
    op.create_index('work_item_type_status_idx', 'work_items', ['type', 'status'])
    op.create_index('work_item_assignee_idx', 'work_items', ['assignee_id'])
    op.create_index('work_item_reporter_idx', 'work_items', ['reporter_id'])

    # Create work_item_history table (append-only audit trail)
    op.create_table(
        'work_item_history',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('work_item_id', sa.Integer, sa.ForeignKey('work_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('field', sa.String(50), nullable=False),
        sa.Column('old_value', sa.Text),
        sa.Column('new_value', sa.Text),
        sa.Column('changed_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_work_item_history_work_item_id', 'work_item_history', ['work_item_id'])
    op.create_index('ix_work_item_history_changed_at', 'work_item_history', ['changed_at'])

    # Create comments and attachments tables
    op.create_table(
        'comments',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('work_item_id', sa.Integer, sa.ForeignKey('work_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('content', sa.Text, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_comments_work_item_id', 'comments', ['work_item_id'])
    op.create_index('ix_comments_user_id', 'comments', ['user_id'])

    op.create_table(
        'attachments',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('work_item_id', sa.Integer, sa.ForeignKey('work_items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('file_size', sa.Integer, nullable=False),
        sa.Column('file_type', sa.String(100), nullable=False),
        sa.Column('file_path', sa.String(255), nullable=False),
        sa.Column('uploaded_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('file_size >= 0', name='chk_file_size_non_negative'),
    )
    op.create_index('ix_attachments_work_item_id', 'attachments', ['work_item_id'])


def downgrade() -> None:
    op.drop_table('attachments')
    op.drop_table('comments')
    op.drop_table('work_item_history')
    op.drop_table('work_items')
    op.drop_table('project_sequences')
    op.drop_table('projects')
    op.drop_table('team_members')
    op.drop_table('teams')
    op.drop_table('users')

    # Drop enums (PostgreSQL keeps them after the tables are gone)
    for enum_name in ('workitempriority', 'workitemstatus', 'workitemtype', 'projectstatus', 'teamrole', 'userrole'):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
