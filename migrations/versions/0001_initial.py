"""initial schema

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [sa.Column('created_at', sa.DateTime, nullable=False),
            sa.Column('updated_at', sa.DateTime, nullable=False)]

def upgrade():
    op.create_table('user',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('name', sa.String(120)),
        sa.Column('avatar', sa.String(512)),
        sa.Column('password_hash', sa.String(256), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='MEMBER'),
        sa.Column('last_seen', sa.DateTime),
        *_timestamps()
    )
    op.create_table('project',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('status', sa.String(20), nullable=False, server_default='PLANNING'),
        sa.Column('start_date', sa.Date),
        sa.Column('end_date', sa.Date),
        sa.Column('progress', sa.Integer, nullable=False, server_default='0'),
        sa.Column('owner_id', sa.Integer, sa.ForeignKey('user.id'), nullable=False),
        *_timestamps()
    )
    op.create_table('team_member',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('role', sa.String(20), nullable=False, server_default='MEMBER'),
        sa.Column('joined_at', sa.DateTime),
        sa.Column('project_id', sa.Integer, sa.ForeignKey('project.id'), nullable=False),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('user.id'), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('project_id', 'user_id', name='uq_team_member_project_user')
    )
    op.create_table('customer_requirement',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('project_id', sa.Integer, sa.ForeignKey('project.id'), nullable=False, index=True),
        sa.Column('sequence', sa.Integer, nullable=False),
        sa.Column('code', sa.String(40), nullable=False),
        sa.Column('business_unit', sa.String(40), nullable=False),
        sa.Column('category', sa.String(80)),
        sa.Column('function_name', sa.String(200), nullable=False),
        sa.Column('content', sa.Text, nullable=False),
        sa.Column('request_date', sa.Date),
        sa.Column('requester', sa.String(120)),
        sa.Column('solution', sa.Text),
        sa.Column('apply_status', sa.String(20), nullable=False, server_default='REVIEWING'),
        sa.Column('remarks', sa.Text),
        sa.Column('to_be_code', sa.String(80)),
        *_timestamps(),
        sa.UniqueConstraint('project_id', 'code', name='uq_customer_requirement_code')
    )
    op.create_table('field_issue',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('project_id', sa.Integer, sa.ForeignKey('project.id'), nullable=False, index=True),
        sa.Column('sequence', sa.Integer, nullable=False),
        sa.Column('code', sa.String(40), nullable=False),
        sa.Column('business_unit', sa.String(40), nullable=False),
        sa.Column('category', sa.String(80)),
        sa.Column('title', sa.String(300), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('registered_date', sa.Date),
        sa.Column('issuer', sa.String(120)),
        sa.Column('requirement_code', sa.String(40)),
        sa.Column('assignee', sa.String(120)),
        sa.Column('status', sa.String(20), nullable=False, server_default='OPEN'),
        sa.Column('target_date', sa.Date),
        sa.Column('completed_date', sa.Date),
        sa.Column('proposed_solution', sa.Text),
        sa.Column('final_solution', sa.Text),
        sa.Column('remarks', sa.Text),
        *_timestamps(),
        sa.UniqueConstraint('project_id', 'code', name='uq_field_issue_code')
    )
    op.create_table('issue',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('project_id', sa.Integer, sa.ForeignKey('project.id'), nullable=False, index=True),
        sa.Column('code', sa.String(20), nullable=False),
        sa.Column('title', sa.String(300), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('status', sa.String(20), nullable=False, server_default='OPEN'),
        sa.Column('priority', sa.String(20), nullable=False, server_default='MEDIUM'),
        sa.Column('category', sa.String(20), nullable=False, server_default='BUG'),
        sa.Column('due_date', sa.Date),
        sa.Column('resolved_date', sa.Date),
        sa.Column('is_delayed', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('reporter_id', sa.Integer, sa.ForeignKey('user.id')),
        sa.Column('assignee_id', sa.Integer, sa.ForeignKey('user.id')),
        *_timestamps()
    )
    op.create_table('holiday',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('project_id', sa.Integer, sa.ForeignKey('project.id'), nullable=False, index=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('date', sa.Date, nullable=False, index=True),
        sa.Column('end_date', sa.Date),
        sa.Column('type', sa.String(30), nullable=False),
        sa.Column('is_all_day', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('start_time', sa.String(5)),
        sa.Column('end_time', sa.String(5)),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('user.id')),
        *_timestamps()
    )
    op.create_table('wbs_item',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('project_id', sa.Integer, sa.ForeignKey('project.id'), nullable=False, index=True),
        sa.Column('parent_id', sa.Integer, sa.ForeignKey('wbs_item.id'), index=True),
        sa.Column('code', sa.String(40), nullable=False),
        sa.Column('name', sa.String(300), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('level', sa.Integer, nullable=False),
        sa.Column('sort_order', sa.Integer, nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('progress', sa.Integer, nullable=False, server_default='0'),
        sa.Column('start_date', sa.Date),
        sa.Column('end_date', sa.Date),
        sa.Column('weight', sa.Integer, nullable=False, server_default='1'),
        sa.Column('deliverable_name', sa.String(300)),
        sa.Column('deliverable_link', sa.String(1024)),
        *_timestamps()
    )
    op.create_table('wbs_assignee',
        sa.Column('wbs_item_id', sa.Integer, sa.ForeignKey('wbs_item.id'), primary_key=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('user.id'), primary_key=True)
    )
    op.create_table('chat_message',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('user.id'), nullable=False, index=True),
        sa.Column('project_id', sa.Integer, sa.ForeignKey('project.id', ondelete='SET NULL')),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('content', sa.Text, nullable=False),
        sa.Column('sql_query', sa.Text),
        sa.Column('chart_type', sa.String(20)),
        sa.Column('chart_data', sa.JSON),
        sa.Column('user_query', sa.Text),
        sa.Column('processing_time_ms', sa.Integer),
        sa.Column('feedback_rating', sa.String(20)),
        sa.Column('feedback_comment', sa.Text),
        sa.Column('created_at', sa.DateTime, nullable=False)
    )
    op.create_table('ai_setting',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('user.id'), nullable=False, unique=True),
        sa.Column('provider', sa.String(40), nullable=False, server_default='openai'),
        sa.Column('api_key', sa.String(512)),
        sa.Column('model', sa.String(120)),
        sa.Column('base_url', sa.String(512)),
        sa.Column('sql_system_prompt', sa.Text),
        sa.Column('analysis_system_prompt', sa.Text),
        *_timestamps()
    )
    op.create_table('notification',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('user_id', sa.Integer, sa.ForeignKey('user.id'), nullable=False, index=True),
        sa.Column('type', sa.String(40), nullable=False),
        sa.Column('title', sa.String(300), nullable=False),
        sa.Column('message', sa.Text),
        sa.Column('link', sa.String(300)),
        sa.Column('related_id', sa.Integer),
        sa.Column('project_id', sa.Integer, sa.ForeignKey('project.id', ondelete='CASCADE')),
        sa.Column('is_read', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime, nullable=False)
    )

def downgrade():
    for table in ('notification', 'ai_setting', 'chat_message', 'wbs_assignee', 'wbs_item', 'holiday',
                  'issue', 'field_issue', 'customer_requirement', 'team_member', 'project', 'user'):
        op.drop_table(table)
