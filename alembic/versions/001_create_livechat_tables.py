"""
Create live chat conversation tables

Revision ID: 001_create_livechat_tables
Revises:
Create Date: 2026-10-19 10:00:00.000000

Changes:
- livechat_conversations: one row per session with running transcript and rating
- livechat_session_logs: structured per-session event log
- admin_push_tokens: admin devices registered for incoming-chat alerts
"""
from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = '001_create_livechat_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'livechat_conversations',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('session_id', sa.String(64), nullable=False),
        sa.Column('client_name', sa.String(255), nullable=False, server_default='Guest'),
        sa.Column('client_email', sa.String(255), nullable=False, server_default=''),
        sa.Column('agent_name', sa.String(255), nullable=True),
        sa.Column('conversation_text', sa.Text(), nullable=False, server_default=''),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('rating', sa.String(32), nullable=True),
        sa.Column('rating_type', sa.String(32), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
    )
    op.create_index(
        'ix_livechat_conversations_session_id',
        'livechat_conversations',
        ['session_id'],
        unique=True
    )

    op.create_table(
        'livechat_session_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('session_id', sa.String(64), nullable=False),
        sa.Column('action', sa.String(32), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        'ix_livechat_session_logs_session_id',
        'livechat_session_logs',
        ['session_id']
    )

    op.create_table(
        'admin_push_tokens',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('token', sa.String(512), nullable=False, unique=True),
        sa.Column('platform', sa.String(32), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )


def downgrade():
    op.drop_table('admin_push_tokens')
    op.drop_index('ix_livechat_session_logs_session_id', table_name='livechat_session_logs')
    op.drop_table('livechat_session_logs')
    op.drop_index('ix_livechat_conversations_session_id', table_name='livechat_conversations')
    op.drop_table('livechat_conversations')
