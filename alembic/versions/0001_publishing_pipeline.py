# alembic/versions/0001_publishing_pipeline.py
"""Create publishing pipeline tables

Revision ID: 0001
Revises:
Create Date: 2024-06-01 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None

# SQLAlchemy stores enum member names
platform_enum = sa.Enum('INSTAGRAM', 'YOUTUBE', name='platform')
content_status_enum = sa.Enum('DRAFT', 'SCHEDULED', 'PROCESSING', 'PUBLISHED', 'FAILED', name='contentstatus')
processing_stage_enum = sa.Enum('PUBLISHING', 'AWAITING_CONTAINER', name='processingstage')
privacy_status_enum = sa.Enum('PUBLIC', 'PRIVATE', 'UNLISTED', name='privacystatus')
job_status_enum = sa.Enum('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED', name='jobstatus')


def upgrade():
    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('username', sa.String(50), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    # Create social accounts table
    op.create_table(
        'social_accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('platform', platform_enum, nullable=False),
        sa.Column('platform_user_id', sa.String(100), nullable=True),
        sa.Column('username', sa.String(100), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(), nullable=True),
        sa.Column('token_version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'platform', name='uq_social_accounts_user_platform'),
    )
    op.create_index('ix_social_accounts_id', 'social_accounts', ['id'])

    # Create contents table
    op.create_table(
        'contents',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('platform', platform_enum, nullable=False),
        sa.Column('caption', sa.Text(), nullable=True),
        sa.Column('title', sa.String(200), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('tags', sa.JSON(), nullable=True),
        sa.Column('category_id', sa.String(10), nullable=True),
        sa.Column('privacy_status', privacy_status_enum, nullable=True),
        sa.Column('media_url', sa.String(1000), nullable=True),
        sa.Column('media_key', sa.String(500), nullable=True),
        sa.Column('thumbnail_key', sa.String(500), nullable=True),
        sa.Column('share_to_feed', sa.Boolean(), nullable=True),
        sa.Column('thumb_offset', sa.Integer(), nullable=True),
        sa.Column('status', content_status_enum, nullable=False),
        sa.Column('processing_stage', processing_stage_enum, nullable=True),
        sa.Column('scheduled_at', sa.DateTime(), nullable=True),
        sa.Column('published_at', sa.DateTime(), nullable=True),
        sa.Column('published_post_id', sa.String(100), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('instagram_creation_id', sa.String(100), nullable=True),
        sa.Column('instagram_media_id', sa.String(100), nullable=True),
        sa.Column('youtube_video_id', sa.String(100), nullable=True),
        sa.Column('youtube_url', sa.String(500), nullable=True),
        sa.Column('poll_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('next_poll_at', sa.DateTime(), nullable=True),
        sa.Column('container_created_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_contents_id', 'contents', ['id'])
    op.create_index('ix_contents_user_id', 'contents', ['user_id'])
    op.create_index('ix_contents_platform', 'contents', ['platform'])
    op.create_index('ix_contents_status_scheduled_at', 'contents', ['status', 'scheduled_at'])
    op.create_index('ix_contents_status_stage_next_poll', 'contents', ['status', 'processing_stage', 'next_poll_at'])

    # Create publish jobs table
    op.create_table(
        'publish_jobs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('content_id', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('platform', platform_enum, nullable=False),
        sa.Column('status', job_status_enum, nullable=False),
        sa.Column('scheduled_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('result', sa.JSON(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('processed_by', sa.String(50), nullable=True),
        sa.Column('source', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['content_id'], ['contents.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('content_id', 'platform', name='uq_publish_jobs_content_platform'),
    )
    op.create_index('ix_publish_jobs_id', 'publish_jobs', ['id'])
    op.create_index('ix_publish_jobs_created_at', 'publish_jobs', ['created_at'])
    op.create_index('ix_publish_jobs_status_created_at', 'publish_jobs', ['status', 'created_at'])
    op.create_index('ix_publish_jobs_user_status', 'publish_jobs', ['user_id', 'status'])


def downgrade():
    op.drop_table('publish_jobs')
    op.drop_table('contents')
    op.drop_table('social_accounts')
    op.drop_table('users')

    # Drop enums (no-op on databases without native enum types)
    bind = op.get_bind()
    for enum in (job_status_enum, privacy_status_enum, processing_stage_enum, content_status_enum, platform_enum):
        enum.drop(bind, checkfirst=True)
