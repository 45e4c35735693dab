"""Create café, review, competitor snapshot and weekly digest tables

Revision ID: 5e1c2a7d9f30
Revises:
Create Date: 2026-10-18 09:12:40.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5e1c2a7d9f30'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('display_name', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=False)

    op.create_table(
        'user_preferences',
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('digest_enabled', sa.Boolean(), nullable=False),
        sa.Column('unsubscribed_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('user_id'),
    )

    op.create_table(
        'cafes',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('owner_id', sa.String(length=36), nullable=False),
        sa.Column('google_place_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_cafes_owner_id'), 'cafes', ['owner_id'], unique=False)

    op.create_table(
        'reviews',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('cafe_id', sa.String(length=36), nullable=False),
        sa.Column('external_id', sa.String(), nullable=True),
        sa.Column('rating', sa.Integer(), nullable=True),
        sa.Column('text', sa.Text(), nullable=True),
        sa.Column('author_name', sa.String(), nullable=True),
        sa.Column('review_created_at', sa.DateTime(), nullable=True),
        sa.Column('sentiment_score', sa.Float(), nullable=True),
        sa.Column('sentiment_label', sa.String(), nullable=True),
        sa.Column('sentiment_topics', sa.JSON(), nullable=True),
        sa.Column('ingested_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['cafe_id'], ['cafes.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_reviews_id'), 'reviews', ['id'], unique=False)
    op.create_index('ix_reviews_cafe_created', 'reviews', ['cafe_id', 'review_created_at'], unique=False)

    op.create_table(
        'competitor_snapshots',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('cafe_id', sa.String(length=36), nullable=False),
        sa.Column('place_id', sa.String(), nullable=True),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('rating', sa.Float(), nullable=True),
        sa.Column('total_reviews', sa.Integer(), nullable=True),
        sa.Column('snapshot_date', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['cafe_id'], ['cafes.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_competitor_snapshots_id'), 'competitor_snapshots', ['id'], unique=False)
    op.create_index(
        'ix_competitor_snapshots_cafe_date',
        'competitor_snapshots',
        ['cafe_id', 'snapshot_date'],
        unique=False,
    )

    op.create_table(
        'digest_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('cafe_id', sa.String(length=36), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        sa.Column('period_label', sa.String(), nullable=True),
        sa.Column('window_days', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('cta_url', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['cafe_id'], ['cafes.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cafe_id', 'period_start', 'period_end', name='uq_digest_runs_cafe_period'),
    )
    op.create_index(op.f('ix_digest_runs_id'), 'digest_runs', ['id'], unique=False)
    op.create_index(op.f('ix_digest_runs_cafe_id'), 'digest_runs', ['cafe_id'], unique=False)
    op.create_index(op.f('ix_digest_runs_status'), 'digest_runs', ['status'], unique=False)

    op.create_table(
        'digest_recipients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('digest_run_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('provider_message_id', sa.String(), nullable=True),
        sa.Column('correlation_id', sa.String(length=32), nullable=True),
        sa.Column('clicked_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['digest_run_id'], ['digest_runs.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('digest_run_id', 'user_id', name='uq_digest_recipients_run_user'),
    )
    op.create_index(op.f('ix_digest_recipients_id'), 'digest_recipients', ['id'], unique=False)
    op.create_index(op.f('ix_digest_recipients_digest_run_id'), 'digest_recipients', ['digest_run_id'], unique=False)
    op.create_index(op.f('ix_digest_recipients_status'), 'digest_recipients', ['status'], unique=False)
    op.create_index(op.f('ix_digest_recipients_correlation_id'), 'digest_recipients', ['correlation_id'], unique=False)

    op.create_table(
        'digest_insights',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('digest_run_id', sa.Integer(), nullable=False),
        sa.Column('insight_id', sa.String(), nullable=False),
        sa.Column('insight_type', sa.String(), nullable=False),
        sa.Column('severity', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('summary', sa.Text(), nullable=False),
        sa.Column('metric_label', sa.String(), nullable=True),
        sa.Column('metric_value', sa.String(), nullable=True),
        sa.Column('action_items', sa.JSON(), nullable=True),
        sa.Column('score', sa.Float(), nullable=True),
        sa.Column('rank', sa.Integer(), nullable=True),
        sa.Column('deep_link', sa.Text(), nullable=True),
        sa.Column('supporting_data', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['digest_run_id'], ['digest_runs.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('digest_run_id', 'insight_id', name='uq_digest_insights_run_insight'),
    )
    op.create_index(op.f('ix_digest_insights_id'), 'digest_insights', ['id'], unique=False)
    op.create_index(op.f('ix_digest_insights_digest_run_id'), 'digest_insights', ['digest_run_id'], unique=False)
    op.create_index(op.f('ix_digest_insights_insight_type'), 'digest_insights', ['insight_type'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('digest_insights')
    op.drop_table('digest_recipients')
    op.drop_table('digest_runs')
    op.drop_table('competitor_snapshots')
    op.drop_table('reviews')
    op.drop_table('cafes')
    op.drop_table('user_preferences')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')
