"""Initial schema for channels, episodes and listening states

Revision ID: 001
Revises:
Create Date: 2024-11-01

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
    # Create channels table
    op.create_table(
        'channels',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('title', sa.String(512), nullable=True),
        sa.Column('link', sa.String(2048), unique=True, nullable=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
    )

    # Create episodes table
    op.create_table(
        'episodes',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('channel_id', sa.Integer, sa.ForeignKey('channels.id', ondelete='CASCADE'), nullable=False),
        sa.Column('enclosure_url', sa.String(2048), nullable=False),
        sa.Column('ordering', sa.Integer, nullable=False),
        sa.Column('title', sa.String(512), nullable=True),
        sa.Column('link', sa.String(2048), nullable=True),
        sa.Column('source', sa.String(2048), nullable=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('guid', sa.String(2048), nullable=True),
        sa.Column('pub_date', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('channel_id', 'enclosure_url', name='uq_episode_channel_enclosure'),
    )
    op.create_index('ix_episodes_channel_id', 'episodes', ['channel_id'])

    # Create listening_states table; no FK to episodes so rows survive a sync
    # that drops their episode
    op.create_table(
        'listening_states',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('channel_id', sa.Integer, sa.ForeignKey('channels.id', ondelete='CASCADE'), nullable=False),
        sa.Column('enclosure_url', sa.String(2048), nullable=False),
        sa.Column('position_seconds', sa.Float, nullable=False, server_default='0'),
        sa.Column('finished', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('updated_at', sa.DateTime, nullable=False),
        sa.UniqueConstraint('channel_id', 'enclosure_url', name='uq_listening_state_channel_enclosure'),
    )


def downgrade() -> None:
    op.drop_table('listening_states')
    op.drop_index('ix_episodes_channel_id', table_name='episodes')
    op.drop_table('episodes')
    op.drop_table('channels')
