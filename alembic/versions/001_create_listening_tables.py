"""create credential and play tables

Revision ID: 001
Create Date: 2024-06-02 14:10:37.512301

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        'credentials',
        sa.Column('credential_id', sa.Integer(), primary_key=True),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('refresh_token', sa.Text(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('credential_id = 1', name='chk_credentials_single_row'),
    )

    op.create_table(
        'plays',
        sa.Column('play_id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('track_id', sa.String(64), nullable=False),
        sa.Column('name', sa.String(512), nullable=False),
        sa.Column('album', sa.String(512), nullable=False),
        sa.Column('album_id', sa.String(64), nullable=False),
        sa.Column('artwork_url', sa.String(1024)),
        sa.Column('spotify_link', sa.String(1024), nullable=False),
        sa.Column('played_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('duration_ms', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('played_at', name='uq_plays_played_at'),
        sa.CheckConstraint('duration_ms >= 0', name='chk_plays_duration_positive'),
    )
    op.create_index('idx_plays_track_id', 'plays', ['track_id'])
    op.create_index('idx_plays_album_id', 'plays', ['album_id'])

    op.create_table(
        'play_artists',
        sa.Column('play_id', sa.Integer(),
                  sa.ForeignKey('plays.play_id', onupdate='CASCADE', ondelete='CASCADE'),
                  primary_key=True),
        sa.Column('position', sa.Integer(), primary_key=True),
        sa.Column('artist_id', sa.String(64), nullable=False),
        sa.Column('artist_name', sa.String(512), nullable=False),
        sa.CheckConstraint('position >= 0', name='chk_play_artists_position_positive'),
    )
    op.create_index('idx_play_artists_artist_name', 'play_artists', ['artist_name'])

def downgrade() -> None:
    op.drop_index('idx_play_artists_artist_name', table_name='play_artists')
    op.drop_table('play_artists')
    op.drop_index('idx_plays_album_id', table_name='plays')
    op.drop_index('idx_plays_track_id', table_name='plays')
    op.drop_table('plays')
    op.drop_table('credentials')
