"""create room, player, prompt, submission and vote tables

Revision ID: 3c9d1e7a5b20
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c9d1e7a5b20'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    if 'room' in set(insp.get_table_names()):
        return

    op.create_table(
        'room',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=4), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('current_round', sa.Integer(), nullable=False),
        sa.Column('round_phase', sa.String(length=16), nullable=True),
        sa.Column('reveal_index', sa.Integer(), nullable=False),
        sa.Column('phase_end_time', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_room_code', 'room', ['code'], unique=True)

    op.create_table(
        'player',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('room_id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('is_host', sa.Boolean(), nullable=False),
        sa.Column('session_token', sa.String(length=128), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['room_id'], ['room.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_id', 'username', name='uq_player_username_per_room'),
    )
    op.create_index('ix_player_room_id', 'player', ['room_id'], unique=False)
    op.create_index('uq_player_one_host_per_room', 'player', ['room_id'], unique=True,
                    sqlite_where=sa.text('is_host'), postgresql_where=sa.text('is_host'))

    op.create_table(
        'prompt',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('room_id', sa.Integer(), nullable=False),
        sa.Column('player_id', sa.Integer(), nullable=False),
        sa.Column('text', sa.String(length=255), nullable=False),
        sa.Column('round_number', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['player_id'], ['player.id']),
        sa.ForeignKeyConstraint(['room_id'], ['room.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_id', 'player_id', name='uq_one_prompt_per_player'),
    )
    op.create_index('ix_prompt_room_id', 'prompt', ['room_id'], unique=False)

    op.create_table(
        'submission',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('room_id', sa.Integer(), nullable=False),
        sa.Column('round', sa.Integer(), nullable=False),
        sa.Column('player_id', sa.Integer(), nullable=False),
        sa.Column('photo_url', sa.String(length=512), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['player_id'], ['player.id']),
        sa.ForeignKeyConstraint(['room_id'], ['room.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_id', 'round', 'player_id', name='uq_one_submission_per_round'),
    )
    op.create_index('ix_submission_room_id', 'submission', ['room_id'], unique=False)

    op.create_table(
        'vote',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('room_id', sa.Integer(), nullable=False),
        sa.Column('round', sa.Integer(), nullable=False),
        sa.Column('voter_id', sa.Integer(), nullable=False),
        sa.Column('submission_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['room_id'], ['room.id']),
        sa.ForeignKeyConstraint(['submission_id'], ['submission.id']),
        sa.ForeignKeyConstraint(['voter_id'], ['player.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_id', 'round', 'voter_id', name='uq_one_vote_per_round'),
    )
    op.create_index('ix_vote_room_id', 'vote', ['room_id'], unique=False)


def downgrade():
    op.drop_index('ix_vote_room_id', table_name='vote')
    op.drop_table('vote')
    op.drop_index('ix_submission_room_id', table_name='submission')
    op.drop_table('submission')
    op.drop_index('ix_prompt_room_id', table_name='prompt')
    op.drop_table('prompt')
    op.drop_index('uq_player_one_host_per_room', table_name='player')
    op.drop_index('ix_player_room_id', table_name='player')
    op.drop_table('player')
    op.drop_index('ix_room_code', table_name='room')
    op.drop_table('room')
