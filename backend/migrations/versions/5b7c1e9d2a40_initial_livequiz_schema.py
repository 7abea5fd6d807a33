"""initial livequiz schema

Revision ID: 5b7c1e9d2a40
Revises:
Create Date: 2026-10-17 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5b7c1e9d2a40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'quiz',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('created_at', sa.Float(), nullable=False),
    )
    op.create_table(
        'question',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('quiz_id', sa.Integer(), sa.ForeignKey('quiz.id'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=32), nullable=False),
        sa.Column('prompt', sa.Text(), nullable=False),
        sa.Column('time_limit', sa.Integer(), nullable=False),
        sa.Column('params', sa.Text(), nullable=True),
    )
    op.create_index('ix_question_quiz_id', 'question', ['quiz_id'])
    op.create_table(
        'game',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_pin', sa.String(length=6), nullable=True),
        sa.Column('quiz_id', sa.Integer(), sa.ForeignKey('quiz.id'), nullable=False),
        sa.Column('state', sa.String(length=32), nullable=False),
        sa.Column('current_question_index', sa.Integer(), nullable=False),
        sa.Column('question_start_time', sa.Float(), nullable=True),
        sa.Column('revision', sa.Integer(), nullable=False),
        sa.Column('host_key_hash', sa.String(length=128), nullable=True),
        sa.Column('results_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.Column('ended_at', sa.Float(), nullable=True),
    )
    op.create_index('ix_game_game_pin', 'game', ['game_pin'], unique=True)
    op.create_table(
        'player',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('current_streak', sa.Integer(), nullable=False),
        sa.Column('score_reached_at', sa.Float(), nullable=False),
        sa.Column('joined_at', sa.Float(), nullable=False),
    )
    op.create_index('ix_player_game_id', 'player', ['game_id'])
    op.create_table(
        'answer',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('player_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=False),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
        sa.Column('question_index', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=32), nullable=False),
        sa.Column('selection', sa.Text(), nullable=True),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=False),
        sa.Column('is_partially_correct', sa.Boolean(), nullable=False),
        sa.Column('was_timeout', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.UniqueConstraint('player_id', 'question_index', name='uq_answer_player_question'),
    )
    op.create_index('ix_answer_player_id', 'answer', ['player_id'])
    op.create_index('ix_answer_game_id', 'answer', ['game_id'])
    op.create_table(
        'leaderboard',
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), primary_key=True),
        sa.Column('top_players', sa.Text(), nullable=True),
        sa.Column('total_players', sa.Integer(), nullable=False),
        sa.Column('total_answered', sa.Integer(), nullable=False),
        sa.Column('answer_counts', sa.Text(), nullable=True),
        sa.Column('results_question_index', sa.Integer(), nullable=True),
        sa.Column('player_ranks', sa.Text(), nullable=True),
        sa.Column('player_streaks', sa.Text(), nullable=True),
        sa.Column('last_updated', sa.Float(), nullable=True),
    )
    op.create_table(
        'live_answer_count',
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), primary_key=True),
        sa.Column('question_index', sa.Integer(), primary_key=True),
        sa.Column('option_index', sa.Integer(), primary_key=True),
        sa.Column('count', sa.Integer(), nullable=False),
    )


def downgrade():
    op.drop_table('live_answer_count')
    op.drop_table('leaderboard')
    op.drop_index('ix_answer_game_id', table_name='answer')
    op.drop_index('ix_answer_player_id', table_name='answer')
    op.drop_table('answer')
    op.drop_index('ix_player_game_id', table_name='player')
    op.drop_table('player')
    op.drop_index('ix_game_game_pin', table_name='game')
    op.drop_table('game')
    op.drop_index('ix_question_quiz_id', table_name='question')
    op.drop_table('question')
    op.drop_table('quiz')
