"""Exercise pool, attempts, learning sessions and conversation messages

Revision ID: a1f0c2d4e6b8
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from core.database import GUID

revision: str = 'a1f0c2d4e6b8'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'learning_sessions',
        sa.Column('id', GUID(), primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('mode', sa.String(20), nullable=False),
        sa.Column('difficulty_level', sa.String(20), nullable=False),
        sa.Column('scenario', sa.String(50)),
        sa.Column('exercises_completed', sa.Integer, nullable=False, server_default='0'),
        sa.Column('duration_seconds', sa.Float, nullable=False, server_default='0'),
        sa.Column('score', sa.Integer, nullable=False, server_default='0'),
        sa.Column('is_completed', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime, default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime, default=sa.func.now(), onupdate=sa.func.now()),
        sa.Column('completed_at', sa.DateTime),
    )
    op.create_index('ix_learning_sessions_user_mode', 'learning_sessions', ['user_id', 'mode'])

    op.create_table(
        'exercise_pool',
        sa.Column('id', GUID(), primary_key=True),
        sa.Column('category', sa.String(20), nullable=False),
        sa.Column('level', sa.String(20), nullable=False),
        sa.Column('prompt_text', sa.Text, nullable=False),
        sa.Column('exercise_kind', sa.String(30), nullable=False),
        sa.Column('correct_answer', sa.Text, nullable=False),
        sa.Column('options', sa.JSON),
        sa.Column('grammar_rule', sa.Text),
        sa.Column('feedback', sa.Text),
        sa.Column('example_sentence', sa.Text),
        sa.Column('blank_position', sa.Integer),
        sa.Column('origin', sa.String(20), nullable=False, server_default='generated'),
        sa.Column('created_at', sa.DateTime, default=sa.func.now()),
    )
    op.create_index('ix_exercise_pool_category_level', 'exercise_pool', ['category', 'level'])

    op.create_table(
        'exercise_attempts',
        sa.Column('id', GUID(), primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('session_id', GUID(), sa.ForeignKey('learning_sessions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('pool_item_id', GUID(), sa.ForeignKey('exercise_pool.id'), nullable=False),
        sa.Column('category', sa.String(20), nullable=False),
        sa.Column('user_answer', sa.Text),
        sa.Column('is_correct', sa.Boolean),
        sa.Column('elapsed_seconds', sa.Float),
        sa.Column('created_at', sa.DateTime, default=sa.func.now()),
        sa.Column('graded_at', sa.DateTime),
    )
    op.create_index('ix_exercise_attempts_user_category', 'exercise_attempts', ['user_id', 'category'])
    op.create_index('ix_exercise_attempts_session', 'exercise_attempts', ['session_id'])

    op.create_table(
        'conversation_messages',
        sa.Column('id', GUID(), primary_key=True),
        sa.Column('session_id', GUID(), sa.ForeignKey('learning_sessions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('scenario', sa.String(50), nullable=False, server_default='general'),
        sa.Column('turn', sa.Integer, nullable=False, server_default='0'),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('content', sa.Text, nullable=False),
        sa.Column('corrected_text', sa.Text),
        sa.Column('correction_explanation', sa.Text),
        sa.Column('context_summary', sa.Text),
        sa.Column('proficiency_level', sa.String(20)),
        sa.Column('created_at', sa.DateTime, default=sa.func.now()),
    )
    op.create_index('ix_conversation_messages_session_turn', 'conversation_messages', ['session_id', 'turn'])


def downgrade() -> None:
    op.drop_table('conversation_messages')
    op.drop_table('exercise_attempts')
    op.drop_table('exercise_pool')
    op.drop_table('learning_sessions')
