"""Create exam_results table

Revision ID: b41e7c9a2d10
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b41e7c9a2d10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'exam_results',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('instance_id', sa.String(length=100), nullable=False),
        sa.Column('user_id', sa.String(length=100), nullable=True),
        sa.Column('final_score', sa.Float(), nullable=True),
        sa.Column('raw_score', sa.Float(), nullable=True),
        sa.Column('penalty', sa.JSON(), nullable=True),
        sa.Column('graded_answers', sa.JSON(), nullable=True),
        sa.Column('answers', sa.JSON(), nullable=True),
        sa.Column('evaluation_text', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=30), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    # One result per assessment instance
    op.create_index('ix_exam_results_instance_id', 'exam_results', ['instance_id'], unique=True)


def downgrade():
    op.drop_index('ix_exam_results_instance_id', table_name='exam_results')
    op.drop_table('exam_results')
