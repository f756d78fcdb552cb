"""feat_add_survey_tables

Revision ID: 8e4b6d0f2c57
Revises: 3c1f2a9d7e41
Create Date: 2026-10-20 14:03:41.507316

"""
from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '8e4b6d0f2c57'
down_revision: str | Sequence[str] | None = '3c1f2a9d7e41'
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Add surveys, questions, answers and relations.survey_id."""

    op.create_table(
        'surveys',
        sa.Column('id', sa.String(36), primary_key=True, comment='설문지 고유 ID'),
        sa.Column('class_id', sa.String(36),
                  sa.ForeignKey('classes.id', ondelete='CASCADE'),
                  nullable=False, comment='설문을 진행한 학급'),
        sa.Column('name', sa.String(255), nullable=False, comment='설문지 이름'),
        sa.Column('description', sa.Text, nullable=True, comment='설문지 설명'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True),
                  server_default=sa.func.now(), comment='생성 일시'),
    )
    op.create_index('idx_surveys_class_created', 'surveys', ['class_id', 'created_at'])

    op.create_table(
        'questions',
        sa.Column('id', sa.String(36), primary_key=True, comment='질문 고유 ID'),
        sa.Column('class_id', sa.String(36),
                  sa.ForeignKey('classes.id', ondelete='CASCADE'),
                  nullable=False, comment='소속 학급'),
        sa.Column('survey_id', sa.String(36),
                  sa.ForeignKey('surveys.id', ondelete='CASCADE'),
                  nullable=True, comment='소속 설문지 (학급 기본 질문은 NULL)'),
        sa.Column('question_text', sa.Text, nullable=False, comment='질문 내용'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True),
                  server_default=sa.func.now(), comment='생성 일시'),
    )
    op.create_index('idx_questions_class', 'questions', ['class_id'])
    op.create_index('idx_questions_survey', 'questions', ['survey_id'])

    op.create_table(
        'answers',
        sa.Column('id', sa.String(36), primary_key=True, comment='응답 고유 ID'),
        sa.Column('student_id', sa.String(36),
                  sa.ForeignKey('students.id', ondelete='CASCADE'),
                  nullable=False, comment='응답한 학생'),
        sa.Column('question_id', sa.String(36),
                  sa.ForeignKey('questions.id', ondelete='CASCADE'),
                  nullable=False, comment='응답한 질문'),
        sa.Column('survey_id', sa.String(36),
                  sa.ForeignKey('surveys.id', ondelete='CASCADE'),
                  nullable=True, comment='소속 설문지 (기본 질문 응답은 NULL)'),
        sa.Column('answer_text', sa.Text, nullable=True, comment='응답 내용'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True),
                  server_default=sa.func.now(), comment='응답 일시'),
    )
    op.create_index('idx_answers_student', 'answers', ['student_id'])
    op.create_index('idx_answers_survey', 'answers', ['survey_id'])

    # SQLite는 ALTER로 외래키를 추가할 수 없으므로 batch 모드 사용
    with op.batch_alter_table('relations') as batch_op:
        batch_op.add_column(
            sa.Column('survey_id', sa.String(36), nullable=True,
                      comment='설문으로 수집된 관계의 설문지 (기본 관계는 NULL)')
        )
        batch_op.create_foreign_key(
            'fk_relations_survey_id', 'surveys', ['survey_id'], ['id'], ondelete='CASCADE'
        )
        batch_op.create_index('idx_relations_survey', ['survey_id'])


def downgrade() -> None:
    """Drop survey tables and relations.survey_id."""
    with op.batch_alter_table('relations') as batch_op:
        batch_op.drop_index('idx_relations_survey')
        batch_op.drop_constraint('fk_relations_survey_id', type_='foreignkey')
        batch_op.drop_column('survey_id')

    op.drop_index('idx_answers_survey', table_name='answers')
    op.drop_index('idx_answers_student', table_name='answers')
    op.drop_table('answers')

    op.drop_index('idx_questions_survey', table_name='questions')
    op.drop_index('idx_questions_class', table_name='questions')
    op.drop_table('questions')

    op.drop_index('idx_surveys_class_created', table_name='surveys')
    op.drop_table('surveys')
