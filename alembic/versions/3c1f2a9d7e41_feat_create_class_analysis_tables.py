"""feat_create_class_analysis_tables

Revision ID: 3c1f2a9d7e41
Revises:
Create Date: 2026-10-16 10:12:05.118204

"""
from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1f2a9d7e41'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

STAGE_TYPES = (
    'overview',
    'students-1', 'students-2', 'students-3', 'students-4',
    'students-5', 'students-6', 'students-7', 'students-8',
)


def upgrade() -> None:
    """Create classes, students, relations and analysis_results tables."""

    op.create_table(
        'classes',
        sa.Column('id', sa.String(36), primary_key=True, comment='학급 고유 ID'),
        sa.Column('name', sa.String(255), nullable=False, comment='학급 이름'),
        sa.Column('school_name', sa.String(255), nullable=True, comment='학교명'),
        sa.Column('grade', sa.String(50), nullable=True, comment='학년'),
        sa.Column('user_id', sa.String(255), nullable=True, comment='담임 교사 사용자 ID'),
        sa.Column('is_demo', sa.Boolean, nullable=False, server_default=sa.false(),
                  comment='데모 학급 여부'),
        sa.Column('is_public', sa.Boolean, nullable=False, server_default=sa.false(),
                  comment='공개 학급 여부'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True),
                  server_default=sa.func.now(), comment='생성 일시'),
    )
    op.create_index('idx_classes_user_id', 'classes', ['user_id'])

    op.create_table(
        'students',
        sa.Column('id', sa.String(36), primary_key=True, comment='학생 고유 ID'),
        sa.Column('class_id', sa.String(36),
                  sa.ForeignKey('classes.id', ondelete='CASCADE'),
                  nullable=False, comment='소속 학급'),
        sa.Column('name', sa.String(100), nullable=False, comment='학생 이름'),
        sa.Column('gender', sa.String(20), nullable=True, comment='성별'),
        sa.Column('display_order', sa.Integer, nullable=True,
                  comment='명단 표시 순서 (학생 그룹 분할 기준)'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True),
                  server_default=sa.func.now(), comment='등록 일시'),
    )
    op.create_index('idx_students_class_order', 'students', ['class_id', 'display_order'])

    op.create_table(
        'relations',
        sa.Column('id', sa.String(36), primary_key=True, comment='관계 고유 ID'),
        sa.Column('from_student_id', sa.String(36),
                  sa.ForeignKey('students.id', ondelete='CASCADE'),
                  nullable=False, comment='관계를 응답한 학생'),
        sa.Column('to_student_id', sa.String(36),
                  sa.ForeignKey('students.id', ondelete='CASCADE'),
                  nullable=False, comment='관계 대상 학생'),
        sa.Column('relation_type', sa.String(50), nullable=False, comment='관계 유형'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True),
                  server_default=sa.func.now(), comment='생성 일시'),
    )
    op.create_index('idx_relations_from_student', 'relations', ['from_student_id'])
    op.create_index('idx_relations_to_student', 'relations', ['to_student_id'])

    stage_list = ", ".join(f"'{t}'" for t in STAGE_TYPES)
    op.create_table(
        'analysis_results',
        sa.Column('id', sa.String(36), primary_key=True, comment='결과 고유 ID'),
        sa.Column('class_id', sa.String(36),
                  sa.ForeignKey('classes.id', ondelete='CASCADE'),
                  nullable=False, comment='분석 대상 학급'),
        sa.Column('session_id', sa.String(36), nullable=True,
                  comment='한 번의 전체 분석 실행이 공유하는 세션 ID (단건 분석은 NULL)'),
        sa.Column('type', sa.String(20), nullable=False,
                  comment='분석 단계 (overview, students-1 ~ students-8)'),
        sa.Column('result_data', sa.Text, nullable=False, comment='분석 서비스 원본 응답'),
        sa.Column('summary', sa.Text, nullable=False, server_default='',
                  comment='사용자 편집 요약'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False,
                  comment='생성 일시'),
        sa.CheckConstraint(f"type IN ({stage_list})",
                           name='ck_analysis_results_type_valid'),
    )

    # session_id가 NULL인 행끼리는 유일성 검사 대상이 아님
    op.create_index(
        'uq_analysis_results_class_type_session',
        'analysis_results',
        ['class_id', 'type', 'session_id'],
        unique=True,
    )
    # 단계별 최신 결과 조회 (ResultResolver 대체 경로)
    op.create_index(
        'idx_analysis_results_class_type_latest',
        'analysis_results',
        ['class_id', 'type', sa.text('created_at DESC')],
    )
    op.create_index(
        'idx_analysis_results_class_created',
        'analysis_results',
        ['class_id', sa.text('created_at DESC')],
    )
    op.create_index('idx_analysis_results_session', 'analysis_results', ['session_id'])


def downgrade() -> None:
    """Drop class analysis tables."""
    op.drop_index('idx_analysis_results_session', table_name='analysis_results')
    op.drop_index('idx_analysis_results_class_created', table_name='analysis_results')
    op.drop_index('idx_analysis_results_class_type_latest', table_name='analysis_results')
    op.drop_index('uq_analysis_results_class_type_session', table_name='analysis_results')
    op.drop_table('analysis_results')

    op.drop_index('idx_relations_to_student', table_name='relations')
    op.drop_index('idx_relations_from_student', table_name='relations')
    op.drop_table('relations')

    op.drop_index('idx_students_class_order', table_name='students')
    op.drop_table('students')

    op.drop_index('idx_classes_user_id', table_name='classes')
    op.drop_table('classes')
