import uuid

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TIMESTAMP,
    CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import false, func

from app.database import Base
from app.models.stage import STAGE_SEQUENCE


def _new_id() -> str:
    return str(uuid.uuid4())


_STAGE_VALUES = ", ".join(f"'{stage.value}'" for stage in STAGE_SEQUENCE)


# -----------------------
# Classes 테이블 (학급)
# -----------------------
class Classroom(Base):
    __tablename__ = "classes"

    id = Column(String(36), primary_key=True, default=_new_id, comment="학급 고유 ID")
    name = Column(String(255), nullable=False, comment="학급 이름")
    school_name = Column(String(255), comment="학교명")
    grade = Column(String(50), comment="학년")
    user_id = Column(String(255), comment="담임 교사 사용자 ID")
    is_demo = Column(
        Boolean, nullable=False, default=False, server_default=false(), comment="데모 학급 여부"
    )
    is_public = Column(
        Boolean, nullable=False, default=False, server_default=false(), comment="공개 학급 여부"
    )
    created_at = Column(
        TIMESTAMP(timezone=True), server_default=func.now(), comment="생성 일시"
    )

    __table_args__ = (Index("idx_classes_user_id", "user_id"),)

    students = relationship(
        "Student", back_populates="classroom", cascade="all, delete-orphan"
    )
    analysis_results = relationship(
        "AnalysisResult", back_populates="classroom", cascade="all, delete-orphan"
    )
    surveys = relationship(
        "Survey", back_populates="classroom", cascade="all, delete-orphan"
    )


# -----------------------
# Students 테이블
# -----------------------
class Student(Base):
    __tablename__ = "students"

    id = Column(String(36), primary_key=True, default=_new_id, comment="학생 고유 ID")
    class_id = Column(
        String(36),
        ForeignKey("classes.id", ondelete="CASCADE"),
        nullable=False,
        comment="소속 학급",
    )
    name = Column(String(100), nullable=False, comment="학생 이름")
    gender = Column(String(20), comment="성별")
    display_order = Column(Integer, comment="명단 표시 순서 (학생 그룹 분할 기준)")
    created_at = Column(
        TIMESTAMP(timezone=True), server_default=func.now(), comment="등록 일시"
    )

    __table_args__ = (
        Index("idx_students_class_order", "class_id", "display_order"),
    )

    classroom = relationship("Classroom", back_populates="students")


# -----------------------
# Surveys 테이블 (관계 설문지)
# -----------------------
class Survey(Base):
    __tablename__ = "surveys"

    id = Column(String(36), primary_key=True, default=_new_id, comment="설문지 고유 ID")
    class_id = Column(
        String(36),
        ForeignKey("classes.id", ondelete="CASCADE"),
        nullable=False,
        comment="설문을 진행한 학급",
    )
    name = Column(String(255), nullable=False, comment="설문지 이름")
    description = Column(Text, comment="설문지 설명")
    created_at = Column(
        TIMESTAMP(timezone=True), server_default=func.now(), comment="생성 일시"
    )

    __table_args__ = (Index("idx_surveys_class_created", "class_id", "created_at"),)

    classroom = relationship("Classroom", back_populates="surveys")


# -----------------------
# Relations 테이블 (학생 간 관계)
# -----------------------
class Relation(Base):
    __tablename__ = "relations"

    id = Column(String(36), primary_key=True, default=_new_id, comment="관계 고유 ID")
    from_student_id = Column(
        String(36),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        comment="관계를 응답한 학생",
    )
    to_student_id = Column(
        String(36),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        comment="관계 대상 학생",
    )
    relation_type = Column(String(50), nullable=False, comment="관계 유형")
    survey_id = Column(
        String(36),
        ForeignKey("surveys.id", ondelete="CASCADE"),
        comment="설문으로 수집된 관계의 설문지 (기본 관계는 NULL)",
    )
    created_at = Column(
        TIMESTAMP(timezone=True), server_default=func.now(), comment="생성 일시"
    )

    __table_args__ = (
        Index("idx_relations_from_student", "from_student_id"),
        Index("idx_relations_to_student", "to_student_id"),
        Index("idx_relations_survey", "survey_id"),
    )


# -----------------------
# Questions / Answers 테이블 (설문 문항과 학생 응답)
# -----------------------
class Question(Base):
    __tablename__ = "questions"

    id = Column(String(36), primary_key=True, default=_new_id, comment="질문 고유 ID")
    class_id = Column(
        String(36),
        ForeignKey("classes.id", ondelete="CASCADE"),
        nullable=False,
        comment="소속 학급",
    )
    survey_id = Column(
        String(36),
        ForeignKey("surveys.id", ondelete="CASCADE"),
        comment="소속 설문지 (학급 기본 질문은 NULL)",
    )
    question_text = Column(Text, nullable=False, comment="질문 내용")
    created_at = Column(
        TIMESTAMP(timezone=True), server_default=func.now(), comment="생성 일시"
    )

    __table_args__ = (
        Index("idx_questions_class", "class_id"),
        Index("idx_questions_survey", "survey_id"),
    )


class Answer(Base):
    __tablename__ = "answers"

    id = Column(String(36), primary_key=True, default=_new_id, comment="응답 고유 ID")
    student_id = Column(
        String(36),
        ForeignKey("students.id", ondelete="CASCADE"),
        nullable=False,
        comment="응답한 학생",
    )
    question_id = Column(
        String(36),
        ForeignKey("questions.id", ondelete="CASCADE"),
        nullable=False,
        comment="응답한 질문",
    )
    survey_id = Column(
        String(36),
        ForeignKey("surveys.id", ondelete="CASCADE"),
        comment="소속 설문지 (기본 질문 응답은 NULL)",
    )
    answer_text = Column(Text, comment="응답 내용")
    created_at = Column(
        TIMESTAMP(timezone=True), server_default=func.now(), comment="응답 일시"
    )

    __table_args__ = (
        Index("idx_answers_student", "student_id"),
        Index("idx_answers_survey", "survey_id"),
    )


# -----------------------
# AnalysisResults 테이블
# -----------------------
class AnalysisResult(Base):
    __tablename__ = "analysis_results"

    id = Column(String(36), primary_key=True, default=_new_id, comment="결과 고유 ID")
    class_id = Column(
        String(36),
        ForeignKey("classes.id", ondelete="CASCADE"),
        nullable=False,
        comment="분석 대상 학급",
    )
    session_id = Column(
        String(36), comment="한 번의 전체 분석 실행이 공유하는 세션 ID (단건 분석은 NULL)"
    )
    type = Column(
        String(20), nullable=False, comment="분석 단계 (overview, students-1 ~ students-8)"
    )
    result_data = Column(Text, nullable=False, comment="분석 서비스 원본 응답")
    summary = Column(Text, nullable=False, default="", comment="사용자 편집 요약")
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, comment="생성 일시")

    __table_args__ = (
        # session_id가 NULL인 행끼리는 충돌하지 않습니다 (PostgreSQL/SQLite 공통).
        Index(
            "uq_analysis_results_class_type_session",
            "class_id",
            "type",
            "session_id",
            unique=True,
        ),
        Index(
            "idx_analysis_results_class_type_latest",
            "class_id",
            "type",
            created_at.desc(),
        ),
        Index("idx_analysis_results_class_created", "class_id", created_at.desc()),
        Index("idx_analysis_results_session", "session_id"),
        CheckConstraint(
            f"type IN ({_STAGE_VALUES})", name="ck_analysis_results_type_valid"
        ),
    )

    classroom = relationship("Classroom", back_populates="analysis_results")
