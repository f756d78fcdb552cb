"""
StageExecutor: 분석 단계 하나를 실행합니다.

1. 학급의 현재 데이터로 단계별 입력(payload)을 만듭니다.
2. 외부 분석 서비스를 정확히 한 번 호출합니다 (재시도 없음).
3. 성공하면 (class_id, stage, session_id) 키로 결과를 저장합니다.

실패 시에는 아무것도 저장하지 않습니다.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    AnalysisServiceError,
    ClassNotFoundError,
    EmptyRosterError,
    ResultStoreError,
)
from app.crud.analysis_result import upsert_analysis_result
from app.models.models import (
    AnalysisResult,
    Answer,
    Classroom,
    Question,
    Relation,
    Student,
    Survey,
)
from app.models.stage import StageType
from app.services.gemini_analyzer import AnalysisService

logger = logging.getLogger("classinsight.pipeline")


@dataclass
class SurveyData:
    """학급의 설문지, 질문, 응답, 설문별 관계 데이터"""

    surveys: List[Survey] = field(default_factory=list)
    questions: List[Question] = field(default_factory=list)
    answers: List[Answer] = field(default_factory=list)
    relations: List[Relation] = field(default_factory=list)


def order_roster(students: Sequence[Student]) -> List[Student]:
    """
    학생 명단의 고정 정렬: display_order 오름차순(없으면 뒤로), 이름, id 순.
    그룹 분할은 항상 이 순서를 기준으로 합니다.
    """
    return sorted(
        students,
        key=lambda s: (
            s.display_order is None,
            s.display_order if s.display_order is not None else 0,
            s.name or "",
            s.id,
        ),
    )


def partition_roster(
    ordered: Sequence[Student], group_index: int, group_size: int
) -> List[Student]:
    """group_index번째(1부터) 그룹에 해당하는 명단 구간을 반환합니다."""
    start = (group_index - 1) * group_size
    return list(ordered[start : start + group_size])


def _student_brief(student: Student) -> Dict[str, Any]:
    return {"id": student.id, "name": student.name, "gender": student.gender}


def _relation_view(relation: Relation, names: Dict[str, str]) -> Dict[str, Any]:
    return {
        "from": names.get(relation.from_student_id, relation.from_student_id),
        "fromId": relation.from_student_id,
        "to": names.get(relation.to_student_id, relation.to_student_id),
        "toId": relation.to_student_id,
        "type": relation.relation_type,
    }


def _question_view(question: Question) -> Dict[str, Any]:
    return {"id": question.id, "text": question.question_text}


def _answer_view(
    answer: Answer, names: Dict[str, str], question_texts: Dict[str, str]
) -> Dict[str, Any]:
    return {
        "student": names.get(answer.student_id, answer.student_id),
        "question": question_texts.get(answer.question_id, answer.question_id),
        "answer": answer.answer_text,
    }


def _survey_view(survey: Survey) -> Dict[str, Any]:
    return {
        "id": survey.id,
        "name": survey.name,
        "description": survey.description,
        "created_at": survey.created_at.isoformat() if survey.created_at else None,
    }


def _survey_sections(
    survey_data: SurveyData, names: Dict[str, str], include_details: bool
) -> Dict[str, Any]:
    question_texts = {q.id: q.question_text for q in survey_data.questions}
    sections: Dict[str, Any] = {
        "questions": [_question_view(q) for q in survey_data.questions],
        "answers": [
            _answer_view(a, names, question_texts) for a in survey_data.answers
        ],
        "surveys": [_survey_view(s) for s in survey_data.surveys],
    }
    if not include_details:
        return sections

    # 설문지별 관계 / 질문 / 응답 (종합 분석에만 포함)
    relations_by_survey = defaultdict(list)
    for r in survey_data.relations:
        relations_by_survey[r.survey_id].append(r)
    questions_by_survey = defaultdict(list)
    for q in survey_data.questions:
        questions_by_survey[q.survey_id].append(q)
    answers_by_survey = defaultdict(list)
    for a in survey_data.answers:
        answers_by_survey[a.survey_id].append(a)

    sections["surveyDetails"] = [
        {
            "survey": _survey_view(survey),
            "relationships": [
                _relation_view(r, names) for r in relations_by_survey[survey.id]
            ],
            "questions": [_question_view(q) for q in questions_by_survey[survey.id]],
            "answers": [
                _answer_view(a, names, question_texts)
                for a in answers_by_survey[survey.id]
            ],
        }
        for survey in survey_data.surveys
    ]
    return sections


def build_stage_payload(
    stage: StageType,
    classroom: Classroom,
    roster: Sequence[Student],
    relations: Sequence[Relation],
    group_size: int,
    survey_data: Optional[SurveyData] = None,
) -> Dict[str, Any]:
    """
    relations는 설문과 연결되지 않은 기본 관계만 받습니다.
    설문 데이터는 질문/응답/설문지 목록으로 함께 전달하고,
    설문지별 상세(surveyDetails)는 종합 분석에만 넣습니다.
    """
    ordered = order_roster(roster)
    names = {s.id: s.name for s in ordered}
    survey_data = survey_data or SurveyData()
    class_details = {
        "id": classroom.id,
        "name": classroom.name,
        "school_name": classroom.school_name,
        "grade": classroom.grade,
    }

    if stage is StageType.OVERVIEW:
        return {
            "class": class_details,
            "students": [_student_brief(s) for s in ordered],
            "relationships": [_relation_view(r, names) for r in relations],
            **_survey_sections(survey_data, names, include_details=True),
        }

    group_index = stage.group_index
    group = partition_roster(ordered, group_index, group_size)
    group_ids = {s.id for s in group}
    start_idx = (group_index - 1) * group_size
    return {
        "class": class_details,
        "students": [
            {**_student_brief(s), "display_order": s.display_order} for s in group
        ],
        "allStudents": [_student_brief(s) for s in ordered],
        "relationships": [
            _relation_view(r, names)
            for r in relations
            if r.from_student_id in group_ids or r.to_student_id in group_ids
        ],
        "groupInfo": {
            "index": group_index,
            "startIdx": start_idx,
            "endIdx": start_idx + len(group),
            "total": math.ceil(len(ordered) / group_size),
        },
        **_survey_sections(survey_data, names, include_details=False),
    }


def make_summary(
    stage: StageType, text: str, preview_length: int, session_id: Optional[str] = None
) -> str:
    # 세션 분석의 종합 요약은 사용자가 직접 입력하도록 비워둡니다.
    # 세션 없는 단건 분석은 단계와 무관하게 미리보기를 저장합니다.
    if stage is StageType.OVERVIEW and session_id is not None:
        return ""
    return text[:preview_length] + "..."


class StageExecutor:
    def __init__(
        self,
        db: Session,
        analyzer: AnalysisService,
        students_per_group: Optional[int] = None,
        summary_preview_length: Optional[int] = None,
    ):
        self.db = db
        self.analyzer = analyzer
        self.students_per_group = students_per_group or settings.students_per_group
        self.summary_preview_length = (
            summary_preview_length
            if summary_preview_length is not None
            else settings.summary_preview_length
        )

    def _class_relations(self, ids: List[str], from_surveys: bool) -> List[Relation]:
        # 양쪽 학생이 모두 학급에 속한 관계만
        survey_filter = (
            Relation.survey_id.is_not(None) if from_surveys else Relation.survey_id.is_(None)
        )
        return list(
            self.db.execute(
                select(Relation)
                .where(
                    Relation.from_student_id.in_(ids),
                    Relation.to_student_id.in_(ids),
                    survey_filter,
                )
                .order_by(Relation.created_at, Relation.id)
            ).scalars()
        )

    def load_roster(self, class_id: str) -> tuple[Classroom, List[Student], List[Relation]]:
        """학급, 정렬된 명단, 설문과 연결되지 않은 기본 관계를 읽습니다."""
        classroom = self.db.get(Classroom, class_id)
        if classroom is None:
            raise ClassNotFoundError(class_id)

        students = list(
            self.db.execute(
                select(Student).where(Student.class_id == class_id)
            ).scalars()
        )
        if not students:
            raise EmptyRosterError(class_id)

        relations = self._class_relations([s.id for s in students], from_surveys=False)
        return classroom, order_roster(students), relations

    def load_survey_data(self, class_id: str, student_ids: List[str]) -> SurveyData:
        surveys = list(
            self.db.execute(
                select(Survey)
                .where(Survey.class_id == class_id)
                .order_by(Survey.created_at, Survey.id)
            ).scalars()
        )
        questions = list(
            self.db.execute(
                select(Question)
                .where(Question.class_id == class_id)
                .order_by(Question.created_at, Question.id)
            ).scalars()
        )
        answers = list(
            self.db.execute(
                select(Answer)
                .where(Answer.student_id.in_(student_ids))
                .order_by(Answer.created_at, Answer.id)
            ).scalars()
        )
        return SurveyData(
            surveys=surveys,
            questions=questions,
            answers=answers,
            relations=self._class_relations(student_ids, from_surveys=True),
        )

    def build_payload(self, class_id: str, stage: StageType) -> Dict[str, Any]:
        classroom, roster, relations = self.load_roster(class_id)
        survey_data = self.load_survey_data(class_id, [s.id for s in roster])
        return build_stage_payload(
            stage, classroom, roster, relations, self.students_per_group, survey_data
        )

    def execute(
        self, class_id: str, stage: StageType, session_id: Optional[str]
    ) -> AnalysisResult:
        stage = StageType(stage)
        try:
            payload = self.build_payload(class_id, stage)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Stage %s input could not be loaded: %s", stage.value, e)
            raise ResultStoreError(f"분석 데이터 조회 중 오류가 발생했습니다: {e}") from e

        logger.info(
            "Stage %s started (class=%s, session=%s)", stage.value, class_id, session_id
        )
        try:
            text = self.analyzer.analyze(stage, payload)
        except AnalysisServiceError:
            raise
        except Exception as e:
            raise AnalysisServiceError(f"분석 서비스 오류: {e}") from e

        if not isinstance(text, str) or not text.strip():
            raise AnalysisServiceError(f"분석 서비스가 빈 결과를 반환했습니다 ({stage.value})")

        try:
            saved = upsert_analysis_result(
                self.db,
                class_id=class_id,
                stage_type=stage,
                session_id=session_id,
                result_data=text,
                summary=make_summary(
                    stage, text, self.summary_preview_length, session_id
                ),
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Stage %s result could not be saved: %s", stage.value, e)
            raise ResultStoreError(f"분석 결과 저장 중 오류가 발생했습니다: {e}") from e

        logger.info("Stage %s saved (id=%s)", stage.value, saved.id)
        return saved
