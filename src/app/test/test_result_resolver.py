import logging
from datetime import datetime, timedelta, timezone

from app.crud.analysis_result import upsert_analysis_result
from app.models.stage import STAGE_SEQUENCE, StageType
from app.services.result_resolver import (
    SOURCE_FALLBACK,
    SOURCE_LATEST,
    SOURCE_SESSION,
    ResultResolver,
)

T0 = datetime(2025, 3, 2, 9, 0, tzinfo=timezone.utc)


def _save(db, class_id, stage, session_id, minutes, text):
    return upsert_analysis_result(
        db,
        class_id=class_id,
        stage_type=stage,
        session_id=session_id,
        result_data=text,
        created_at=T0 + timedelta(minutes=minutes),
    )


def test_resolve_returns_session_row(db, seed_class):
    classroom = seed_class()
    _save(db, classroom.id, StageType.OVERVIEW, "s-a", 0, "A 종합")
    _save(db, classroom.id, StageType.OVERVIEW, "s-b", 10, "B 종합")

    result, source = ResultResolver(db).resolve_with_source(
        classroom.id, StageType.OVERVIEW, "s-a"
    )
    assert result.result_data == "A 종합"
    assert source == SOURCE_SESSION


def test_resolve_falls_back_to_latest_other_session(db, seed_class, caplog):
    classroom = seed_class()
    # 세션 A: 9단계 모두 완료
    for offset, stage in enumerate(STAGE_SEQUENCE):
        _save(db, classroom.id, stage, "s-a", offset, f"A {stage}")
    # 세션 B: 1~3단계만 저장된 뒤 중단
    for offset, stage in enumerate(STAGE_SEQUENCE[:3]):
        _save(db, classroom.id, stage, "s-b", 100 + offset, f"B {stage}")

    resolver = ResultResolver(db)
    with caplog.at_level(logging.INFO, logger="classinsight.resolver"):
        result, source = resolver.resolve_with_source(
            classroom.id, StageType.STUDENTS_5, "s-b"
        )

    assert result.session_id == "s-a"
    assert result.result_data == "A students-5"
    assert source == SOURCE_FALLBACK
    assert "falling back" in caplog.text

    # 세션 B에 있는 단계는 B의 결과
    own = resolver.resolve(classroom.id, StageType.STUDENTS_1, "s-b")
    assert own.result_data == "B students-1"


def test_resolve_fallback_prefers_newest_row(db, seed_class):
    classroom = seed_class()
    _save(db, classroom.id, StageType.OVERVIEW, "s-a", 0, "A 종합")
    _save(db, classroom.id, StageType.OVERVIEW, None, 30, "단건 종합")
    _save(db, classroom.id, StageType.STUDENTS_1, "s-c", 60, "C 그룹1")

    result = ResultResolver(db).resolve(classroom.id, "overview", "s-c")
    assert result.result_data == "단건 종합"


def test_resolve_without_session_returns_latest(db, seed_class):
    classroom = seed_class()
    _save(db, classroom.id, StageType.STUDENTS_2, "s-a", 0, "예전")
    _save(db, classroom.id, StageType.STUDENTS_2, "s-b", 5, "최신")

    result, source = ResultResolver(db).resolve_with_source(
        classroom.id, StageType.STUDENTS_2
    )
    assert result.result_data == "최신"
    assert source == SOURCE_LATEST


def test_resolve_not_found(db, seed_class):
    classroom = seed_class()
    resolver = ResultResolver(db)

    assert resolver.resolve(classroom.id, StageType.OVERVIEW) is None
    assert resolver.resolve_with_source(classroom.id, StageType.OVERVIEW, "s-x") == (
        None,
        None,
    )
