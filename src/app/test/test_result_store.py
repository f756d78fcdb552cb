"""
분석 결과 저장소(app/crud/analysis_result.py) 테스트
"""

from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select

from app.crud.analysis_result import (
    delete_all_for_class,
    delete_one,
    delete_session,
    get_by_session_and_type,
    get_latest_by_type,
    list_by_class,
    update_summary,
    upsert_analysis_result,
)
from app.models.models import AnalysisResult
from app.models.stage import STAGE_SEQUENCE, StageType

T0 = datetime(2025, 3, 2, 9, 0, tzinfo=timezone.utc)


def _count(db, **filters):
    stmt = select(func.count()).select_from(AnalysisResult)
    for column, value in filters.items():
        stmt = stmt.where(getattr(AnalysisResult, column) == value)
    return db.execute(stmt).scalar_one()


def _save(db, class_id, stage, session_id, minutes=0, text=None):
    return upsert_analysis_result(
        db,
        class_id=class_id,
        stage_type=stage,
        session_id=session_id,
        result_data=text or f"{stage} 결과",
        created_at=T0 + timedelta(minutes=minutes),
    )


def _save_session(db, class_id, session_id, stages, start_minute=0):
    for offset, stage in enumerate(stages):
        _save(db, class_id, stage, session_id, minutes=start_minute + offset)


def test_upsert_same_session_overwrites(db, seed_class):
    classroom = seed_class()

    first = _save(db, classroom.id, StageType.OVERVIEW, "s-1", minutes=0, text="첫 번째")
    second = _save(db, classroom.id, StageType.OVERVIEW, "s-1", minutes=5, text="두 번째")

    assert first.id == second.id
    assert _count(db, class_id=classroom.id) == 1

    row = get_by_session_and_type(
        db, class_id=classroom.id, stage_type=StageType.OVERVIEW, session_id="s-1"
    )
    assert row.result_data == "두 번째"
    # created_at도 갱신됨
    assert row.created_at.replace(tzinfo=None) == (T0 + timedelta(minutes=5)).replace(
        tzinfo=None
    )


def test_upsert_without_session_always_inserts(db, seed_class):
    classroom = seed_class()

    _save(db, classroom.id, StageType.OVERVIEW, None, minutes=0)
    _save(db, classroom.id, StageType.OVERVIEW, None, minutes=1)

    assert _count(db, class_id=classroom.id, type="overview") == 2


def test_upsert_keeps_stages_and_sessions_apart(db, seed_class):
    classroom = seed_class()

    _save(db, classroom.id, StageType.OVERVIEW, "s-1")
    _save(db, classroom.id, StageType.STUDENTS_1, "s-1")
    _save(db, classroom.id, StageType.OVERVIEW, "s-2")

    assert _count(db, class_id=classroom.id) == 3


def test_get_latest_by_type_ignores_session(db, seed_class):
    classroom = seed_class()

    _save(db, classroom.id, StageType.OVERVIEW, "s-old", minutes=0, text="예전")
    _save(db, classroom.id, StageType.OVERVIEW, None, minutes=10, text="최신")
    _save(db, classroom.id, StageType.OVERVIEW, "s-mid", minutes=5, text="중간")

    latest = get_latest_by_type(db, class_id=classroom.id, stage_type="overview")
    assert latest.result_data == "최신"
    assert get_latest_by_type(db, class_id=classroom.id, stage_type="students-2") is None


def test_list_by_class_groups_sessions(db, seed_class):
    classroom = seed_class()

    # 세션 하나(3단계) + 세션 없는 결과 2건 → 그룹 3개
    _save(db, classroom.id, StageType.STUDENTS_2, "s-1", minutes=2)
    _save(db, classroom.id, StageType.OVERVIEW, "s-1", minutes=0)
    _save(db, classroom.id, StageType.STUDENTS_1, "s-1", minutes=1)
    _save(db, classroom.id, StageType.OVERVIEW, None, minutes=10)
    _save(db, classroom.id, StageType.STUDENTS_1, None, minutes=-10)

    groups = list_by_class(db, class_id=classroom.id, group_by_session=True)

    assert len(groups) == 3
    assert [g.session_id for g in groups] == [None, "s-1", None]

    session_group = groups[1]
    assert [r.type for r in session_group.results] == [
        "overview",
        "students-1",
        "students-2",
    ]
    assert session_group.is_complete is False
    assert session_group.missing_stages == [s.value for s in STAGE_SEQUENCE[3:]]
    assert all(len(g.results) == 1 for g in (groups[0], groups[2]))


def test_list_by_class_complete_session(db, seed_class):
    classroom = seed_class()
    _save_session(db, classroom.id, "s-full", STAGE_SEQUENCE)

    [group] = list_by_class(db, class_id=classroom.id, group_by_session=True)
    assert group.is_complete
    assert group.missing_stages == []


def test_list_by_class_flat_is_newest_first(db, seed_class):
    classroom = seed_class()
    _save_session(db, classroom.id, "s-1", STAGE_SEQUENCE[:3])

    rows = list_by_class(db, class_id=classroom.id)
    assert [r.type for r in rows] == ["students-2", "students-1", "overview"]


def test_delete_scope(db, seed_class):
    class_a = seed_class(name="A반")
    class_b = seed_class(name="B반")

    _save_session(db, class_a.id, "s-1", STAGE_SEQUENCE[:5], start_minute=0)
    _save_session(db, class_a.id, "s-2", STAGE_SEQUENCE[:5], start_minute=10)
    _save(db, class_a.id, StageType.OVERVIEW, None, minutes=20)
    _save(db, class_a.id, StageType.OVERVIEW, None, minutes=21)
    _save_session(db, class_b.id, "s-b", STAGE_SEQUENCE[:3])

    assert delete_session(db, class_id=class_a.id, session_id="s-1") == 5
    assert _count(db, class_id=class_a.id) == 7
    assert _count(db, class_id=class_a.id, session_id="s-2") == 5

    assert delete_all_for_class(db, class_id=class_a.id) == 7
    assert _count(db, class_id=class_a.id) == 0
    assert _count(db, class_id=class_b.id) == 3


def test_delete_session_is_scoped_to_class(db, seed_class):
    class_a = seed_class(name="A반")
    class_b = seed_class(name="B반")
    _save(db, class_a.id, StageType.OVERVIEW, "shared")
    _save(db, class_b.id, StageType.OVERVIEW, "shared")

    assert delete_session(db, class_id=class_a.id, session_id="shared") == 1
    assert _count(db, class_id=class_b.id) == 1


def test_update_summary_and_delete_one(db, seed_class):
    classroom = seed_class()
    saved = _save(db, classroom.id, StageType.STUDENTS_1, "s-1")

    updated = update_summary(db, class_id=classroom.id, result_id=saved.id, summary="")
    assert updated.summary == ""
    assert update_summary(db, class_id=classroom.id, result_id="missing", summary="x") is None

    assert delete_one(db, class_id=classroom.id, result_id=saved.id) is True
    assert delete_one(db, class_id=classroom.id, result_id=saved.id) is False
